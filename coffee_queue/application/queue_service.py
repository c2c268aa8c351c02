"""
QueueService: the single writer for order state.

Every mutation runs under one re-entrant lock: validate, persist through the
repository, then update scheduler / analytics / active slot, then hand a
fresh snapshot to the notifier. A repository failure therefore leaves the
in-memory structures untouched. Readers (QueryFacade) take the same lock.
"""
import logging
import threading
from datetime import datetime, timedelta
from typing import Callable, Iterable, Optional

from coffee_queue.application.analytics import AnalyticsAggregator
from coffee_queue.application.estimator import WaitTimeEstimator
from coffee_queue.application.queries import QueryFacade
from coffee_queue.application.scheduler import PriorityScheduler
from coffee_queue.domain.errors import ConflictError, EmptyQueueError, InvalidStateError, NotFoundError
from coffee_queue.domain.models import Order, OrderStatus, utcnow
from coffee_queue.infrastructure.notification_service import NotificationService
from coffee_queue.interfaces.IOrderRepository import IOrderRepository

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


class QueueService:

    def __init__(
        self,
        repository: IOrderRepository,
        notifier: NotificationService,
        scheduler: Optional[PriorityScheduler] = None,
        estimator: Optional[WaitTimeEstimator] = None,
        analytics: Optional[AnalyticsAggregator] = None,
        clock: Optional[Clock] = None,
        page_size: int = 10,
        exposed_completions: int = 5,
    ):
        self.repository = repository
        self.notifier = notifier
        self.scheduler = scheduler or PriorityScheduler()
        self.estimator = estimator or WaitTimeEstimator()
        self.analytics = analytics or AnalyticsAggregator()
        self.clock: Clock = clock or utcnow
        self.lock = threading.RLock()
        self._active: Optional[Order] = None
        self.queries = QueryFacade(self, page_size=page_size, exposed_completions=exposed_completions)
        self._restore()

    @classmethod
    def from_settings(cls, config, repository: IOrderRepository, notifier: NotificationService,
                      clock: Optional[Clock] = None) -> "QueueService":
        return cls(
            repository=repository,
            notifier=notifier,
            estimator=WaitTimeEstimator(
                default_prep=timedelta(minutes=config.DEFAULT_PREP_MINUTES),
                history_window=config.PREP_HISTORY_WINDOW,
            ),
            analytics=AnalyticsAggregator(
                tz_name=config.TIMEZONE,
                recent_capacity=config.RECENT_COMPLETIONS_CAPACITY,
            ),
            clock=clock,
            page_size=config.QUEUE_PAGE_SIZE,
            exposed_completions=config.RECENT_COMPLETIONS_EXPOSED,
        )

    @property
    def active_order(self) -> Optional[Order]:
        with self.lock:
            return self._active

    # -------------------- mutations --------------------

    def create(self, customer_name: str, items: Iterable[str], priority="REGULAR") -> Order:
        """Submit a new order. It starts QUEUED."""
        with self.lock:
            order = Order.new(customer_name, items, priority, created_at=self.clock())
            self.repository.add(order)
            self.scheduler.enqueue(order)
            self.analytics.record_created(order, len(self.scheduler))
            self._publish_locked()
        logger.info("Order %s queued for %s (%s)", order.id, order.customer_name, order.priority.value)
        return order

    def pull_next(self) -> Order:
        """Claim the rank-1 order for preparation.

        An empty queue wins over a busy slot, so callers racing for the last
        queued order all see EmptyQueueError except the winner.
        """
        with self.lock:
            head = self.scheduler.peek_next()
            if head is None:
                raise EmptyQueueError()
            self._ensure_slot_free(head.id)
            order = self._start_locked(head)
        logger.info("Order %s pulled for preparation", order.id)
        return order

    def begin_preparing(self, order_id: str) -> Order:
        with self.lock:
            order = self._get_locked(order_id)
            if order.status is not OrderStatus.QUEUED:
                raise InvalidStateError(order.id, order.status, OrderStatus.PREPARING)
            self._ensure_slot_free(order.id)
            order = self._start_locked(order)
        logger.info("Order %s started out of turn", order.id)
        return order

    def complete(self, order_id: str) -> Order:
        with self.lock:
            order = self._get_locked(order_id)
            done = order.transition(OrderStatus.COMPLETED, self.clock())
            self.repository.update(done)
            self._active = None
            self.estimator.record_preparation(done.prep_duration)
            self.analytics.record_completed(done)
            self._publish_locked()
        logger.info("Order %s completed", done.id)
        return done

    def cancel(self, order_id: str) -> Order:
        with self.lock:
            order = self._get_locked(order_id)
            cancelled = order.transition(OrderStatus.CANCELLED, self.clock())
            self.repository.update(cancelled)
            if order.status is OrderStatus.QUEUED:
                self.scheduler.remove(order.id)
            else:
                self._active = None
            self.analytics.record_cancelled(cancelled)
            self._publish_locked()
        logger.info("Order %s cancelled (was %s)", cancelled.id, order.status.value)
        return cancelled

    # -------------------- internals --------------------

    def _get_locked(self, order_id: str) -> Order:
        order = self.repository.get(order_id)
        if order is None:
            raise NotFoundError(order_id)
        return order

    def _ensure_slot_free(self, order_id: str) -> None:
        if self._active is not None:
            raise ConflictError(self._active.id, order_id)

    def _start_locked(self, order: Order) -> Order:
        started = order.transition(OrderStatus.PREPARING, self.clock())
        self.repository.update(started)
        head = self.scheduler.peek_next()
        if head is not None and head.id == order.id:
            self.scheduler.dequeue_next()
        else:
            self.scheduler.remove(order.id)
        self._active = started
        self._publish_locked()
        return started

    def _publish_locked(self) -> None:
        # enqueue under the lock so events leave in commit order
        self.notifier.publish(self.queries.queue_status())

    def _restore(self) -> None:
        """Rebuild scheduler, active slot and analytics from the repository."""
        orders = sorted(self.repository.all(), key=lambda o: o.created_at)
        finished = []
        for order in orders:
            self.analytics.total_orders += 1
            if order.status is OrderStatus.QUEUED:
                self.scheduler.enqueue(order)
            elif order.status is OrderStatus.PREPARING:
                if self._active is not None:
                    raise ConflictError(self._active.id, order.id)
                self._active = order
            else:
                finished.append(order)

        for order in sorted(finished, key=lambda o: o.finished_at or o.created_at):
            if order.status is OrderStatus.COMPLETED:
                self.estimator.record_preparation(order.prep_duration)
                self.analytics.record_completed(order)
            else:
                self.analytics.record_cancelled(order)
        self.analytics.observe_queue_length(len(self.scheduler))

        if orders:
            logger.info(
                "Restored %d orders (%d queued, %s preparing)",
                len(orders), len(self.scheduler), self._active.id if self._active else "none",
            )
