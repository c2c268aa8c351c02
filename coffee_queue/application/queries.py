"""Read-only projections over QueueService state."""
from datetime import datetime
from typing import TYPE_CHECKING, Dict, List, Optional

from coffee_queue.application.estimator import as_minutes
from coffee_queue.domain.errors import NotFoundError
from coffee_queue.domain.models import Order, OrderStatus

if TYPE_CHECKING:
    from coffee_queue.application.queue_service import QueueService


class QueryFacade:
    """Side-effect-free views. Each call holds the service lock for its whole
    duration, so a view never mixes state from before and after a mutation."""

    def __init__(self, service: "QueueService", page_size: int = 10, exposed_completions: int = 5):
        self.service = service
        self.page_size = page_size
        self.exposed_completions = exposed_completions

    def order_view(self, order: Order, positions: Dict[str, int], now: datetime) -> dict:
        """Wire form of an order plus its derived position and estimate."""
        position = positions.get(order.id) if order.status is OrderStatus.QUEUED else None
        estimate = self.service.estimator.estimate_for(order, position, self.service.active_order, now)
        view = order.to_dict()
        view["position_in_queue"] = position
        view["estimated_wait_time"] = as_minutes(estimate)
        return view

    def queue_status(self, limit: Optional[int] = None) -> dict:
        limit = self.page_size if limit is None else max(0, limit)
        service = self.service
        with service.lock:
            now = service.clock()
            ordered = service.scheduler.ordered()
            positions = {order.id: i for i, order in enumerate(ordered, start=1)}
            active = service.active_order
            queue_length = len(ordered)
            # what a customer ordering right now would wait
            wait = service.estimator.estimate_for_position(queue_length + 1, active, now)
            return {
                "queue_length": queue_length,
                "preparing_count": 1 if active is not None else 0,
                "estimated_wait_time": as_minutes(wait),
                "queue_orders": [self.order_view(o, positions, now) for o in ordered[:limit]],
                "preparing_orders": [self.order_view(active, positions, now)] if active else [],
            }

    def customer_orders(self, customer_name: str) -> List[dict]:
        service = self.service
        with service.lock:
            now = service.clock()
            positions = service.scheduler.positions()
            orders = service.repository.by_customer(customer_name)
            return [self.order_view(o, positions, now) for o in orders]

    def view_of(self, order: Order) -> dict:
        """View of an order the caller already holds, e.g. one a mutation just returned."""
        service = self.service
        with service.lock:
            return self.order_view(order, service.scheduler.positions(), service.clock())

    def get_order(self, order_id: str) -> dict:
        service = self.service
        with service.lock:
            order = service.repository.get(order_id)
            if order is None:
                raise NotFoundError(order_id)
            return self.order_view(order, service.scheduler.positions(), service.clock())

    def analytics(self) -> dict:
        service = self.service
        with service.lock:
            now = service.clock()
            aggregator = service.analytics
            recent = aggregator.recent_completions(self.exposed_completions)
            return {
                "stats": aggregator.stats(now),
                "queue_by_priority": aggregator.queue_by_priority(service.scheduler.count_by_priority()),
                "recent_completions": [self.order_view(o, {}, now) for o in recent],
            }
