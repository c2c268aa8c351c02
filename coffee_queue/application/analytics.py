"""
AnalyticsAggregator: running statistics over the order lifecycle.

Mutated only from inside QueueService's critical section, so every reader
that holds the same lock sees a consistent snapshot.
"""
from collections import Counter, deque
from datetime import date, datetime, timedelta
from typing import Deque, Dict, List

import pytz

from coffee_queue.domain.models import Order, OrderStatus, Priority


class AnalyticsAggregator:

    def __init__(self, tz_name: str = "UTC", recent_capacity: int = 20):
        self.timezone = pytz.timezone(tz_name)
        self.total_orders = 0
        self.cancelled_total = 0
        self.peak_queue_length = 0
        self._completed_total = 0
        self._wait_total = timedelta()
        self._completed_by_day: Counter = Counter()
        self._recent: Deque[Order] = deque(maxlen=recent_capacity)

    # -------------------- events --------------------

    def record_created(self, order: Order, queue_length: int) -> None:
        self.total_orders += 1
        self.observe_queue_length(queue_length)

    def observe_queue_length(self, queue_length: int) -> None:
        if queue_length > self.peak_queue_length:
            self.peak_queue_length = queue_length

    def record_completed(self, order: Order) -> None:
        if order.status is not OrderStatus.COMPLETED or order.finished_at is None:
            raise ValueError(f"Order {order.id} is not completed")
        self._completed_total += 1
        self._wait_total += order.wait_duration
        self._completed_by_day[self.local_day(order.finished_at)] += 1
        self._recent.appendleft(order)

    def record_cancelled(self, order: Order) -> None:
        self.cancelled_total += 1

    # -------------------- reads --------------------

    def local_day(self, ts: datetime) -> date:
        return ts.astimezone(self.timezone).date()

    def completed_today(self, now: datetime) -> int:
        return self._completed_by_day[self.local_day(now)]

    @property
    def completed_total(self) -> int:
        return self._completed_total

    def average_wait_minutes(self) -> float:
        if not self._completed_total:
            return 0.0
        mean = self._wait_total / self._completed_total
        return round(mean.total_seconds() / 60, 1)

    def recent_completions(self, limit: int | None = None) -> List[Order]:
        recent = list(self._recent)
        return recent if limit is None else recent[:limit]

    def stats(self, now: datetime) -> Dict[str, float]:
        return {
            "total_orders": self.total_orders,
            "completed_today": self.completed_today(now),
            "average_wait_time": self.average_wait_minutes(),
            "peak_queue_length": self.peak_queue_length,
            "completed_total": self._completed_total,
            "cancelled_total": self.cancelled_total,
        }

    @staticmethod
    def queue_by_priority(counts: Dict[Priority, int]) -> Dict[str, int]:
        return {priority.value: counts.get(priority, 0) for priority in Priority}
