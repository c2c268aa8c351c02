import math
from collections import deque
from datetime import datetime, timedelta
from typing import Deque, Optional

from coffee_queue.domain.models import Order, OrderStatus


def as_minutes(delta: timedelta) -> int:
    """Whole minutes, rounded up. Sub-second noise is ignored."""
    seconds = max(0, round(delta.total_seconds()))
    return math.ceil(seconds / 60)


class WaitTimeEstimator:
    """
    estimate = remaining time of the PREPARING order + (position - 1) * average prep duration

    The average comes from the most recent completed preparations and falls
    back to ``default_prep`` until there is history. Nothing is memoized:
    callers pass the current position and active order on every read.
    """

    def __init__(self, default_prep: timedelta = timedelta(minutes=5), history_window: int = 20):
        if default_prep <= timedelta(0):
            raise ValueError("default_prep must be positive")
        self.default_prep = default_prep
        self._history: Deque[timedelta] = deque(maxlen=max(1, history_window))

    def record_preparation(self, duration: Optional[timedelta]) -> None:
        if duration is None or duration < timedelta(0):
            return
        self._history.append(duration)

    def average_prep_duration(self) -> timedelta:
        if not self._history:
            return self.default_prep
        return sum(self._history, timedelta()) / len(self._history)

    def remaining_time(self, preparing: Optional[Order], now: datetime) -> timedelta:
        if preparing is None or preparing.started_at is None:
            return timedelta(0)
        elapsed = now - preparing.started_at
        return max(timedelta(0), self.average_prep_duration() - elapsed)

    def estimate_for_position(self, position: int, preparing: Optional[Order], now: datetime) -> timedelta:
        if position < 1:
            raise ValueError("position is 1-based")
        return self.remaining_time(preparing, now) + (position - 1) * self.average_prep_duration()

    def estimate_for(
        self,
        order: Order,
        position: Optional[int],
        preparing: Optional[Order],
        now: datetime,
    ) -> timedelta:
        if order.status is OrderStatus.PREPARING:
            return self.remaining_time(order, now)
        if order.status is OrderStatus.QUEUED and position is not None:
            return self.estimate_for_position(position, preparing, now)
        return timedelta(0)
