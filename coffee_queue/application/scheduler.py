"""
PriorityScheduler: total ordering over QUEUED orders.

Ranking is (priority rank desc, created_at asc), with an insertion sequence
as the last tie-break so equal timestamps stay FIFO. Entries live in a binary
heap; removal of an arbitrary order only drops it from the live index and the
stale heap entry is discarded when it surfaces.

Not thread-safe on its own: QueueService serializes every call.
"""
import heapq
import itertools
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from coffee_queue.domain.errors import EmptyQueueError, InvalidStateError, NotFoundError
from coffee_queue.domain.models import Order, OrderStatus, Priority

Entry = Tuple[int, datetime, int, str]


class PriorityScheduler:

    def __init__(self) -> None:
        self._heap: List[Entry] = []
        self._live: Dict[str, Entry] = {}
        self._orders: Dict[str, Order] = {}
        self._seq = itertools.count()

    def __len__(self) -> int:
        return len(self._live)

    def __contains__(self, order_id: str) -> bool:
        return order_id in self._live

    def get(self, order_id: str) -> Optional[Order]:
        return self._orders.get(order_id)

    def enqueue(self, order: Order) -> None:
        """Insert a QUEUED order by the ranking rule. O(log n)."""
        if order.status is not OrderStatus.QUEUED:
            raise InvalidStateError(order.id, order.status)
        if order.id in self._live:
            raise ValueError(f"Order {order.id} is already queued")
        entry = (-order.priority.rank, order.created_at, next(self._seq), order.id)
        heapq.heappush(self._heap, entry)
        self._live[order.id] = entry
        self._orders[order.id] = order

    def peek_next(self) -> Optional[Order]:
        self._discard_stale()
        if not self._heap:
            return None
        return self._orders[self._heap[0][3]]

    def dequeue_next(self) -> Order:
        self._discard_stale()
        if not self._heap:
            raise EmptyQueueError()
        _, _, _, order_id = heapq.heappop(self._heap)
        del self._live[order_id]
        return self._orders.pop(order_id)

    def remove(self, order_id: str) -> Order:
        if order_id not in self._live:
            raise NotFoundError(order_id)
        del self._live[order_id]
        order = self._orders.pop(order_id)
        # compact once stale entries dominate the heap
        if len(self._heap) > 2 * len(self._live) + 16:
            self._heap = list(self._live.values())
            heapq.heapify(self._heap)
        return order

    def ordered(self) -> List[Order]:
        """Queued orders in rank order (position 1 first)."""
        return [self._orders[entry[3]] for entry in sorted(self._live.values())]

    def positions(self) -> Dict[str, int]:
        return {order.id: position for position, order in enumerate(self.ordered(), start=1)}

    def position_of(self, order_id: str) -> int:
        entry = self._live.get(order_id)
        if entry is None:
            raise NotFoundError(order_id)
        return 1 + sum(1 for other in self._live.values() if other < entry)

    def count_by_priority(self) -> Dict[Priority, int]:
        counts = {priority: 0 for priority in Priority}
        for order in self._orders.values():
            counts[order.priority] += 1
        return counts

    def _discard_stale(self) -> None:
        while self._heap and self._live.get(self._heap[0][3]) != self._heap[0]:
            heapq.heappop(self._heap)
