import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Dict, FrozenSet, Iterable, Optional, Tuple

from coffee_queue.domain.errors import InvalidStateError, ValidationError


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Priority(str, Enum):
    VIP = "VIP"
    MOBILE_ORDER = "MOBILE_ORDER"
    REGULAR = "REGULAR"

    @property
    def rank(self) -> int:
        """Higher rank is served first."""
        return PRIORITY_RANK[self]

    @classmethod
    def parse(cls, value) -> "Priority":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().upper())
        except ValueError:
            raise ValidationError(f"Unknown priority: {value!r}", field="priority") from None


PRIORITY_RANK: Dict[Priority, int] = {
    Priority.VIP: 3,
    Priority.MOBILE_ORDER: 2,
    Priority.REGULAR: 1,
}


class OrderStatus(str, Enum):
    QUEUED = "queued"
    PREPARING = "preparing"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return not TRANSITIONS[self]

    @classmethod
    def parse(cls, value) -> "OrderStatus":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValidationError(f"Unknown status: {value!r}", field="status") from None


# Lifecycle: QUEUED -> PREPARING -> {COMPLETED, CANCELLED}, QUEUED -> CANCELLED
TRANSITIONS: Dict[OrderStatus, FrozenSet[OrderStatus]] = {
    OrderStatus.QUEUED: frozenset({OrderStatus.PREPARING, OrderStatus.CANCELLED}),
    OrderStatus.PREPARING: frozenset({OrderStatus.COMPLETED, OrderStatus.CANCELLED}),
    OrderStatus.COMPLETED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
}


def _isoformat(ts: Optional[datetime]) -> Optional[str]:
    return ts.isoformat() if ts is not None else None


@dataclass(frozen=True)
class Order:
    """A customer order.

    Instances are immutable: every lifecycle step returns a new Order via
    ``transition``. Queue position and wait estimate are not stored here,
    they are derived from the scheduler on read.
    """

    id: str
    customer_name: str
    items: Tuple[str, ...]
    priority: Priority
    status: OrderStatus = OrderStatus.QUEUED
    created_at: datetime = field(default_factory=utcnow)
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    @classmethod
    def new(
        cls,
        customer_name: str,
        items: Iterable[str],
        priority="REGULAR",
        created_at: Optional[datetime] = None,
    ) -> "Order":
        name = (customer_name or "").strip()
        if not name:
            raise ValidationError("customer_name must not be empty", field="customer_name")
        if items is None or isinstance(items, str):
            raise ValidationError("items must be a list of item names", field="items")
        cleaned = tuple(str(item).strip() for item in items)
        if not cleaned:
            raise ValidationError("At least one item is required", field="items")
        if not all(cleaned):
            raise ValidationError("Item names must not be blank", field="items")

        return cls(
            id=uuid.uuid4().hex,
            customer_name=name,
            items=cleaned,
            priority=Priority.parse(priority),
            created_at=created_at or utcnow(),
        )

    def transition(self, target: OrderStatus, at: datetime) -> "Order":
        if target not in TRANSITIONS[self.status]:
            raise InvalidStateError(self.id, self.status, target)
        if target is OrderStatus.PREPARING:
            return replace(self, status=target, started_at=at)
        return replace(self, status=target, finished_at=at)

    @property
    def wait_duration(self) -> Optional[timedelta]:
        """Time from submission to completion."""
        if self.status is not OrderStatus.COMPLETED or self.finished_at is None:
            return None
        return self.finished_at - self.created_at

    @property
    def prep_duration(self) -> Optional[timedelta]:
        if self.status is not OrderStatus.COMPLETED or self.started_at is None or self.finished_at is None:
            return None
        return self.finished_at - self.started_at

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "customer_name": self.customer_name,
            "items": list(self.items),
            "priority": self.priority.value,
            "status": self.status.value,
            "created_at": _isoformat(self.created_at),
            "started_at": _isoformat(self.started_at),
            "finished_at": _isoformat(self.finished_at),
        }
