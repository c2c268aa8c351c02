import logging
import threading
from datetime import datetime, timezone
from typing import Dict, List, Optional

from sqlalchemy import desc, func
from sqlalchemy.exc import SQLAlchemyError

from coffee_queue.domain.errors import NotFoundError
from coffee_queue.domain.models import Order, OrderStatus, Priority
from coffee_queue.infrastructure.database import OrderRecord
from coffee_queue.interfaces.IOrderRepository import IOrderRepository

logger = logging.getLogger(__name__)


def _name_key(customer_name: str) -> str:
    return (customer_name or "").strip().lower()


class InMemoryOrderRepository(IOrderRepository):

    def __init__(self):
        self._orders: Dict[str, Order] = {}
        self._lock = threading.Lock()

    def add(self, order: Order) -> None:
        with self._lock:
            if order.id in self._orders:
                raise ValueError(f"Duplicate order id: {order.id}")
            self._orders[order.id] = order

    def update(self, order: Order) -> None:
        with self._lock:
            if order.id not in self._orders:
                raise NotFoundError(order.id)
            self._orders[order.id] = order

    def get(self, order_id: str) -> Optional[Order]:
        return self._orders.get(order_id)

    def all(self) -> List[Order]:
        with self._lock:
            return list(self._orders.values())

    def by_customer(self, customer_name: str) -> List[Order]:
        key = _name_key(customer_name)
        matches = [o for o in self.all() if o.customer_name.lower() == key]
        return sorted(matches, key=lambda o: o.created_at, reverse=True)


def _as_utc(ts: Optional[datetime]) -> Optional[datetime]:
    if ts is None:
        return None
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


def _to_record(order: Order, record: Optional[OrderRecord] = None) -> OrderRecord:
    record = record or OrderRecord(id=order.id)
    record.customer_name = order.customer_name
    record.items = list(order.items)
    record.priority = order.priority.value
    record.status = order.status.value
    record.created_at = _as_utc(order.created_at)
    record.started_at = _as_utc(order.started_at)
    record.finished_at = _as_utc(order.finished_at)
    return record


def _to_order(record: OrderRecord) -> Order:
    return Order(
        id=record.id,
        customer_name=record.customer_name,
        items=tuple(record.items),
        priority=Priority.parse(record.priority),
        status=OrderStatus.parse(record.status),
        created_at=_as_utc(record.created_at),
        started_at=_as_utc(record.started_at),
        finished_at=_as_utc(record.finished_at),
    )


class SqlOrderRepository(IOrderRepository):
    """Order store backed by any SQLAlchemy engine. One session per call."""

    def __init__(self, session_factory):
        self.SessionLocal = session_factory

    def add(self, order: Order) -> None:
        session = self.SessionLocal()
        try:
            session.add(_to_record(order))
            session.commit()
        except SQLAlchemyError as e:
            logger.error("DB error adding order %s: %s", order.id, e)
            session.rollback()
            raise
        finally:
            session.close()

    def update(self, order: Order) -> None:
        session = self.SessionLocal()
        try:
            record = session.get(OrderRecord, order.id)
            if record is None:
                raise NotFoundError(order.id)
            _to_record(order, record)
            session.commit()
        except SQLAlchemyError as e:
            logger.error("DB error updating order %s: %s", order.id, e)
            session.rollback()
            raise
        finally:
            session.close()

    def get(self, order_id: str) -> Optional[Order]:
        session = self.SessionLocal()
        try:
            record = session.get(OrderRecord, order_id)
            return _to_order(record) if record is not None else None
        finally:
            session.close()

    def all(self) -> List[Order]:
        session = self.SessionLocal()
        try:
            records = session.query(OrderRecord).order_by(OrderRecord.created_at).all()
            return [_to_order(r) for r in records]
        finally:
            session.close()

    def by_customer(self, customer_name: str) -> List[Order]:
        session = self.SessionLocal()
        try:
            records = (
                session.query(OrderRecord)
                .filter(func.lower(OrderRecord.customer_name) == _name_key(customer_name))
                .order_by(desc(OrderRecord.created_at))
                .all()
            )
            return [_to_order(r) for r in records]
        finally:
            session.close()
