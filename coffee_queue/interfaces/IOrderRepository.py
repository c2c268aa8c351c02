from abc import ABC, abstractmethod
from typing import List, Optional

from coffee_queue.domain.models import Order


class IOrderRepository(ABC):
    """Logical order store. Orders are never deleted."""

    @abstractmethod
    def add(self, order: Order) -> None:
        pass

    @abstractmethod
    def update(self, order: Order) -> None:
        """Replace the stored record with the same id. Raises NotFoundError if absent."""
        pass

    @abstractmethod
    def get(self, order_id: str) -> Optional[Order]:
        pass

    @abstractmethod
    def all(self) -> List[Order]:
        pass

    @abstractmethod
    def by_customer(self, customer_name: str) -> List[Order]:
        """Case-insensitive name match, newest first."""
        pass
