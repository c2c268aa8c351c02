"""Typed failures raised by the queue engine."""


def _tag(status) -> str:
    return getattr(status, "value", status)


class QueueError(Exception):
    """Base exception for all queue engine errors."""

    pass


class ValidationError(QueueError):
    """Raised when an order submission is malformed."""

    def __init__(self, message: str, field: str | None = None):
        self.field = field
        super().__init__(message)


class NotFoundError(QueueError):
    """Raised when an order id doesn't exist."""

    def __init__(self, order_id: str):
        self.order_id = order_id
        super().__init__(f"Order not found: {order_id}")


class InvalidStateError(QueueError):
    """Raised when an operation is not legal for the order's current status."""

    def __init__(self, order_id: str, current, attempted=None):
        self.order_id = order_id
        self.current = current
        self.attempted = attempted
        msg = f"Order {order_id} is {_tag(current)}"
        if attempted is not None:
            msg = f"{msg} and cannot become {_tag(attempted)}"
        super().__init__(msg)


class ConflictError(QueueError):
    """Raised when starting preparation while another order holds the slot."""

    def __init__(self, active_order_id: str, order_id: str | None = None):
        self.active_order_id = active_order_id
        self.order_id = order_id
        super().__init__(f"Order {active_order_id} is already being prepared")


class EmptyQueueError(QueueError):
    """Raised when pulling the next order from an empty queue."""

    def __init__(self):
        super().__init__("No orders in queue")
