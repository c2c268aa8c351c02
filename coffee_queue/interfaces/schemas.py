from typing import List, Optional

from pydantic import BaseModel, Field


class OrderCreateRequest(BaseModel):
    # Emptiness is checked by the domain so it surfaces as a ValidationError (400),
    # not as a request-parsing failure.
    customer_name: str = ""
    items: List[str] = Field(default_factory=list)
    priority: str = "REGULAR"


class OrderSchema(BaseModel):
    id: str
    customer_name: str
    items: List[str]
    priority: str
    status: str
    created_at: str
    started_at: Optional[str] = None
    finished_at: Optional[str] = None
    position_in_queue: Optional[int] = None
    estimated_wait_time: int = 0


class OrderCreatedResponse(BaseModel):
    success: bool = True
    order_id: str
    message: str
    order: OrderSchema


class OrderActionResponse(BaseModel):
    success: bool = True
    message: str = ""
    order: OrderSchema


class OrderLookupResponse(BaseModel):
    order: OrderSchema


class QueueStatusResponse(BaseModel):
    queue_length: int
    preparing_count: int
    estimated_wait_time: int
    queue_orders: List[OrderSchema]
    preparing_orders: List[OrderSchema]


class CustomerOrdersResponse(BaseModel):
    customer_name: str
    orders: List[OrderSchema]


class StatsSchema(BaseModel):
    total_orders: int
    completed_today: int
    average_wait_time: float
    peak_queue_length: int
    completed_total: int
    cancelled_total: int


class QueueByPrioritySchema(BaseModel):
    VIP: int = 0
    MOBILE_ORDER: int = 0
    REGULAR: int = 0


class AnalyticsResponse(BaseModel):
    stats: StatsSchema
    queue_by_priority: QueueByPrioritySchema
    recent_completions: List[OrderSchema]
