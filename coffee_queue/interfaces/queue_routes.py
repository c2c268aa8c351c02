import asyncio
import logging

from fastapi import APIRouter, Query, Request, WebSocket, WebSocketDisconnect
from starlette.concurrency import run_in_threadpool

from coffee_queue.infrastructure.notification_service import QUEUE_UPDATED, AsyncQueueSubscriber
from coffee_queue.interfaces.schemas import (
    AnalyticsResponse,
    CustomerOrdersResponse,
    OrderActionResponse,
    OrderCreatedResponse,
    OrderCreateRequest,
    OrderLookupResponse,
    QueueStatusResponse,
)

router = APIRouter()
logger = logging.getLogger(__name__)

# Handlers are plain `def`: FastAPI runs them in its threadpool, and the
# queue service serializes them with a thread lock.


@router.post("/api/orders", response_model=OrderCreatedResponse, status_code=201)
def submit_order(payload: OrderCreateRequest, request: Request):
    service = request.app.state.queue_service
    with service.lock:
        order = service.create(payload.customer_name, payload.items, payload.priority)
        view = service.queries.view_of(order)
    message = "Order placed successfully!"
    if view["position_in_queue"] is not None:
        message = f"{message} Your position in queue: {view['position_in_queue']}"
    return {"success": True, "order_id": order.id, "message": message, "order": view}


@router.get("/api/queue/status", response_model=QueueStatusResponse)
def queue_status(request: Request, limit: int | None = Query(default=None, ge=0, le=500)):
    return request.app.state.queue_service.queries.queue_status(limit)


@router.get("/api/customer/{customer_name}/orders", response_model=CustomerOrdersResponse)
def customer_orders(customer_name: str, request: Request):
    orders = request.app.state.queue_service.queries.customer_orders(customer_name)
    return {"customer_name": customer_name, "orders": orders}


def _apply(service, action, *args) -> dict:
    # the view is taken in the same critical section as the mutation
    with service.lock:
        return service.queries.view_of(action(*args))


@router.post("/api/orders/next", response_model=OrderActionResponse)
def pull_next_order(request: Request):
    """Staff: claim the next order. Empty queue -> 204 (see error handler)."""
    service = request.app.state.queue_service
    view = _apply(service, service.pull_next)
    return {"success": True, "message": "Order is now preparing", "order": view}


@router.get("/api/orders/{order_id}", response_model=OrderLookupResponse)
def get_order(order_id: str, request: Request):
    return {"order": request.app.state.queue_service.queries.get_order(order_id)}


@router.post("/api/orders/{order_id}/start", response_model=OrderActionResponse)
def start_order(order_id: str, request: Request):
    service = request.app.state.queue_service
    view = _apply(service, service.begin_preparing, order_id)
    return {"success": True, "message": "Order is now preparing", "order": view}


@router.post("/api/orders/{order_id}/complete", response_model=OrderActionResponse)
def complete_order(order_id: str, request: Request):
    service = request.app.state.queue_service
    view = _apply(service, service.complete, order_id)
    return {"success": True, "message": "Order completed", "order": view}


@router.delete("/api/orders/{order_id}/cancel", response_model=OrderActionResponse)
def cancel_order(order_id: str, request: Request):
    service = request.app.state.queue_service
    view = _apply(service, service.cancel, order_id)
    return {"success": True, "message": "Order cancelled", "order": view}


@router.get("/api/analytics", response_model=AnalyticsResponse)
def analytics(request: Request):
    return request.app.state.queue_service.queries.analytics()


@router.websocket("/ws/queue")
async def queue_updates(websocket: WebSocket):
    """
    Live queue_updated stream. Sends the current snapshot on connect, then
    every broadcast. Client messages (e.g. "join_queue_room") are ignored.
    """
    await websocket.accept()
    service = websocket.app.state.queue_service
    notifier = websocket.app.state.notifier
    buffer = websocket.app.state.settings.SUBSCRIBER_BUFFER

    subscriber = AsyncQueueSubscriber(asyncio.get_running_loop(), maxsize=buffer)
    token = notifier.subscribe(subscriber)

    async def forward():
        snapshot = await run_in_threadpool(service.queries.queue_status)
        await websocket.send_json({"event": QUEUE_UPDATED, "data": snapshot})
        while True:
            await websocket.send_json(await subscriber.get())

    async def watch_client():
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                return

    tasks = [asyncio.create_task(forward()), asyncio.create_task(watch_client())]
    try:
        done, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
        for task in pending:
            task.cancel()
        for task in done:
            if not task.cancelled() and task.exception() is not None:
                if not isinstance(task.exception(), WebSocketDisconnect):
                    logger.warning("Queue subscriber %d closed: %s", token, task.exception())
    finally:
        for task in tasks:
            task.cancel()
        notifier.unsubscribe(token)
        logger.info("Queue subscriber %d disconnected", token)
