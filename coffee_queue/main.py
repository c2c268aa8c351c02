import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response

from coffee_queue.application.queue_service import Clock, QueueService
from coffee_queue.core.config import Settings, settings
from coffee_queue.domain.errors import (
    ConflictError,
    EmptyQueueError,
    InvalidStateError,
    NotFoundError,
    QueueError,
    ValidationError,
)
from coffee_queue.infrastructure.database import create_session_factory
from coffee_queue.infrastructure.notification_service import NotificationService
from coffee_queue.infrastructure.repositories.order_repository import (
    InMemoryOrderRepository,
    SqlOrderRepository,
)
from coffee_queue.interfaces import queue_routes
from coffee_queue.interfaces.IOrderRepository import IOrderRepository

logger = logging.getLogger(__name__)

ERROR_STATUS_CODES = {
    ValidationError: 400,
    NotFoundError: 404,
    InvalidStateError: 409,
    ConflictError: 409,
    EmptyQueueError: 204,
}


async def queue_error_handler(request: Request, exc: QueueError) -> Response:
    """Map QueueError subclasses to HTTP responses."""
    status_code = ERROR_STATUS_CODES.get(type(exc), 500)
    if status_code == 204:
        return Response(status_code=204)
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "error": str(exc), "error_type": type(exc).__name__},
    )


def build_repository(config: Settings) -> IOrderRepository:
    if config.DATABASE_URL:
        session_factory = create_session_factory(
            config.DATABASE_URL,
            retries=config.DB_CONNECT_RETRIES,
            wait_seconds=config.DB_RETRY_WAIT_SECONDS,
        )
        return SqlOrderRepository(session_factory)
    logger.info("DATABASE_URL not set, keeping orders in memory")
    return InMemoryOrderRepository()


@asynccontextmanager
async def lifespan(app: FastAPI):
    app.state.notifier.start()
    yield
    app.state.notifier.stop()


def create_app(config: Settings = settings, clock: Clock | None = None) -> FastAPI:
    """Composition root: wire store, notifier and queue service into the app."""
    logging.basicConfig(
        level=config.LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    notifier = NotificationService(
        redis_url=config.REDIS_URL,
        channel=config.REDIS_CHANNEL,
        max_pending=config.MAX_PENDING_EVENTS,
    )
    service = QueueService.from_settings(config, build_repository(config), notifier, clock=clock)

    app = FastAPI(title=config.PROJECT_NAME, lifespan=lifespan)
    app.state.settings = config
    app.state.notifier = notifier
    app.state.queue_service = service

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.CORS_ORIGINS,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(QueueError, queue_error_handler)
    app.include_router(queue_routes.router)

    @app.get("/")
    def health_check():
        status = "active" if notifier.running else "degraded"
        return {"status": status, "system": config.PROJECT_NAME}

    return app


app = create_app()


def run() -> None:
    """Console entry point: serve the app with uvicorn."""
    import uvicorn

    uvicorn.run(
        "coffee_queue.main:app",
        host=settings.HOST,
        port=settings.PORT,
        workers=1,  # queue state lives in this process
    )
