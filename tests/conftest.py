"""Pytest fixtures for coffee_queue tests."""

from datetime import datetime, timedelta, timezone

import pytest

from coffee_queue.application.analytics import AnalyticsAggregator
from coffee_queue.application.estimator import WaitTimeEstimator
from coffee_queue.application.queue_service import QueueService
from coffee_queue.core.config import Settings
from coffee_queue.infrastructure.notification_service import NotificationService
from coffee_queue.infrastructure.repositories.order_repository import InMemoryOrderRepository


class FakeClock:
    """Manually advanced clock; each read can optionally tick forward."""

    def __init__(self, start: datetime, tick: timedelta = timedelta(0)):
        self.now = start
        self.tick = tick

    def __call__(self) -> datetime:
        current = self.now
        self.now = self.now + self.tick
        return current

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def clock():
    return FakeClock(datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc))


@pytest.fixture
def notifier():
    """Notifier without a dispatcher thread; tests call drain()."""
    return NotificationService()


@pytest.fixture
def repository():
    return InMemoryOrderRepository()


@pytest.fixture
def make_service(repository, notifier, clock):
    def factory(**kwargs):
        kwargs.setdefault("repository", repository)
        kwargs.setdefault("notifier", notifier)
        kwargs.setdefault("clock", clock)
        kwargs.setdefault("estimator", WaitTimeEstimator(default_prep=timedelta(minutes=5)))
        kwargs.setdefault("analytics", AnalyticsAggregator(tz_name="UTC", recent_capacity=20))
        return QueueService(**kwargs)

    return factory


@pytest.fixture
def service(make_service):
    return make_service()


@pytest.fixture
def test_settings():
    return Settings(_env_file=None, DATABASE_URL=None, REDIS_URL=None, TIMEZONE="UTC")


@pytest.fixture
def api_client(test_settings, clock):
    """TestClient with lifespan running, so the dispatcher thread is live."""
    from fastapi.testclient import TestClient

    from coffee_queue.main import create_app

    app = create_app(test_settings, clock=clock)
    with TestClient(app) as client:
        yield client
