"""Fixtures for API route tests."""

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from api.dependencies.rate_limits import get_limiter, setup_rate_limiter
from api.router import api_router
from infrastructure.notifications import (
    Channel,
    EmailChannel,
    InMemoryDeliveryLogStore,
    InMemoryPreferenceResolver,
    InMemoryRecipientResolver,
    LoggingRealtimePublisher,
    NotificationDispatcher,
    NotificationQueueService,
    PushChannel,
)
from infrastructure.operations import OperationResult
from infrastructure.queue import FakeClock, InMemoryJobQueue
from infrastructure.services import get_notification_service, get_settings
from tests.factories.notifications import make_contact


class RecordingEmailTransport:
    def __init__(self):
        self.sent = []

    def send(self, to, subject, html_body, text_body):
        self.sent.append(to)
        return OperationResult.success(data={"message_id": f"email-{len(self.sent)}"})


@pytest.fixture(autouse=True)
def reset_rate_limits():
    get_limiter().reset()
    yield
    get_limiter().reset()


@pytest.fixture
def queue_clock():
    return FakeClock()


@pytest.fixture
def notification_service(queue_clock):
    """Service over in-memory stores with workers left stopped."""
    delivery_log = InMemoryDeliveryLogStore()
    dispatcher = NotificationDispatcher(
        channels={
            Channel.EMAIL: EmailChannel(RecordingEmailTransport()),
            Channel.PUSH: PushChannel(LoggingRealtimePublisher()),
        },
        recipients=InMemoryRecipientResolver([make_contact()]),
        preferences=InMemoryPreferenceResolver(),
        delivery_log=delivery_log,
    )
    service = NotificationQueueService(
        queue=InMemoryJobQueue(clock=queue_clock),
        dispatcher=dispatcher,
        delivery_log=delivery_log,
    )
    yield service
    service.close(timeout=0)


@pytest.fixture
def app(notification_service):
    app = FastAPI()
    setup_rate_limiter(app)
    app.include_router(api_router)
    app.dependency_overrides[get_notification_service] = lambda: notification_service
    yield app
    app.dependency_overrides.clear()
    get_settings.cache_clear()


@pytest.fixture
def client(app):
    return TestClient(app)
