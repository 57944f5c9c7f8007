"""Test fixtures for notification delivery tests."""

from typing import List, Optional
from unittest.mock import MagicMock

import pytest

from infrastructure.notifications import (
    Channel,
    EmailChannel,
    InMemoryDeliveryLogStore,
    InMemoryPreferenceResolver,
    InMemoryRecipientResolver,
    LoggingRealtimePublisher,
    NotificationDispatcher,
    PushChannel,
    SMSChannel,
)
from infrastructure.operations import OperationResult
from infrastructure.resilience import CircuitBreaker
from tests.factories.notifications import make_contact, make_notification_job


class FakeEmailTransport:
    """EmailTransport double that counts calls."""

    def __init__(self):
        self.sent: List[dict] = []
        self.result: Optional[OperationResult] = None
        self.error: Optional[Exception] = None

    def send(self, to, subject, html_body, text_body):
        self.sent.append(
            {"to": to, "subject": subject, "html_body": html_body, "text_body": text_body}
        )
        if self.error:
            raise self.error
        return self.result or OperationResult.success(
            data={"message_id": f"email-{len(self.sent)}"}
        )


class FakeSMSTransport:
    """SMSTransport double that counts calls."""

    def __init__(self):
        self.sent: List[dict] = []
        self.result: Optional[OperationResult] = None
        self.error: Optional[Exception] = None

    def send(self, phone_number, body):
        self.sent.append({"phone_number": phone_number, "body": body})
        if self.error:
            raise self.error
        return self.result or OperationResult.success(
            data={"message_id": f"sms-{len(self.sent)}"}
        )


@pytest.fixture
def email_transport():
    return FakeEmailTransport()


@pytest.fixture
def sms_transport():
    return FakeSMSTransport()


@pytest.fixture
def publisher():
    """Logging publisher wrapped so tests can inspect publish calls."""
    return MagicMock(wraps=LoggingRealtimePublisher())


@pytest.fixture
def email_channel(email_transport):
    return EmailChannel(
        email_transport,
        client_url="https://app.example.com",
        sender_name="T3 Mechanical",
        circuit_breaker=CircuitBreaker(name="test_email", failure_threshold=3),
    )


@pytest.fixture
def sms_channel(sms_transport):
    return SMSChannel(
        sms_transport,
        client_url="https://app.example.com",
        signature="T3 Mechanical",
        circuit_breaker=CircuitBreaker(name="test_sms", failure_threshold=3),
    )


@pytest.fixture
def push_channel(publisher):
    return PushChannel(publisher)


@pytest.fixture
def recipients():
    return InMemoryRecipientResolver([make_contact()])


@pytest.fixture
def preferences():
    return InMemoryPreferenceResolver()


@pytest.fixture
def delivery_log():
    return InMemoryDeliveryLogStore()


@pytest.fixture
def dispatcher(email_channel, sms_channel, push_channel, recipients, preferences, delivery_log):
    """Dispatcher wired to fake transports and in-memory stores."""
    return NotificationDispatcher(
        channels={
            Channel.EMAIL: email_channel,
            Channel.SMS: sms_channel,
            Channel.PUSH: push_channel,
        },
        recipients=recipients,
        preferences=preferences,
        delivery_log=delivery_log,
    )


@pytest.fixture
def job_factory():
    return make_notification_job


@pytest.fixture
def contact_factory():
    return make_contact
