"""Shared fixtures for the notification service test suite."""

import pytest
import structlog

from infrastructure.configuration import NotifySettings
from infrastructure.logging import configure_logging
from tests.factories.notifications import (
    make_contact,
    make_job_request,
    make_notification_job,
)

configure_logging(log_level="CRITICAL", is_production=False)


@pytest.fixture(autouse=True)
def clean_log_context():
    """Keep contextvars bound by one test out of the next."""
    structlog.contextvars.clear_contextvars()
    yield
    structlog.contextvars.clear_contextvars()


@pytest.fixture
def notify_settings():
    """GC Notify settings with test credentials."""
    return NotifySettings(
        NOTIFY_API_URL="https://api.notification.example.com",
        NOTIFY_CLIENT_ID="test-client-id",
        NOTIFY_CLIENT_SECRET="test-secret",
        NOTIFY_EMAIL_TEMPLATE_ID="email-template",
        NOTIFY_SMS_TEMPLATE_ID="sms-template",
    )


@pytest.fixture
def notification_job():
    return make_notification_job()


@pytest.fixture
def job_request():
    return make_job_request()


@pytest.fixture
def contact():
    return make_contact()
