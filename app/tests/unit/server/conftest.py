"""Fixtures for server module unit tests."""

from unittest.mock import MagicMock

import pytest

from infrastructure.notifications import NotificationQueueService
from infrastructure.services import get_notification_service, get_settings


@pytest.fixture
def mock_service():
    """Notification service double that reports closed after close()."""
    service = MagicMock(spec=NotificationQueueService)
    service.close.return_value = True
    service.wait_closed.return_value = True
    return service


@pytest.fixture(autouse=True)
def reset_providers():
    yield
    if get_notification_service.cache_info().currsize:
        get_notification_service().close(timeout=0)
    get_notification_service.cache_clear()
    get_settings.cache_clear()
