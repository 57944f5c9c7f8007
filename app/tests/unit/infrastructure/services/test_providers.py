"""
Unit tests for dependency injection providers.

Tests cover:
- get_settings() and get_notification_service() caching behavior
- SettingsDep and NotificationServiceDep with FastAPI dependency injection
- Dependency override pattern for testing
"""

import pytest
from unittest.mock import MagicMock
from fastapi.testclient import TestClient
from fastapi import FastAPI

from infrastructure.configuration import Settings
from infrastructure.notifications import NotificationQueueService
from infrastructure.queue import QueueStats
from infrastructure.services.dependencies import NotificationServiceDep, SettingsDep
from infrastructure.services.providers import get_notification_service, get_settings


@pytest.fixture(autouse=True)
def cleanup_provider_cache():
    """Clear provider caches after each test."""
    yield
    if get_notification_service.cache_info().currsize:
        get_notification_service().close(timeout=0)
    get_notification_service.cache_clear()
    get_settings.cache_clear()


class TestGetSettings:
    """Tests for get_settings() provider function."""

    def test_returns_cached_settings_instance(self):
        result1 = get_settings()
        result2 = get_settings()

        assert isinstance(result1, Settings)
        assert result1 is result2

    def test_cache_can_be_cleared(self):
        instance1 = get_settings()
        get_settings.cache_clear()

        assert get_settings() is not instance1


class TestGetNotificationService:
    """Tests for get_notification_service() provider function."""

    def test_returns_single_service_per_process(self):
        service = get_notification_service()

        assert isinstance(service, NotificationQueueService)
        assert get_notification_service() is service

    def test_workers_are_not_started_by_provider(self):
        assert not get_notification_service().workers.is_running

    def test_uses_queue_settings(self, monkeypatch):
        monkeypatch.setenv("QUEUE_MAX_ATTEMPTS", "7")
        get_settings.cache_clear()

        assert get_notification_service().queue.config.max_attempts == 7


class TestDependencyOverridePattern:
    """Tests for FastAPI dependency override pattern."""

    def test_settings_dep_with_dependency_override(self):
        app = FastAPI()

        @app.get("/config")
        def get_config(settings: SettingsDep) -> dict:
            return {"sha": settings.GIT_SHA}

        mock_settings = MagicMock(spec=Settings)
        mock_settings.GIT_SHA = "abc123"
        app.dependency_overrides[get_settings] = lambda: mock_settings

        with TestClient(app) as client:
            response = client.get("/config")

        assert response.json() == {"sha": "abc123"}
        app.dependency_overrides.clear()

    def test_notification_service_dep_with_dependency_override(self):
        app = FastAPI()

        @app.get("/stats")
        def stats(service: NotificationServiceDep) -> dict:
            return service.stats().to_dict()

        mock_service = MagicMock(spec=NotificationQueueService)
        mock_service.stats.return_value = QueueStats(waiting=2)
        app.dependency_overrides[get_notification_service] = lambda: mock_service

        with TestClient(app) as client:
            response = client.get("/stats")

        assert response.json()["waiting"] == 2
        assert response.json()["total"] == 2
        app.dependency_overrides.clear()
