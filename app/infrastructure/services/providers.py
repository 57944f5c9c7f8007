"""
Factory functions for dependency injection.

Provides application-scoped singleton providers for core infrastructure services.
"""

from functools import lru_cache

from infrastructure.configuration import Settings
from infrastructure.notifications.service import NotificationQueueService


@lru_cache
def get_settings() -> Settings:
    """
    Get application-scoped settings singleton.

    This is the single source of truth for settings across the entire application.
    The @lru_cache decorator ensures only ONE instance is created per process,
    even if called from multiple packages.

    Infrastructure packages should use this directly to ensure singleton consistency:
        from infrastructure.services.providers import get_settings
        settings = get_settings()

    Application code should use the DI type alias for testability:
        from infrastructure.services import SettingsDep
        @router.get("/version")
        def get_version(settings: SettingsDep):
            return {"version": settings.GIT_SHA}

    Returns:
        Settings: Cached settings instance loaded from environment.
    """
    return Settings()


@lru_cache
def get_notification_service() -> NotificationQueueService:
    """
    Get application-scoped notification queue service singleton.

    The queue, dispatcher, delivery log and worker pool are shared by the
    HTTP routes and the worker threads, so exactly one instance may exist
    per process.

    Returns:
        NotificationQueueService: Cached service built from application settings.

    Usage:
        @router.get("/stats")
        def stats(service: NotificationServiceDep):
            return service.stats().to_dict()
    """
    return NotificationQueueService.from_settings(get_settings())
