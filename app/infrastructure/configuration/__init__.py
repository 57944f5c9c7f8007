"""Infrastructure configuration module - public API.

This module provides centralized configuration management for the
notification service using Pydantic BaseSettings with domain-based
organization.

Exports:
    Settings: Main settings class (for testing/overrides)
    NotificationQueueSettings: Queue settings class (for testing)
    NotifySettings: GC Notify provider settings class (for testing)
    RedisSettings: Redis connection settings class (for testing)

Example:
    ```python
    from infrastructure.services import get_settings

    settings = get_settings()

    # Access settings
    api_url = settings.notify.NOTIFY_API_URL
    max_attempts = settings.queue.max_attempts

    # Check environment
    if settings.is_production:
        # Production-specific logic...
    ```
"""

from infrastructure.configuration.settings import Settings
from infrastructure.configuration.infrastructure.queue import NotificationQueueSettings
from infrastructure.configuration.integrations.notify import NotifySettings
from infrastructure.configuration.integrations.redis import RedisSettings

__all__ = ["Settings", "NotificationQueueSettings", "NotifySettings", "RedisSettings"]
