"""Infrastructure settings __init__ - exports all infrastructure settings."""

from infrastructure.configuration.infrastructure.queue import NotificationQueueSettings

__all__ = [
    "NotificationQueueSettings",
]
