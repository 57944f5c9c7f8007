"""Redis connection management for the persistent job queue."""

from .client import close_redis_client, get_redis_client, health_check

__all__ = [
    "get_redis_client",
    "close_redis_client",
    "health_check",
]
