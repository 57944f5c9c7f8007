"""Factory for creating job queues based on configuration."""

from typing import TYPE_CHECKING, Optional, Type

from pydantic import BaseModel

from infrastructure.logging import get_module_logger
from infrastructure.queue.clock import Clock
from infrastructure.queue.config import QueueConfig
from infrastructure.queue.redis_store import RedisJobQueue
from infrastructure.queue.store import InMemoryJobQueue, JobQueue
from integrations.redis import get_redis_client

if TYPE_CHECKING:
    from infrastructure.configuration import Settings

logger = get_module_logger()


def create_job_queue(
    settings: "Settings",
    job_type: Type[BaseModel],
    clock: Optional[Clock] = None,
    backend: Optional[str] = None,
) -> JobQueue:
    """Factory to create the job queue selected by configuration.

    Args:
        settings: Application settings (queue and redis sections are read)
        job_type: Pydantic model of the queued jobs, used to reload them from Redis
        clock: Optional time source override
        backend: Optional backend override (memory, redis).
                If None, uses settings.queue.backend

    Returns:
        Appropriate JobQueue implementation

    Raises:
        ValueError: If unknown backend specified

    Examples:
        >>> queue = create_job_queue(settings, NotificationJob)  # Uses QUEUE_BACKEND
        >>> queue = create_job_queue(settings, NotificationJob, backend="memory")
    """
    backend = backend or settings.queue.backend
    config = QueueConfig.from_settings(settings.queue)

    if backend == "memory":
        logger.info("creating_in_memory_job_queue")
        return InMemoryJobQueue(config, clock=clock)

    elif backend == "redis":
        logger.info(
            "creating_redis_job_queue",
            host=settings.redis.REDIS_HOST,
            key_prefix=settings.queue.redis_key_prefix,
        )
        return RedisJobQueue(
            get_redis_client(settings.redis),
            job_type=job_type,
            config=config,
            clock=clock,
            key_prefix=settings.queue.redis_key_prefix,
        )

    else:
        raise ValueError(f"Unknown queue backend: {backend}. Supported: memory, redis")
