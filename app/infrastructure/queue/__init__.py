"""Job queue infrastructure.

Provides a deduplicating, priority-ordered, rate-limited job queue with
exponential backoff retries, in memory or in Redis, and a worker pool
that drains it.

Example:
    from infrastructure.queue import InMemoryJobQueue, QueueConfig, WorkerPool

    queue = InMemoryJobQueue(QueueConfig())
    pool = WorkerPool(queue, handler=dispatcher.process, concurrency=4)
    pool.start()
"""

from infrastructure.queue.clock import Clock, FakeClock, SystemClock
from infrastructure.queue.config import QueueConfig
from infrastructure.queue.exceptions import (
    EntryNotFoundError,
    JobValidationError,
    QueueClosedError,
    QueueError,
)
from infrastructure.queue.models import JobState, QueueEntry, QueueJob, QueueStats
from infrastructure.queue.rate_limit import SlidingWindowRateLimiter
from infrastructure.queue.store import InMemoryJobQueue, JobQueue
from infrastructure.queue.redis_store import RedisJobQueue
from infrastructure.queue.factory import create_job_queue
from infrastructure.queue.worker import JobHandler, WorkerPool

__all__ = [
    "Clock",
    "FakeClock",
    "SystemClock",
    "QueueConfig",
    "QueueError",
    "JobValidationError",
    "QueueClosedError",
    "EntryNotFoundError",
    "JobState",
    "QueueEntry",
    "QueueJob",
    "QueueStats",
    "SlidingWindowRateLimiter",
    "JobQueue",
    "InMemoryJobQueue",
    "RedisJobQueue",
    "create_job_queue",
    "JobHandler",
    "WorkerPool",
]
