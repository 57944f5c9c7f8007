"""Notification queue infrastructure settings."""

from pydantic import Field

from infrastructure.configuration.base import InfrastructureSettings


class NotificationQueueSettings(InfrastructureSettings):
    """Notification delivery queue configuration.

    Controls admission, throughput, retry and retention behaviour of the
    notification job queue and the size of the worker pool draining it.

    Environment Variables:
        QUEUE_BACKEND: Queue storage - 'memory' or 'redis' (default: memory)
        QUEUE_REDIS_KEY_PREFIX: Namespace for queue keys in Redis
        QUEUE_MAX_ATTEMPTS: Processing attempts before a job is failed (default: 3)
        QUEUE_BACKOFF_BASE_SECONDS: First retry delay (default: 2s)
        QUEUE_BACKOFF_MAX_SECONDS: Cap for the exponential delay (default: 3600s)
        QUEUE_RATE_LIMIT_MAX: Claims admitted per window (default: 100)
        QUEUE_RATE_LIMIT_WINDOW_SECONDS: Rate limit window (default: 60s)
        QUEUE_COMPLETED_RETENTION_SECONDS: Completed job retention (default: 7 days)
        QUEUE_COMPLETED_RETENTION_COUNT: Max completed jobs kept (default: 1000)
        QUEUE_CLAIM_LEASE_SECONDS: Lease before an active job is stalled (default: 300s)
        QUEUE_CONCURRENCY: Worker threads (default: 4)
        QUEUE_POLL_INTERVAL_SECONDS: Idle wait between claim attempts (default: 1s)
        QUEUE_SHUTDOWN_TIMEOUT_SECONDS: Drain timeout on close (default: 30s)

    Queue Backends:
        - memory: In-process queue (development, testing, single instance)
        - redis: Redis-backed queue shared by every worker process; waiting,
          delayed and failed jobs survive restarts

    Exponential Backoff:
        Delay calculation: min(base_delay * (2 ^ (attempt - 1)), max_delay)

        Example with defaults (base=2s):
            Attempt 1 fails: retry in 2s
            Attempt 2 fails: retry in 4s
            Attempt 3 fails: job is failed permanently

    Example:
        ```python
        from infrastructure.services import get_settings

        settings = get_settings()

        concurrency = settings.queue.concurrency
        limit = settings.queue.rate_limit_max
        ```
    """

    backend: str = Field(
        default="memory",
        alias="QUEUE_BACKEND",
        description="Queue backend: 'memory' (single process) or 'redis' (persistent)",
    )
    redis_key_prefix: str = Field(
        default="notification-queue",
        alias="QUEUE_REDIS_KEY_PREFIX",
        description="Prefix for every Redis key the queue writes",
    )
    max_attempts: int = Field(
        default=3,
        alias="QUEUE_MAX_ATTEMPTS",
        description="Processing attempts before a job is permanently failed",
    )
    backoff_base_seconds: float = Field(
        default=2.0,
        alias="QUEUE_BACKOFF_BASE_SECONDS",
        description="Base delay for exponential backoff (seconds)",
    )
    backoff_max_seconds: float = Field(
        default=3600.0,
        alias="QUEUE_BACKOFF_MAX_SECONDS",
        description="Maximum delay for exponential backoff (seconds)",
    )
    rate_limit_max: int = Field(
        default=100,
        alias="QUEUE_RATE_LIMIT_MAX",
        description="Maximum claims admitted per rate limit window",
    )
    rate_limit_window_seconds: float = Field(
        default=60.0,
        alias="QUEUE_RATE_LIMIT_WINDOW_SECONDS",
        description="Length of the rate limit window (seconds)",
    )
    completed_retention_seconds: int = Field(
        default=7 * 24 * 3600,
        alias="QUEUE_COMPLETED_RETENTION_SECONDS",
        description="How long completed jobs are retained (seconds, 7 days)",
    )
    completed_retention_count: int = Field(
        default=1000,
        alias="QUEUE_COMPLETED_RETENTION_COUNT",
        description="Maximum number of completed jobs retained",
    )
    claim_lease_seconds: int = Field(
        default=300,
        alias="QUEUE_CLAIM_LEASE_SECONDS",
        description="Duration of a worker claim before the job is stalled (seconds)",
    )
    concurrency: int = Field(
        default=4,
        alias="QUEUE_CONCURRENCY",
        description="Number of worker threads processing jobs",
    )
    poll_interval_seconds: float = Field(
        default=1.0,
        alias="QUEUE_POLL_INTERVAL_SECONDS",
        description="How long an idle worker waits for a job before re-checking",
    )
    shutdown_timeout_seconds: float = Field(
        default=30.0,
        alias="QUEUE_SHUTDOWN_TIMEOUT_SECONDS",
        description="How long close() waits for in-flight jobs to drain",
    )
