"""Job queue configuration.

This module defines configuration for admission, throughput, retry and
retention behaviour of the job queue.
"""

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from infrastructure.configuration import NotificationQueueSettings


@dataclass
class QueueConfig:
    """Configuration for job queue behavior.

    Attributes:
        max_attempts: Processing attempts before a job is permanently failed
        backoff_base_seconds: Delay before the first retry
        backoff_max_seconds: Cap for the exponential retry delay
        rate_limit_max: Claims admitted per rate limit window
        rate_limit_window_seconds: Length of the sliding rate limit window
        completed_retention_seconds: How long completed entries are kept
        completed_retention_count: Maximum completed entries kept
        claim_lease_seconds: How long a worker may hold a claim without acking

    Example:
        # Defaults: 3 attempts, 2s/4s backoff, 100 claims per minute
        config = QueueConfig()

        # Custom configuration
        config = QueueConfig(max_attempts=5, rate_limit_max=10)
    """

    max_attempts: int = 3
    backoff_base_seconds: float = 2.0
    backoff_max_seconds: float = 3600.0
    rate_limit_max: int = 100
    rate_limit_window_seconds: float = 60.0
    completed_retention_seconds: int = 7 * 24 * 3600  # 7 days
    completed_retention_count: int = 1000
    claim_lease_seconds: int = 300  # 5 minutes

    def __post_init__(self) -> None:
        """Validate configuration values."""
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.backoff_base_seconds <= 0:
            raise ValueError("backoff_base_seconds must be positive")
        if self.backoff_max_seconds < self.backoff_base_seconds:
            raise ValueError("backoff_max_seconds must be >= backoff_base_seconds")
        if self.rate_limit_max < 1:
            raise ValueError("rate_limit_max must be at least 1")
        if self.rate_limit_window_seconds <= 0:
            raise ValueError("rate_limit_window_seconds must be positive")
        if self.completed_retention_count < 0:
            raise ValueError("completed_retention_count cannot be negative")
        if self.claim_lease_seconds < 1:
            raise ValueError("claim_lease_seconds must be at least 1")

    def backoff_delay(self, attempts: int) -> float:
        """Delay before the next try after `attempts` failed attempts.

        Uses base_delay * 2 ^ (attempts - 1), capped at backoff_max_seconds:
        2s, 4s, 8s ... with the default base.
        """
        delay = self.backoff_base_seconds * (2 ** max(attempts - 1, 0))
        return min(delay, self.backoff_max_seconds)

    @classmethod
    def from_settings(cls, settings: "NotificationQueueSettings") -> "QueueConfig":
        """Build a QueueConfig from the QUEUE_* settings section."""
        return cls(
            max_attempts=settings.max_attempts,
            backoff_base_seconds=settings.backoff_base_seconds,
            backoff_max_seconds=settings.backoff_max_seconds,
            rate_limit_max=settings.rate_limit_max,
            rate_limit_window_seconds=settings.rate_limit_window_seconds,
            completed_retention_seconds=settings.completed_retention_seconds,
            completed_retention_count=settings.completed_retention_count,
            claim_lease_seconds=settings.claim_lease_seconds,
        )
