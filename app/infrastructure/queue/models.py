"""Job queue models.

The queue is generic over the job it carries: anything exposing a
``dedup_key`` and a ``priority_rank`` can be queued. Scheduling state lives
on the QueueEntry wrapper, which only the queue mutates.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional, Protocol

from infrastructure.operations import OperationResult


class QueueJob(Protocol):
    """What the queue needs to know about a job."""

    @property
    def dedup_key(self) -> str:
        """Identity used to reject duplicate in-flight admissions."""
        ...

    @property
    def priority_rank(self) -> int:
        """Scheduling rank; lower numbers are served first."""
        ...


class JobState(Enum):
    """Lifecycle state of a queue entry.

    Values:
        WAITING: Admissible, waiting for a worker
        DELAYED: Waiting for a retry time in the future
        ACTIVE: Claimed by a worker
        COMPLETED: Processed successfully (retained for a bounded window)
        FAILED: Attempts exhausted or permanently failed (retained until retried)
    """

    WAITING = "waiting"
    DELAYED = "delayed"
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_in_flight(self) -> bool:
        """True while the entry still counts against its dedup key."""
        return self in (JobState.WAITING, JobState.DELAYED, JobState.ACTIVE)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class QueueEntry:
    """The queue's wrapper around a job.

    Fields:
        id: Unique identifier (assigned by the queue)
        job: The queued job
        priority: Rank copied from the job at admission (1 = high)
        sequence: Admission order, breaks ties within a priority tier
        attempts: Number of claims made so far
        max_attempts: Attempt budget before the entry is failed
        state: Current JobState
        available_at: Earliest time the entry may be claimed
        claimed_by: Worker holding the claim while ACTIVE
        lease_token: Token identifying the current claim
        lease_expires_at: When an unacked claim is considered stalled
        last_error: Message from the most recent failed attempt
        result: Result reported by the last ack
    """

    id: str
    job: Any
    priority: int
    sequence: int
    max_attempts: int
    state: JobState = JobState.WAITING
    attempts: int = 0
    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)
    available_at: datetime = field(default_factory=_utcnow)
    finished_at: Optional[datetime] = None
    claimed_by: Optional[str] = None
    lease_token: Optional[str] = None
    lease_expires_at: Optional[datetime] = None
    last_error: Optional[str] = None
    result: Optional[OperationResult] = None

    def snapshot(self) -> "QueueEntry":
        """Copy handed to callers so queue state is never shared."""
        return replace(self)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize for API responses and logs."""
        return {
            "id": self.id,
            "dedup_key": self.job.dedup_key,
            "priority": self.priority,
            "state": self.state.value,
            "attempts": self.attempts,
            "max_attempts": self.max_attempts,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
            "available_at": self.available_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "claimed_by": self.claimed_by,
            "last_error": self.last_error,
            "result": self.result.to_dict() if self.result else None,
        }


@dataclass(frozen=True)
class QueueStats:
    """Derived read-only queue counts."""

    waiting: int = 0
    active: int = 0
    completed: int = 0
    failed: int = 0
    delayed: int = 0

    @property
    def total(self) -> int:
        return self.waiting + self.active + self.completed + self.failed + self.delayed

    def to_dict(self) -> Dict[str, int]:
        return {
            "waiting": self.waiting,
            "active": self.active,
            "completed": self.completed,
            "failed": self.failed,
            "delayed": self.delayed,
            "total": self.total,
        }
