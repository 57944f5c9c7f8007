"""Notification job queue storage.

This module provides the queue interface used by the worker pool and the
queue control service, and a thread-safe in-memory implementation. The
protocol-based design lets a persistent backend replace the in-memory one
without touching the dispatcher or the workers.
"""

import heapq
import threading
import time
import uuid
from collections import OrderedDict
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Protocol, Set, Tuple

from infrastructure.logging import get_module_logger
from infrastructure.operations import OperationResult
from infrastructure.queue.clock import Clock, SystemClock
from infrastructure.queue.config import QueueConfig
from infrastructure.queue.exceptions import (
    EntryNotFoundError,
    JobValidationError,
    QueueClosedError,
)
from infrastructure.queue.models import JobState, QueueEntry, QueueJob, QueueStats
from infrastructure.queue.rate_limit import SlidingWindowRateLimiter

logger = get_module_logger()


class JobQueue(Protocol):
    """Storage interface for queued jobs.

    Implementations must make claim_next atomic so two workers never hold
    the same entry, and must keep enqueue idempotent on the job dedup key
    while an entry for that key is in flight.

    Methods:
        enqueue: Admit a job (or return the in-flight entry for its dedup key)
        claim_next: Atomically check out the best admissible entry
        ack: Report the outcome of processing a claimed entry
        extend_lease: Heartbeat for a long-running claim
        stats: Counts per state
        retry_failed: Re-admit every failed entry
        pause / resume: Gate new claims
        prune: Delete old completed entries
        close: Stop admitting and claiming
    """

    config: QueueConfig

    def enqueue(self, job: QueueJob) -> QueueEntry: ...

    def claim_next(self, worker_id: str, timeout: float = 0.0) -> Optional[QueueEntry]: ...

    def ack(
        self,
        entry_id: str,
        result: OperationResult,
        lease_token: Optional[str] = None,
    ) -> Optional[QueueEntry]: ...

    def extend_lease(self, entry_id: str, lease_token: str) -> bool: ...

    def get(self, entry_id: str) -> QueueEntry: ...

    def list_entries(self, state: Optional[JobState] = None) -> List[QueueEntry]: ...

    def stats(self) -> QueueStats: ...

    def retry_failed(self) -> int: ...

    def pause(self) -> None: ...

    def resume(self) -> None: ...

    @property
    def is_paused(self) -> bool: ...

    def prune(self, older_than: Optional[timedelta] = None) -> int: ...

    def close(self) -> None: ...


class InMemoryJobQueue:
    """In-memory implementation of JobQueue.

    Thread-safe queue with support for:
    - Idempotent admission keyed on the job dedup key
    - Strict priority ordering, FIFO within a priority tier
    - Sliding-window rate limiting of claims
    - Exponential backoff retries and permanent failure after max attempts
    - Lease-based recovery of stalled claims
    - Bounded retention of completed entries

    All state sits behind one condition variable; claimers block on it
    until an entry, a rate limit token or a retry time becomes available.

    Attributes:
        config: QueueConfig controlling queue behavior
    """

    def __init__(
        self,
        config: Optional[QueueConfig] = None,
        clock: Optional[Clock] = None,
        rate_limiter: Optional[SlidingWindowRateLimiter] = None,
    ) -> None:
        """Initialize the in-memory queue.

        Args:
            config: Optional QueueConfig. If not provided, uses defaults.
            clock: Time source. Defaults to the system clock.
            rate_limiter: Optional shared limiter. Built from config when
                not provided.
        """
        self.config = config or QueueConfig()
        self._clock = clock or SystemClock()
        self._rate_limiter = rate_limiter or SlidingWindowRateLimiter(
            max_calls=self.config.rate_limit_max,
            window_seconds=self.config.rate_limit_window_seconds,
            clock=self._clock,
        )

        self._entries: Dict[str, QueueEntry] = {}
        self._in_flight: Dict[str, str] = {}
        self._ready: List[Tuple[int, int, str]] = []
        self._delayed: List[Tuple[datetime, int, str]] = []
        self._active: Set[str] = set()
        self._completed: "OrderedDict[str, datetime]" = OrderedDict()

        self._cond = threading.Condition()
        self._next_id = 1
        self._next_sequence = 1
        self._paused = False
        self._closed = False

    # Admission

    def enqueue(self, job: QueueJob) -> QueueEntry:
        """Admit a job, or return the in-flight entry for its dedup key.

        Raises:
            JobValidationError: If the job has an empty dedup key
            QueueClosedError: If the queue has been closed
        """
        dedup_key = job.dedup_key
        if not dedup_key or not str(dedup_key).strip():
            raise JobValidationError("notification_id is required")

        with self._cond:
            if self._closed:
                raise QueueClosedError("Queue is closed")

            existing_id = self._in_flight.get(dedup_key)
            if existing_id is not None:
                existing = self._entries[existing_id]
                logger.info(
                    "job_already_queued",
                    entry_id=existing_id,
                    dedup_key=dedup_key,
                    state=existing.state.value,
                )
                return existing.snapshot()

            now = self._clock.now()
            entry = QueueEntry(
                id=str(self._next_id),
                job=job,
                priority=job.priority_rank,
                sequence=self._take_sequence(),
                max_attempts=self.config.max_attempts,
                created_at=now,
                updated_at=now,
                available_at=now,
            )
            self._next_id += 1
            self._entries[entry.id] = entry
            self._in_flight[dedup_key] = entry.id
            heapq.heappush(self._ready, (entry.priority, entry.sequence, entry.id))
            self._cond.notify()

            logger.info(
                "job_enqueued",
                entry_id=entry.id,
                dedup_key=dedup_key,
                priority=entry.priority,
            )
            return entry.snapshot()

    # Claiming

    def claim_next(self, worker_id: str, timeout: float = 0.0) -> Optional[QueueEntry]:
        """Atomically check out the best admissible entry.

        Waits up to `timeout` seconds while the queue is empty, paused or
        rate limited. Returns None when nothing could be claimed in time or
        the queue is closed.
        """
        deadline = time.monotonic() + max(timeout, 0.0)

        with self._cond:
            while True:
                if self._closed:
                    return None

                now = self._clock.now()
                self._recover_stalled_locked(now)
                self._promote_due_locked(now)

                rate_limit_wait: Optional[float] = None
                if not self._paused and self._peek_ready_locked() is not None:
                    rate_limit_wait = self._rate_limiter.try_acquire()
                    if not rate_limit_wait:
                        _, _, entry_id = heapq.heappop(self._ready)
                        return self._activate_locked(self._entries[entry_id], worker_id, now)
                    logger.debug("claim_rate_limited", retry_in_seconds=rate_limit_wait)

                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    return None

                waits = [remaining, rate_limit_wait, self._seconds_until_next_event(now)]
                self._cond.wait(min(w for w in waits if w is not None))

    def _peek_ready_locked(self) -> Optional[QueueEntry]:
        """Return the head of the ready heap, discarding stale heap items."""
        while self._ready:
            _, sequence, entry_id = self._ready[0]
            entry = self._entries.get(entry_id)
            if entry is not None and entry.state == JobState.WAITING and entry.sequence == sequence:
                return entry
            heapq.heappop(self._ready)
        return None

    def _activate_locked(self, entry: QueueEntry, worker_id: str, now: datetime) -> QueueEntry:
        entry.state = JobState.ACTIVE
        entry.attempts += 1
        entry.claimed_by = worker_id
        entry.lease_token = uuid.uuid4().hex
        entry.lease_expires_at = now + timedelta(seconds=self.config.claim_lease_seconds)
        entry.updated_at = now
        self._active.add(entry.id)

        logger.debug(
            "job_claimed",
            entry_id=entry.id,
            worker=worker_id,
            attempt=entry.attempts,
            max_attempts=entry.max_attempts,
        )
        return entry.snapshot()

    def _promote_due_locked(self, now: datetime) -> None:
        """Move delayed entries whose retry time has come back to WAITING."""
        while self._delayed and self._delayed[0][0] <= now:
            _, sequence, entry_id = heapq.heappop(self._delayed)
            entry = self._entries.get(entry_id)
            if entry is None or entry.state != JobState.DELAYED or entry.sequence != sequence:
                continue
            entry.state = JobState.WAITING
            entry.updated_at = now
            heapq.heappush(self._ready, (entry.priority, entry.sequence, entry.id))

    def _recover_stalled_locked(self, now: datetime) -> None:
        """Treat claims whose lease expired without an ack as failed attempts."""
        for entry_id in list(self._active):
            entry = self._entries[entry_id]
            if entry.lease_expires_at and entry.lease_expires_at <= now:
                logger.warning(
                    "job_stalled",
                    entry_id=entry_id,
                    worker=entry.claimed_by,
                    attempt=entry.attempts,
                )
                self._fail_attempt_locked(
                    entry,
                    "Stalled: claim lease expired without ack",
                    now,
                    retryable=True,
                )

    def _seconds_until_next_event(self, now: datetime) -> Optional[float]:
        """Seconds until the next delayed entry is due or a lease expires."""
        times = []
        if self._delayed:
            times.append(self._delayed[0][0])
        times.extend(
            self._entries[i].lease_expires_at
            for i in self._active
            if self._entries[i].lease_expires_at is not None
        )
        if not times:
            return None
        return max((min(times) - now).total_seconds(), 0.001)

    # Outcome reporting

    def ack(
        self,
        entry_id: str,
        result: OperationResult,
        lease_token: Optional[str] = None,
    ) -> Optional[QueueEntry]:
        """Report the outcome of processing a claimed entry.

        Success completes the entry. A retryable failure reschedules it with
        exponential backoff until max_attempts is reached; any other failure
        fails it permanently. Acks for unknown or non-active entries, or
        carrying a lease token from an expired claim, are ignored.

        Returns:
            Snapshot of the updated entry, or None if the ack was ignored
        """
        with self._cond:
            entry = self._entries.get(entry_id)
            if entry is None:
                logger.warning("ack_ignored_unknown_entry", entry_id=entry_id)
                return None
            if entry.state != JobState.ACTIVE or (
                lease_token is not None and entry.lease_token != lease_token
            ):
                logger.warning(
                    "ack_ignored_stale_claim",
                    entry_id=entry_id,
                    state=entry.state.value,
                )
                return None

            now = self._clock.now()
            entry.result = result
            if result.is_success:
                self._complete_locked(entry, now)
            else:
                self._fail_attempt_locked(
                    entry, result.message, now, retryable=result.is_retryable
                )
            self._cond.notify_all()
            return entry.snapshot()

    def extend_lease(self, entry_id: str, lease_token: str) -> bool:
        """Push back the lease expiry of an active claim."""
        with self._cond:
            entry = self._entries.get(entry_id)
            if entry is None or entry.state != JobState.ACTIVE or entry.lease_token != lease_token:
                return False
            entry.lease_expires_at = self._clock.now() + timedelta(
                seconds=self.config.claim_lease_seconds
            )
            return True

    def _release_claim_locked(self, entry: QueueEntry) -> None:
        self._active.discard(entry.id)
        entry.claimed_by = None
        entry.lease_token = None
        entry.lease_expires_at = None

    def _complete_locked(self, entry: QueueEntry, now: datetime) -> None:
        self._release_claim_locked(entry)
        entry.state = JobState.COMPLETED
        entry.updated_at = now
        entry.finished_at = now
        entry.last_error = None
        self._in_flight.pop(entry.job.dedup_key, None)
        self._completed[entry.id] = now

        logger.info("job_completed", entry_id=entry.id, attempts=entry.attempts)
        self._apply_retention_locked(now)

    def _fail_attempt_locked(
        self,
        entry: QueueEntry,
        error: str,
        now: datetime,
        retryable: bool,
    ) -> None:
        self._release_claim_locked(entry)
        entry.last_error = error
        entry.updated_at = now

        if retryable and entry.attempts < entry.max_attempts:
            delay = self.config.backoff_delay(entry.attempts)
            entry.state = JobState.DELAYED
            entry.available_at = now + timedelta(seconds=delay)
            heapq.heappush(self._delayed, (entry.available_at, entry.sequence, entry.id))
            logger.info(
                "job_retry_scheduled",
                entry_id=entry.id,
                attempts=entry.attempts,
                max_attempts=entry.max_attempts,
                next_retry_in_seconds=delay,
                error=error,
            )
            return

        entry.state = JobState.FAILED
        entry.finished_at = now
        self._in_flight.pop(entry.job.dedup_key, None)
        logger.error(
            "job_failed",
            entry_id=entry.id,
            attempts=entry.attempts,
            max_attempts=entry.max_attempts,
            retryable=retryable,
            error=error,
        )

    # Retention

    def _apply_retention_locked(self, now: datetime) -> int:
        removed = self._prune_completed_locked(
            now - timedelta(seconds=self.config.completed_retention_seconds)
        )
        while len(self._completed) > self.config.completed_retention_count:
            entry_id, _ = self._completed.popitem(last=False)
            del self._entries[entry_id]
            removed += 1
        return removed

    def _prune_completed_locked(self, cutoff: datetime) -> int:
        removed = 0
        while self._completed:
            entry_id, finished_at = next(iter(self._completed.items()))
            if finished_at > cutoff:
                break
            self._completed.popitem(last=False)
            del self._entries[entry_id]
            removed += 1
        return removed

    def prune(self, older_than: Optional[timedelta] = None) -> int:
        """Delete completed entries finished more than `older_than` ago.

        Args:
            older_than: Age threshold. Defaults to the retention window.

        Returns:
            Number of entries deleted
        """
        if older_than is None:
            older_than = timedelta(seconds=self.config.completed_retention_seconds)
        with self._cond:
            removed = self._prune_completed_locked(self._clock.now() - older_than)
        logger.info("completed_jobs_pruned", removed=removed)
        return removed

    # Inspection

    def get(self, entry_id: str) -> QueueEntry:
        """Return a snapshot of one entry.

        Raises:
            EntryNotFoundError: If the entry is unknown or already pruned
        """
        with self._cond:
            entry = self._entries.get(entry_id)
            if entry is None:
                raise EntryNotFoundError(entry_id)
            return entry.snapshot()

    def list_entries(self, state: Optional[JobState] = None) -> List[QueueEntry]:
        """Snapshots of all entries, optionally filtered by state."""
        with self._cond:
            entries = [
                e.snapshot()
                for e in self._entries.values()
                if state is None or e.state == state
            ]
        return sorted(entries, key=lambda e: (e.priority, e.sequence))

    def stats(self) -> QueueStats:
        """Counts of entries per state."""
        with self._cond:
            now = self._clock.now()
            self._recover_stalled_locked(now)
            self._promote_due_locked(now)
            counts = {state: 0 for state in JobState}
            for entry in self._entries.values():
                counts[entry.state] += 1
        return QueueStats(
            waiting=counts[JobState.WAITING],
            active=counts[JobState.ACTIVE],
            completed=counts[JobState.COMPLETED],
            failed=counts[JobState.FAILED],
            delayed=counts[JobState.DELAYED],
        )

    # Operator controls

    def retry_failed(self) -> int:
        """Re-admit every failed entry as a fresh waiting entry.

        Attempts are reset to zero. A failed entry whose dedup key already
        has a new in-flight entry is left as it is.

        Returns:
            Number of entries re-admitted
        """
        retried = 0
        with self._cond:
            now = self._clock.now()
            for entry in list(self._entries.values()):
                if entry.state != JobState.FAILED:
                    continue
                if entry.job.dedup_key in self._in_flight:
                    logger.info(
                        "failed_job_retry_skipped",
                        entry_id=entry.id,
                        reason="dedup_key_in_flight",
                    )
                    continue
                entry.state = JobState.WAITING
                entry.attempts = 0
                entry.sequence = self._take_sequence()
                entry.available_at = now
                entry.updated_at = now
                entry.finished_at = None
                entry.last_error = None
                entry.result = None
                self._in_flight[entry.job.dedup_key] = entry.id
                heapq.heappush(self._ready, (entry.priority, entry.sequence, entry.id))
                retried += 1
            self._cond.notify_all()

        logger.info("failed_jobs_retried", retried=retried)
        return retried

    def pause(self) -> None:
        """Stop issuing new claims. In-flight claims are unaffected."""
        with self._cond:
            self._paused = True
        logger.info("queue_paused")

    def resume(self) -> None:
        """Restore claiming after pause()."""
        with self._cond:
            self._paused = False
            self._cond.notify_all()
        logger.info("queue_resumed")

    @property
    def is_paused(self) -> bool:
        with self._cond:
            return self._paused

    @property
    def is_closed(self) -> bool:
        with self._cond:
            return self._closed

    def close(self) -> None:
        """Reject further enqueues and claims and wake blocked claimers.

        Acks for entries already claimed are still accepted. Safe to call
        more than once.
        """
        with self._cond:
            if self._closed:
                return
            self._closed = True
            self._cond.notify_all()
        logger.info("queue_closed")

    def _take_sequence(self) -> int:
        sequence = self._next_sequence
        self._next_sequence += 1
        return sequence
