"""Redis-backed job queue for multi-process deployments.

This module provides a persistent JobQueue implementation. Queue state
lives in Redis, so several worker processes can share one queue and
waiting, delayed and failed entries survive a restart.

Every state change runs as an optimistic WATCH/MULTI transaction on the
entry key, so two workers never hold the same claim and a late ack never
overwrites a newer state.

Key layout (``{prefix}`` defaults to ``notification-queue``):
    {prefix}:ids             INCR counter for entry ids
    {prefix}:seq             INCR counter for admission sequence numbers
    {prefix}:entry:{id}      Entry JSON
    {prefix}:dedup           Hash of in-flight dedup key -> entry id
    {prefix}:waiting         ZSET scored by priority, then sequence
    {prefix}:delayed         ZSET scored by retry time
    {prefix}:active          ZSET scored by lease expiry
    {prefix}:completed       ZSET scored by finish time
    {prefix}:failed          ZSET scored by finish time
    {prefix}:paused          Present while claims are paused
"""

import json
import threading
import time
import uuid
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Type

from pydantic import BaseModel
from redis import Redis  # type: ignore

from infrastructure.logging import get_module_logger
from infrastructure.operations import OperationResult, OperationStatus
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

# Waiting score = priority * span + sequence, exact in a double for any
# realistic number of admissions.
PRIORITY_SPAN = 10**12


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _parse(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


class RedisJobQueue:
    """Redis implementation of JobQueue.

    Offers the same semantics as InMemoryJobQueue:
    - Idempotent admission keyed on the job dedup key
    - Strict priority ordering, FIFO within a priority tier
    - Sliding-window rate limiting of claims (per process)
    - Exponential backoff retries and permanent failure after max attempts
    - Lease-based recovery of stalled claims, including claims held by a
      process that died
    - Bounded retention of completed entries

    Jobs are stored as JSON and rebuilt with ``job_type.model_validate``.
    Pause is shared through Redis; close only affects this process.

    Args:
        client: Redis client created with decode_responses=True
        job_type: Pydantic model class of the queued jobs
        config: QueueConfig controlling queue behavior
        clock: Time source. Defaults to the system clock.
        rate_limiter: Optional shared limiter. Built from config when not provided.
        key_prefix: Namespace for every key the queue writes
        idle_poll_seconds: How often a blocked claim_next re-checks Redis
    """

    def __init__(
        self,
        client: Redis,
        job_type: Type[BaseModel],
        config: Optional[QueueConfig] = None,
        clock: Optional[Clock] = None,
        rate_limiter: Optional[SlidingWindowRateLimiter] = None,
        key_prefix: str = "notification-queue",
        idle_poll_seconds: float = 0.2,
    ) -> None:
        self.config = config or QueueConfig()
        self.job_type = job_type
        self.key_prefix = key_prefix
        self.idle_poll_seconds = idle_poll_seconds
        self._client = client
        self._clock = clock or SystemClock()
        self._rate_limiter = rate_limiter or SlidingWindowRateLimiter(
            max_calls=self.config.rate_limit_max,
            window_seconds=self.config.rate_limit_window_seconds,
            clock=self._clock,
        )
        self._closed = threading.Event()
        self._state_keys = {state: self._key(state.value) for state in JobState}

        logger.info(
            "redis_job_queue_initialized",
            key_prefix=key_prefix,
            max_attempts=self.config.max_attempts,
        )

    # Keys and encoding

    def _key(self, name: str) -> str:
        return f"{self.key_prefix}:{name}"

    def _entry_key(self, entry_id: str) -> str:
        return self._key(f"entry:{entry_id}")

    @property
    def _dedup_key(self) -> str:
        return self._key("dedup")

    def _score(self, entry: QueueEntry) -> float:
        if entry.state == JobState.WAITING:
            return entry.priority * PRIORITY_SPAN + entry.sequence
        if entry.state == JobState.DELAYED:
            return entry.available_at.timestamp()
        if entry.state == JobState.ACTIVE and entry.lease_expires_at:
            return entry.lease_expires_at.timestamp()
        return (entry.finished_at or entry.updated_at).timestamp()

    def _encode(self, entry: QueueEntry) -> str:
        return json.dumps(
            {
                "id": entry.id,
                "job": entry.job.model_dump(mode="json"),
                "priority": entry.priority,
                "sequence": entry.sequence,
                "max_attempts": entry.max_attempts,
                "state": entry.state.value,
                "attempts": entry.attempts,
                "created_at": _iso(entry.created_at),
                "updated_at": _iso(entry.updated_at),
                "available_at": _iso(entry.available_at),
                "finished_at": _iso(entry.finished_at),
                "claimed_by": entry.claimed_by,
                "lease_token": entry.lease_token,
                "lease_expires_at": _iso(entry.lease_expires_at),
                "last_error": entry.last_error,
                "result": entry.result.to_dict() if entry.result else None,
            },
            default=str,
        )

    def _decode(self, raw: str) -> QueueEntry:
        data: Dict[str, Any] = json.loads(raw)
        result = data.get("result")
        return QueueEntry(
            id=data["id"],
            job=self.job_type.model_validate(data["job"]),
            priority=data["priority"],
            sequence=data["sequence"],
            max_attempts=data["max_attempts"],
            state=JobState(data["state"]),
            attempts=data["attempts"],
            created_at=_parse(data["created_at"]),
            updated_at=_parse(data["updated_at"]),
            available_at=_parse(data["available_at"]),
            finished_at=_parse(data.get("finished_at")),
            claimed_by=data.get("claimed_by"),
            lease_token=data.get("lease_token"),
            lease_expires_at=_parse(data.get("lease_expires_at")),
            last_error=data.get("last_error"),
            result=(
                OperationResult(
                    status=OperationStatus(result["status"]),
                    message=result["message"],
                    data=result.get("data"),
                    error_code=result.get("error_code"),
                    retry_after=result.get("retry_after"),
                )
                if result
                else None
            ),
        )

    # Transactions

    def _mutate(
        self,
        entry_id: str,
        mutate: Callable[[QueueEntry, Any], bool],
    ) -> Optional[QueueEntry]:
        """Apply `mutate` to one entry inside a WATCH/MULTI transaction.

        `mutate` edits the entry in place and returns False to leave it
        untouched. State index membership and the dedup hash follow the
        entry's state change.

        Returns:
            The updated entry, or None if mutate declined

        Raises:
            EntryNotFoundError: If the entry does not exist
        """
        entry_key = self._entry_key(entry_id)

        def apply(pipe) -> Optional[QueueEntry]:
            raw = pipe.get(entry_key)
            if raw is None:
                raise EntryNotFoundError(entry_id)
            entry = self._decode(raw)
            previous = entry.state
            if not mutate(entry, pipe):
                return None
            dedup_key = entry.job.dedup_key
            owns_dedup = pipe.hget(self._dedup_key, dedup_key) == entry.id

            pipe.multi()
            pipe.set(entry_key, self._encode(entry))
            pipe.zrem(self._state_keys[previous], entry.id)
            pipe.zadd(self._state_keys[entry.state], {entry.id: self._score(entry)})
            if previous.is_in_flight and not entry.state.is_in_flight and owns_dedup:
                pipe.hdel(self._dedup_key, dedup_key)
            elif entry.state.is_in_flight and not previous.is_in_flight:
                pipe.hset(self._dedup_key, dedup_key, entry.id)
            return entry

        return self._client.transaction(
            apply, entry_key, self._dedup_key, value_from_callable=True
        )

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
        if self._closed.is_set():
            raise QueueClosedError("Queue is closed")

        def admit(pipe):
            existing_id = pipe.hget(self._dedup_key, dedup_key)
            if existing_id is not None:
                raw = pipe.get(self._entry_key(existing_id))
                if raw is not None:
                    return self._decode(raw), False

            now = self._clock.now()
            entry = QueueEntry(
                id=str(self._client.incr(self._key("ids"))),
                job=job,
                priority=job.priority_rank,
                sequence=self._client.incr(self._key("seq")),
                max_attempts=self.config.max_attempts,
                created_at=now,
                updated_at=now,
                available_at=now,
            )
            pipe.multi()
            pipe.set(self._entry_key(entry.id), self._encode(entry))
            pipe.hset(self._dedup_key, dedup_key, entry.id)
            pipe.zadd(self._state_keys[JobState.WAITING], {entry.id: self._score(entry)})
            return entry, True

        entry, created = self._client.transaction(
            admit, self._dedup_key, value_from_callable=True
        )
        if created:
            logger.info(
                "job_enqueued",
                entry_id=entry.id,
                dedup_key=dedup_key,
                priority=entry.priority,
            )
        else:
            logger.info(
                "job_already_queued",
                entry_id=entry.id,
                dedup_key=dedup_key,
                state=entry.state.value,
            )
        return entry

    # Claiming

    def claim_next(self, worker_id: str, timeout: float = 0.0) -> Optional[QueueEntry]:
        """Atomically check out the best admissible entry.

        Waits up to `timeout` seconds while the queue is empty, paused or
        rate limited, re-checking Redis every idle_poll_seconds. Returns None
        when nothing could be claimed in time or the queue is closed.
        """
        deadline = time.monotonic() + max(timeout, 0.0)
        waiting_key = self._state_keys[JobState.WAITING]

        while True:
            if self._closed.is_set():
                return None

            now = self._clock.now()
            self._recover_stalled(now)
            self._promote_due(now)

            rate_limit_wait: Optional[float] = None
            if not self.is_paused and self._client.zcard(waiting_key) > 0:
                rate_limit_wait = self._rate_limiter.try_acquire()
                if not rate_limit_wait:
                    entry = self._claim_head(worker_id, now)
                    if entry is not None:
                        return entry
                    # Another process took the head first.
                    self._rate_limiter.release()
                    continue
                logger.debug("claim_rate_limited", retry_in_seconds=rate_limit_wait)

            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return None
            waits = [remaining, rate_limit_wait, self.idle_poll_seconds]
            self._closed.wait(min(w for w in waits if w is not None))

    def _claim_head(self, worker_id: str, now: datetime) -> Optional[QueueEntry]:
        waiting_key = self._state_keys[JobState.WAITING]

        def claim(pipe) -> Optional[QueueEntry]:
            head = pipe.zrange(waiting_key, 0, 0)
            if not head:
                return None
            entry_id = head[0]
            entry_key = self._entry_key(entry_id)
            pipe.watch(entry_key)
            raw = pipe.get(entry_key)
            if raw is None:
                pipe.multi()
                pipe.zrem(waiting_key, entry_id)
                return None

            entry = self._decode(raw)
            entry.state = JobState.ACTIVE
            entry.attempts += 1
            entry.claimed_by = worker_id
            entry.lease_token = uuid.uuid4().hex
            entry.lease_expires_at = now + timedelta(seconds=self.config.claim_lease_seconds)
            entry.updated_at = now

            pipe.multi()
            pipe.zrem(waiting_key, entry_id)
            pipe.zadd(self._state_keys[JobState.ACTIVE], {entry_id: self._score(entry)})
            pipe.set(entry_key, self._encode(entry))
            return entry

        entry = self._client.transaction(claim, waiting_key, value_from_callable=True)
        if entry is not None:
            logger.debug(
                "job_claimed",
                entry_id=entry.id,
                worker=worker_id,
                attempt=entry.attempts,
                max_attempts=entry.max_attempts,
            )
        return entry

    def _ids_due(self, state: JobState, now: datetime) -> List[str]:
        return self._client.zrangebyscore(self._state_keys[state], "-inf", now.timestamp())

    def _promote_due(self, now: datetime) -> None:
        """Move delayed entries whose retry time has come back to WAITING."""

        def promote(entry: QueueEntry, _pipe) -> bool:
            if entry.state != JobState.DELAYED or entry.available_at > now:
                return False
            entry.state = JobState.WAITING
            entry.updated_at = now
            return True

        for entry_id in self._ids_due(JobState.DELAYED, now):
            self._mutate_or_drop(entry_id, JobState.DELAYED, promote)

    def _recover_stalled(self, now: datetime) -> None:
        """Treat claims whose lease expired without an ack as failed attempts."""

        def stall(entry: QueueEntry, _pipe) -> bool:
            if entry.state != JobState.ACTIVE or (
                entry.lease_expires_at and entry.lease_expires_at > now
            ):
                return False
            logger.warning(
                "job_stalled",
                entry_id=entry.id,
                worker=entry.claimed_by,
                attempt=entry.attempts,
            )
            self._fail_attempt(
                entry, "Stalled: claim lease expired without ack", now, retryable=True
            )
            return True

        for entry_id in self._ids_due(JobState.ACTIVE, now):
            entry = self._mutate_or_drop(entry_id, JobState.ACTIVE, stall)
            if entry is not None:
                self._log_outcome(entry)

    def _mutate_or_drop(
        self,
        entry_id: str,
        state: JobState,
        mutate: Callable[[QueueEntry, Any], bool],
    ) -> Optional[QueueEntry]:
        """Like _mutate, but removes index members whose entry is gone."""
        try:
            return self._mutate(entry_id, mutate)
        except EntryNotFoundError:
            self._client.zrem(self._state_keys[state], entry_id)
            return None

    # Outcome reporting

    def ack(
        self,
        entry_id: str,
        result: OperationResult,
        lease_token: Optional[str] = None,
    ) -> Optional[QueueEntry]:
        """Report the outcome of processing a claimed entry.

        Same rules as InMemoryJobQueue.ack: success completes, retryable
        failures back off until max_attempts, anything else fails. Acks for
        unknown or non-active entries, or with a stale lease token, are
        ignored.

        Returns:
            The updated entry, or None if the ack was ignored
        """
        now = self._clock.now()
        stale_state: List[JobState] = []

        def record(entry: QueueEntry, _pipe) -> bool:
            stale_state.clear()
            if entry.state != JobState.ACTIVE or (
                lease_token is not None and entry.lease_token != lease_token
            ):
                stale_state.append(entry.state)
                return False
            entry.result = result
            if result.is_success:
                self._complete(entry, now)
            else:
                self._fail_attempt(
                    entry, result.message, now, retryable=result.is_retryable
                )
            return True

        try:
            entry = self._mutate(entry_id, record)
        except EntryNotFoundError:
            logger.warning("ack_ignored_unknown_entry", entry_id=entry_id)
            return None
        if entry is None:
            logger.warning(
                "ack_ignored_stale_claim",
                entry_id=entry_id,
                state=stale_state[0].value if stale_state else None,
            )
            return None

        self._log_outcome(entry)
        if entry.state == JobState.COMPLETED:
            self._apply_retention(now)
        return entry

    def extend_lease(self, entry_id: str, lease_token: str) -> bool:
        """Push back the lease expiry of an active claim."""
        now = self._clock.now()

        def extend(entry: QueueEntry, _pipe) -> bool:
            if entry.state != JobState.ACTIVE or entry.lease_token != lease_token:
                return False
            entry.lease_expires_at = now + timedelta(seconds=self.config.claim_lease_seconds)
            return True

        try:
            return self._mutate(entry_id, extend) is not None
        except EntryNotFoundError:
            return False

    def _complete(self, entry: QueueEntry, now: datetime) -> None:
        self._release_claim(entry)
        entry.state = JobState.COMPLETED
        entry.updated_at = now
        entry.finished_at = now
        entry.last_error = None

    def _fail_attempt(
        self,
        entry: QueueEntry,
        error: str,
        now: datetime,
        retryable: bool,
    ) -> None:
        self._release_claim(entry)
        entry.last_error = error
        entry.updated_at = now
        if retryable and entry.attempts < entry.max_attempts:
            entry.state = JobState.DELAYED
            entry.available_at = now + timedelta(
                seconds=self.config.backoff_delay(entry.attempts)
            )
            return
        entry.state = JobState.FAILED
        entry.finished_at = now

    @staticmethod
    def _release_claim(entry: QueueEntry) -> None:
        entry.claimed_by = None
        entry.lease_token = None
        entry.lease_expires_at = None

    def _log_outcome(self, entry: QueueEntry) -> None:
        if entry.state == JobState.COMPLETED:
            logger.info("job_completed", entry_id=entry.id, attempts=entry.attempts)
        elif entry.state == JobState.DELAYED:
            logger.info(
                "job_retry_scheduled",
                entry_id=entry.id,
                attempts=entry.attempts,
                max_attempts=entry.max_attempts,
                next_retry_in_seconds=self.config.backoff_delay(entry.attempts),
                error=entry.last_error,
            )
        elif entry.state == JobState.FAILED:
            logger.error(
                "job_failed",
                entry_id=entry.id,
                attempts=entry.attempts,
                max_attempts=entry.max_attempts,
                retryable=bool(entry.result is None or entry.result.is_retryable),
                error=entry.last_error,
            )

    # Retention

    def _delete_completed(self, entry_ids: List[str]) -> int:
        if not entry_ids:
            return 0
        completed_key = self._state_keys[JobState.COMPLETED]
        pipe = self._client.pipeline(transaction=True)
        for entry_id in entry_ids:
            pipe.delete(self._entry_key(entry_id))
        pipe.zrem(completed_key, *entry_ids)
        results = pipe.execute()
        return results[-1]

    def _apply_retention(self, now: datetime) -> int:
        removed = self._prune_completed(
            now - timedelta(seconds=self.config.completed_retention_seconds)
        )
        completed_key = self._state_keys[JobState.COMPLETED]
        excess = self._client.zcard(completed_key) - self.config.completed_retention_count
        if excess > 0:
            removed += self._delete_completed(self._client.zrange(completed_key, 0, excess - 1))
        return removed

    def _prune_completed(self, cutoff: datetime) -> int:
        return self._delete_completed(
            self._client.zrangebyscore(
                self._state_keys[JobState.COMPLETED], "-inf", cutoff.timestamp()
            )
        )

    def prune(self, older_than: Optional[timedelta] = None) -> int:
        """Delete completed entries finished more than `older_than` ago.

        Args:
            older_than: Age threshold. Defaults to the retention window.

        Returns:
            Number of entries deleted
        """
        if older_than is None:
            older_than = timedelta(seconds=self.config.completed_retention_seconds)
        removed = self._prune_completed(self._clock.now() - older_than)
        logger.info("completed_jobs_pruned", removed=removed)
        return removed

    # Inspection

    def get(self, entry_id: str) -> QueueEntry:
        """Return one entry.

        Raises:
            EntryNotFoundError: If the entry is unknown or already pruned
        """
        raw = self._client.get(self._entry_key(entry_id))
        if raw is None:
            raise EntryNotFoundError(entry_id)
        return self._decode(raw)

    def list_entries(self, state: Optional[JobState] = None) -> List[QueueEntry]:
        """All entries, optionally filtered by state, in claim order."""
        states = [state] if state is not None else list(JobState)
        entry_ids: List[str] = []
        for s in states:
            entry_ids.extend(self._client.zrange(self._state_keys[s], 0, -1))
        if not entry_ids:
            return []
        raws = self._client.mget([self._entry_key(i) for i in entry_ids])
        entries = [self._decode(raw) for raw in raws if raw is not None]
        if state is not None:
            entries = [e for e in entries if e.state == state]
        return sorted(entries, key=lambda e: (e.priority, e.sequence))

    def stats(self) -> QueueStats:
        """Counts of entries per state."""
        now = self._clock.now()
        self._recover_stalled(now)
        self._promote_due(now)
        pipe = self._client.pipeline(transaction=False)
        for state in JobState:
            pipe.zcard(self._state_keys[state])
        counts = dict(zip(JobState, pipe.execute()))
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
        now = self._clock.now()

        def readmit(entry: QueueEntry, pipe) -> bool:
            if entry.state != JobState.FAILED:
                return False
            if pipe.hexists(self._dedup_key, entry.job.dedup_key):
                logger.info(
                    "failed_job_retry_skipped",
                    entry_id=entry.id,
                    reason="dedup_key_in_flight",
                )
                return False
            entry.state = JobState.WAITING
            entry.attempts = 0
            entry.sequence = self._client.incr(self._key("seq"))
            entry.available_at = now
            entry.updated_at = now
            entry.finished_at = None
            entry.last_error = None
            entry.result = None
            return True

        retried = 0
        for entry_id in self._client.zrange(self._state_keys[JobState.FAILED], 0, -1):
            if self._mutate_or_drop(entry_id, JobState.FAILED, readmit) is not None:
                retried += 1

        logger.info("failed_jobs_retried", retried=retried)
        return retried

    def pause(self) -> None:
        """Stop issuing new claims in every process sharing this queue."""
        self._client.set(self._key("paused"), "1")
        logger.info("queue_paused")

    def resume(self) -> None:
        """Restore claiming after pause()."""
        self._client.delete(self._key("paused"))
        logger.info("queue_resumed")

    @property
    def is_paused(self) -> bool:
        return bool(self._client.exists(self._key("paused")))

    @property
    def is_closed(self) -> bool:
        return self._closed.is_set()

    def close(self) -> None:
        """Reject further enqueues and claims from this process.

        Acks for entries already claimed are still accepted and the stored
        queue is left intact for other processes and the next start. Safe
        to call more than once.
        """
        if self._closed.is_set():
            return
        self._closed.set()
        logger.info("queue_closed")
