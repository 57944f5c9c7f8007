"""Unit tests for the in-memory job queue."""

import threading
import time
from datetime import timedelta
from types import SimpleNamespace

import pytest

from infrastructure.operations import OperationResult
from infrastructure.queue import (
    EntryNotFoundError,
    JobState,
    JobValidationError,
    QueueClosedError,
)


class TestEnqueue:
    """Tests for admission and dedup."""

    def test_enqueue_assigns_incrementing_ids(self, job_queue, job_factory):
        first = job_queue.enqueue(job_factory(notification_id="n-1"))
        second = job_queue.enqueue(job_factory(notification_id="n-2"))

        assert first.state == JobState.WAITING
        assert int(second.id) == int(first.id) + 1

    def test_enqueue_derives_priority_from_payload(self, job_queue, job_factory):
        high = job_queue.enqueue(job_factory(notification_id="n-1", priority="high"))
        medium = job_queue.enqueue(job_factory(notification_id="n-2"))
        low = job_queue.enqueue(job_factory(notification_id="n-3", priority="low"))

        assert (high.priority, medium.priority, low.priority) == (1, 2, 3)

    def test_enqueue_rejects_empty_dedup_key(self, job_queue):
        job = SimpleNamespace(dedup_key="  ", priority_rank=2)

        with pytest.raises(JobValidationError):
            job_queue.enqueue(job)

        assert job_queue.stats().total == 0

    def test_job_validation_error_is_value_error(self, job_queue):
        with pytest.raises(ValueError):
            job_queue.enqueue(SimpleNamespace(dedup_key="", priority_rank=2))

    def test_enqueue_same_id_twice_is_idempotent(self, job_queue, job_factory):
        first = job_queue.enqueue(job_factory(notification_id="n-1"))
        second = job_queue.enqueue(job_factory(notification_id="n-1"))

        assert second.id == first.id
        assert job_queue.stats().waiting == 1
        assert job_queue.stats().total == 1

    def test_enqueue_returns_active_entry_for_in_flight_id(self, job_queue, job_factory):
        job_queue.enqueue(job_factory(notification_id="n-1"))
        claimed = job_queue.claim_next("worker-1")

        again = job_queue.enqueue(job_factory(notification_id="n-1"))

        assert again.id == claimed.id
        assert again.state == JobState.ACTIVE
        assert job_queue.stats().total == 1

    def test_enqueue_returns_delayed_entry_for_in_flight_id(
        self, job_queue, job_factory, transient_failure
    ):
        job_queue.enqueue(job_factory(notification_id="n-1"))
        claimed = job_queue.claim_next("worker-1")
        job_queue.ack(claimed.id, transient_failure, lease_token=claimed.lease_token)

        again = job_queue.enqueue(job_factory(notification_id="n-1"))

        assert again.id == claimed.id
        assert again.state == JobState.DELAYED

    def test_enqueue_after_completion_creates_new_entry(self, job_queue, job_factory):
        job_queue.enqueue(job_factory(notification_id="n-1"))
        claimed = job_queue.claim_next("worker-1")
        job_queue.ack(claimed.id, OperationResult.success())

        again = job_queue.enqueue(job_factory(notification_id="n-1"))

        assert again.id != claimed.id
        assert again.state == JobState.WAITING

    def test_enqueue_after_close_raises(self, job_queue, job_factory):
        job_queue.close()

        with pytest.raises(QueueClosedError):
            job_queue.enqueue(job_factory())


class TestClaimNext:
    """Tests for claim ordering and gating."""

    def test_claim_returns_none_when_empty(self, job_queue):
        assert job_queue.claim_next("worker-1") is None

    def test_claim_marks_entry_active_with_lease(self, job_queue, job_factory, clock):
        job_queue.enqueue(job_factory())

        entry = job_queue.claim_next("worker-1")

        assert entry.state == JobState.ACTIVE
        assert entry.attempts == 1
        assert entry.claimed_by == "worker-1"
        assert entry.lease_token
        assert entry.lease_expires_at == clock.now() + timedelta(seconds=300)

    def test_claim_serves_higher_priority_first(self, job_queue, job_factory):
        job_queue.enqueue(job_factory(notification_id="low", priority="low"))
        job_queue.enqueue(job_factory(notification_id="medium", priority="medium"))
        job_queue.enqueue(job_factory(notification_id="high", priority="high"))

        order = [job_queue.claim_next("w").job.notification_id for _ in range(3)]

        assert order == ["high", "medium", "low"]

    def test_claim_is_fifo_within_priority(self, job_queue, job_factory):
        for i in range(5):
            job_queue.enqueue(job_factory(notification_id=f"n-{i}"))

        order = [job_queue.claim_next("w").job.notification_id for _ in range(5)]

        assert order == [f"n-{i}" for i in range(5)]

    def test_paused_queue_issues_no_claims(self, job_queue, job_factory):
        job_queue.enqueue(job_factory())
        job_queue.pause()

        assert job_queue.is_paused
        assert job_queue.claim_next("worker-1") is None

        job_queue.resume()

        assert job_queue.claim_next("worker-1") is not None

    def test_pause_does_not_affect_in_flight_ack(self, job_queue, job_factory):
        job_queue.enqueue(job_factory())
        entry = job_queue.claim_next("worker-1")
        job_queue.pause()

        acked = job_queue.ack(entry.id, OperationResult.success(), entry.lease_token)

        assert acked.state == JobState.COMPLETED

    def test_claim_after_close_returns_none(self, job_queue, job_factory):
        job_queue.enqueue(job_factory())
        job_queue.close()

        assert job_queue.claim_next("worker-1") is None

    def test_blocked_claim_wakes_on_enqueue(self, job_queue, job_factory):
        claimed = []

        def _claim():
            claimed.append(job_queue.claim_next("worker-1", timeout=5))

        thread = threading.Thread(target=_claim)
        thread.start()
        time.sleep(0.05)
        job_queue.enqueue(job_factory())
        thread.join(timeout=5)

        assert claimed and claimed[0] is not None

    def test_blocked_claim_wakes_on_close(self, job_queue):
        claimed = []

        def _claim():
            claimed.append(job_queue.claim_next("worker-1", timeout=5))

        thread = threading.Thread(target=_claim)
        thread.start()
        time.sleep(0.05)
        started = time.monotonic()
        job_queue.close()
        thread.join(timeout=5)

        assert claimed == [None]
        assert time.monotonic() - started < 2

    def test_concurrent_claims_never_share_an_entry(self, queue_factory, job_factory):
        queue = queue_factory(rate_limit_max=1000)
        for i in range(50):
            queue.enqueue(job_factory(notification_id=f"n-{i}"))

        claimed = []
        lock = threading.Lock()

        def _worker(name):
            while True:
                entry = queue.claim_next(name)
                if entry is None:
                    return
                with lock:
                    claimed.append(entry.id)

        threads = [threading.Thread(target=_worker, args=(f"w-{i}",)) for i in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=5)

        assert len(claimed) == 50
        assert len(set(claimed)) == 50


class TestRateLimit:
    """Tests for the claim rate limiter."""

    def test_claims_stop_when_window_exhausted(self, queue_factory, job_factory, clock):
        queue = queue_factory(rate_limit_max=3, rate_limit_window_seconds=60)
        for i in range(5):
            queue.enqueue(job_factory(notification_id=f"n-{i}"))

        claims = [queue.claim_next("w") for _ in range(4)]

        assert [c is not None for c in claims] == [True, True, True, False]
        assert queue.stats().waiting == 2

        clock.advance(60)

        assert queue.claim_next("w") is not None

    def test_window_slides(self, queue_factory, job_factory, clock):
        queue = queue_factory(rate_limit_max=3, rate_limit_window_seconds=60)
        for i in range(6):
            queue.enqueue(job_factory(notification_id=f"n-{i}"))

        assert queue.claim_next("w") is not None
        assert queue.claim_next("w") is not None
        clock.advance(30)
        assert queue.claim_next("w") is not None
        assert queue.claim_next("w") is None

        # The two claims at t=0 leave the window; the one at t=30 does not.
        clock.advance(30)
        assert queue.claim_next("w") is not None
        assert queue.claim_next("w") is not None
        assert queue.claim_next("w") is None

    def test_empty_claims_do_not_consume_tokens(self, queue_factory, job_factory):
        queue = queue_factory(rate_limit_max=2)
        for _ in range(5):
            assert queue.claim_next("w") is None

        queue.enqueue(job_factory(notification_id="n-1"))
        queue.enqueue(job_factory(notification_id="n-2"))

        assert queue.claim_next("w") is not None
        assert queue.claim_next("w") is not None

    def test_rate_limit_does_not_reorder(self, queue_factory, job_factory, clock):
        queue = queue_factory(rate_limit_max=1)
        queue.enqueue(job_factory(notification_id="low", priority="low"))
        queue.claim_next("w")
        queue.enqueue(job_factory(notification_id="low-2", priority="low"))
        queue.enqueue(job_factory(notification_id="high", priority="high"))

        clock.advance(60)

        assert queue.claim_next("w").job.notification_id == "high"


class TestAck:
    """Tests for completion, retry and failure."""

    def test_success_completes_entry(self, job_queue, job_factory, clock):
        job_queue.enqueue(job_factory())
        entry = job_queue.claim_next("worker-1")

        acked = job_queue.ack(entry.id, OperationResult.success(), entry.lease_token)

        assert acked.state == JobState.COMPLETED
        assert acked.finished_at == clock.now()
        assert acked.claimed_by is None
        assert job_queue.stats().completed == 1

    def test_transient_failures_back_off_exponentially(
        self, job_queue, job_factory, clock, transient_failure
    ):
        job_queue.enqueue(job_factory())

        entry = job_queue.claim_next("w")
        acked = job_queue.ack(entry.id, transient_failure, entry.lease_token)
        assert acked.state == JobState.DELAYED
        assert acked.available_at == clock.now() + timedelta(seconds=2)
        assert acked.last_error == "provider timeout"

        clock.advance(1.9)
        assert job_queue.claim_next("w") is None
        clock.advance(0.1)
        entry = job_queue.claim_next("w")
        assert entry.attempts == 2

        acked = job_queue.ack(entry.id, transient_failure, entry.lease_token)
        assert acked.state == JobState.DELAYED
        assert acked.available_at == clock.now() + timedelta(seconds=4)

        clock.advance(4)
        entry = job_queue.claim_next("w")
        assert entry.attempts == 3

        acked = job_queue.ack(entry.id, transient_failure, entry.lease_token)
        assert acked.state == JobState.FAILED
        assert job_queue.stats().failed == 1

    def test_third_retry_waits_eight_seconds(self, queue_factory, job_factory, clock, transient_failure):
        queue = queue_factory(max_attempts=4)
        queue.enqueue(job_factory())

        delays = []
        for _ in range(3):
            entry = queue.claim_next("w")
            acked = queue.ack(entry.id, transient_failure, entry.lease_token)
            delay = (acked.available_at - clock.now()).total_seconds()
            delays.append(delay)
            clock.advance(delay)

        assert delays == [2, 4, 8]

    def test_delayed_entries_are_counted(self, job_queue, job_factory, transient_failure):
        job_queue.enqueue(job_factory())
        entry = job_queue.claim_next("w")
        job_queue.ack(entry.id, transient_failure, entry.lease_token)

        stats = job_queue.stats()

        assert stats.delayed == 1
        assert stats.waiting == 0
        assert stats.total == 1

    def test_permanent_failure_fails_immediately(
        self, job_queue, job_factory, permanent_failure
    ):
        job_queue.enqueue(job_factory())
        entry = job_queue.claim_next("w")

        acked = job_queue.ack(entry.id, permanent_failure, entry.lease_token)

        assert acked.state == JobState.FAILED
        assert acked.attempts == 1

    def test_failed_entries_release_dedup_key(self, job_queue, job_factory, permanent_failure):
        job_queue.enqueue(job_factory(notification_id="n-1"))
        entry = job_queue.claim_next("w")
        job_queue.ack(entry.id, permanent_failure, entry.lease_token)

        again = job_queue.enqueue(job_factory(notification_id="n-1"))

        assert again.id != entry.id

    def test_ack_unknown_entry_is_ignored(self, job_queue):
        assert job_queue.ack("999", OperationResult.success()) is None

    def test_ack_with_stale_lease_token_is_ignored(self, job_queue, job_factory):
        job_queue.enqueue(job_factory())
        entry = job_queue.claim_next("w")

        assert job_queue.ack(entry.id, OperationResult.success(), "not-the-token") is None
        assert job_queue.get(entry.id).state == JobState.ACTIVE

    def test_double_ack_is_ignored(self, job_queue, job_factory):
        job_queue.enqueue(job_factory())
        entry = job_queue.claim_next("w")
        job_queue.ack(entry.id, OperationResult.success(), entry.lease_token)

        assert job_queue.ack(entry.id, OperationResult.success(), entry.lease_token) is None

    def test_ack_allowed_after_close(self, job_queue, job_factory):
        job_queue.enqueue(job_factory())
        entry = job_queue.claim_next("w")
        job_queue.close()

        acked = job_queue.ack(entry.id, OperationResult.success(), entry.lease_token)

        assert acked.state == JobState.COMPLETED


class TestStalledClaims:
    """Tests for lease expiry recovery."""

    def test_expired_lease_becomes_retry_eligible(self, queue_factory, job_factory, clock):
        queue = queue_factory(claim_lease_seconds=10)
        queue.enqueue(job_factory())
        entry = queue.claim_next("crashed-worker")

        clock.advance(11)
        stats = queue.stats()

        assert stats.active == 0
        assert stats.delayed == 1
        stalled = queue.get(entry.id)
        assert stalled.last_error.startswith("Stalled")
        assert stalled.claimed_by is None

    def test_stalled_entry_is_claimed_again_after_backoff(
        self, queue_factory, job_factory, clock
    ):
        queue = queue_factory(claim_lease_seconds=10)
        queue.enqueue(job_factory())
        first = queue.claim_next("crashed-worker")

        clock.advance(11)
        assert queue.claim_next("w") is None
        clock.advance(2)
        second = queue.claim_next("w")

        assert second.id == first.id
        assert second.attempts == 2
        assert second.lease_token != first.lease_token

    def test_late_ack_from_stalled_worker_is_ignored(self, queue_factory, job_factory, clock):
        queue = queue_factory(claim_lease_seconds=10)
        queue.enqueue(job_factory())
        first = queue.claim_next("crashed-worker")
        clock.advance(11)
        queue.stats()
        clock.advance(2)
        second = queue.claim_next("w")

        assert queue.ack(first.id, OperationResult.success(), first.lease_token) is None
        assert queue.ack(second.id, OperationResult.success(), second.lease_token).state == (
            JobState.COMPLETED
        )

    def test_stalled_on_last_attempt_fails(self, queue_factory, job_factory, clock):
        queue = queue_factory(claim_lease_seconds=10, max_attempts=1)
        queue.enqueue(job_factory())
        queue.claim_next("crashed-worker")

        clock.advance(11)

        assert queue.stats().failed == 1

    def test_extend_lease_keeps_claim_alive(self, queue_factory, job_factory, clock):
        queue = queue_factory(claim_lease_seconds=10)
        queue.enqueue(job_factory())
        entry = queue.claim_next("w")

        clock.advance(8)
        assert queue.extend_lease(entry.id, entry.lease_token) is True
        clock.advance(8)

        assert queue.stats().active == 1

    def test_extend_lease_rejects_wrong_token(self, job_queue, job_factory):
        job_queue.enqueue(job_factory())
        entry = job_queue.claim_next("w")

        assert job_queue.extend_lease(entry.id, "wrong") is False


class TestRetention:
    """Tests for completed-entry retention and pruning."""

    def _complete(self, queue, job):
        queue.enqueue(job)
        entry = queue.claim_next("w")
        queue.ack(entry.id, OperationResult.success(), entry.lease_token)
        return entry

    def test_completed_count_cap_prunes_oldest(self, queue_factory, job_factory):
        queue = queue_factory(completed_retention_count=2)

        first = self._complete(queue, job_factory(notification_id="n-1"))
        self._complete(queue, job_factory(notification_id="n-2"))
        self._complete(queue, job_factory(notification_id="n-3"))

        assert queue.stats().completed == 2
        with pytest.raises(EntryNotFoundError):
            queue.get(first.id)

    def test_completed_age_limit_prunes_old_entries(self, job_queue, job_factory, clock):
        first = self._complete(job_queue, job_factory(notification_id="n-1"))

        clock.advance(7 * 24 * 3600 + 1)
        self._complete(job_queue, job_factory(notification_id="n-2"))

        assert job_queue.stats().completed == 1
        with pytest.raises(EntryNotFoundError):
            job_queue.get(first.id)

    def test_failed_entries_are_never_auto_pruned(
        self, queue_factory, job_factory, clock, permanent_failure
    ):
        queue = queue_factory(completed_retention_count=0)
        queue.enqueue(job_factory(notification_id="n-1"))
        entry = queue.claim_next("w")
        queue.ack(entry.id, permanent_failure, entry.lease_token)

        clock.advance(30 * 24 * 3600)
        self._complete(queue, job_factory(notification_id="n-2"))

        assert queue.get(entry.id).state == JobState.FAILED
        assert queue.prune(timedelta(0)) == 0

    def test_prune_removes_completed_older_than_threshold(self, job_queue, job_factory, clock):
        self._complete(job_queue, job_factory(notification_id="n-1"))
        clock.advance(7200)
        self._complete(job_queue, job_factory(notification_id="n-2"))

        removed = job_queue.prune(timedelta(hours=1))

        assert removed == 1
        assert job_queue.stats().completed == 1

    def test_prune_defaults_to_retention_window(self, job_queue, job_factory):
        self._complete(job_queue, job_factory())

        assert job_queue.prune() == 0


class TestOperatorControls:
    """Tests for retry_failed, list_entries and close."""

    def _fail(self, queue, job, result):
        queue.enqueue(job)
        entry = queue.claim_next("w")
        queue.ack(entry.id, result, entry.lease_token)
        return entry

    def test_retry_failed_resets_attempts(self, job_queue, job_factory, permanent_failure):
        failed = self._fail(job_queue, job_factory(), permanent_failure)

        assert job_queue.retry_failed() == 1

        entry = job_queue.get(failed.id)
        assert entry.state == JobState.WAITING
        assert entry.attempts == 0
        assert entry.last_error is None
        assert job_queue.claim_next("w").id == failed.id

    def test_retry_failed_goes_behind_waiting_entries(
        self, job_queue, job_factory, permanent_failure
    ):
        self._fail(job_queue, job_factory(notification_id="old"), permanent_failure)
        job_queue.enqueue(job_factory(notification_id="waiting"))

        job_queue.retry_failed()

        assert job_queue.claim_next("w").job.notification_id == "waiting"

    def test_retry_failed_skips_ids_already_in_flight(
        self, job_queue, job_factory, permanent_failure
    ):
        failed = self._fail(job_queue, job_factory(notification_id="n-1"), permanent_failure)
        job_queue.enqueue(job_factory(notification_id="n-1"))

        assert job_queue.retry_failed() == 0
        assert job_queue.get(failed.id).state == JobState.FAILED

    def test_retry_failed_with_nothing_failed(self, job_queue):
        assert job_queue.retry_failed() == 0

    def test_list_entries_filters_by_state(self, job_queue, job_factory):
        job_queue.enqueue(job_factory(notification_id="n-1"))
        job_queue.enqueue(job_factory(notification_id="n-2"))
        job_queue.claim_next("w")

        waiting = job_queue.list_entries(JobState.WAITING)

        assert [e.job.notification_id for e in waiting] == ["n-2"]
        assert len(job_queue.list_entries()) == 2

    def test_snapshots_are_not_shared(self, job_queue, job_factory):
        entry = job_queue.enqueue(job_factory())
        entry.state = JobState.FAILED

        assert job_queue.get(entry.id).state == JobState.WAITING

    def test_get_unknown_entry_raises(self, job_queue):
        with pytest.raises(EntryNotFoundError):
            job_queue.get("missing")

    def test_close_is_idempotent(self, job_queue):
        job_queue.close()
        job_queue.close()

        assert job_queue.is_closed
