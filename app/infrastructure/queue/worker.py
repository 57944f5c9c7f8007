"""Worker pool and job handler protocol.

This module provides the threads that drain the job queue. Domain logic is
supplied through the JobHandler protocol; the pool only handles the
mechanics of claiming, invoking the handler and acknowledging the outcome.
"""

import threading
import time
from typing import Callable, List, Optional, Protocol

import structlog
from infrastructure.logging import bind_log_context
from infrastructure.operations import OperationResult
from infrastructure.queue.models import QueueEntry
from infrastructure.queue.store import JobQueue

logger = structlog.get_logger()


class JobHandler(Protocol):
    """Protocol for the domain logic that processes a claimed job.

    Example:
        class NotificationDispatcher:
            def process(self, job: NotificationJob) -> OperationResult:
                ...
                return OperationResult.success()
    """

    def __call__(self, job) -> OperationResult:
        """Process a job and return its outcome."""
        ...


class WorkerPool:
    """Fixed-size pool of threads that claim and process queue entries.

    Each worker loops: claim the next admissible entry (waiting up to
    poll_interval), run the handler, ack the result with the claim's lease
    token. Unhandled handler exceptions are reported to the queue as
    transient failures so the entry is retried with backoff.

    Attributes:
        queue: JobQueue to drain
        handler: Callable taking a job and returning an OperationResult
        concurrency: Number of worker threads
        poll_interval: Seconds a worker blocks waiting for work per claim
        heartbeat_interval: Seconds between lease extensions while a handler
            runs. Defaults to a third of the queue claim lease.
    """

    def __init__(
        self,
        queue: JobQueue,
        handler: Callable[..., OperationResult],
        concurrency: int = 1,
        poll_interval: float = 1.0,
        name_prefix: str = "notification-worker",
        heartbeat_interval: Optional[float] = None,
    ) -> None:
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        self.queue = queue
        self.handler = handler
        self.concurrency = concurrency
        self.poll_interval = poll_interval
        self.name_prefix = name_prefix
        if heartbeat_interval is None:
            heartbeat_interval = queue.config.claim_lease_seconds / 3
        if heartbeat_interval <= 0:
            raise ValueError("heartbeat_interval must be positive")
        self.heartbeat_interval = heartbeat_interval
        self._threads: List[threading.Thread] = []
        self._stop_event = threading.Event()
        self.log = logger.bind(component="worker_pool")

    @property
    def is_running(self) -> bool:
        return any(t.is_alive() for t in self._threads)

    def start(self) -> None:
        """Start the worker threads. Calling start on a running pool is a no-op."""
        if self.is_running:
            return
        self._stop_event.clear()
        self._threads = [
            threading.Thread(
                target=self._run,
                args=(f"{self.name_prefix}-{i + 1}",),
                name=f"{self.name_prefix}-{i + 1}",
                daemon=True,
            )
            for i in range(self.concurrency)
        ]
        for thread in self._threads:
            thread.start()
        self.log.info("worker_pool_started", concurrency=self.concurrency)

    def process_next(self, worker_id: str, timeout: float = 0.0) -> Optional[QueueEntry]:
        """Claim one entry, process it and ack the result.

        Returns:
            The entry snapshot after the ack, or None if nothing was claimed
        """
        entry = self.queue.claim_next(worker_id, timeout=timeout)
        if entry is None:
            return None

        with bind_log_context(
            correlation_id=entry.job.dedup_key,
            entry_id=entry.id,
            worker_id=worker_id,
            attempt=entry.attempts,
        ):
            heartbeat = self._start_heartbeat(entry)
            try:
                result = self.handler(entry.job)
            except Exception as e:
                self.log.error(
                    "job_processing_exception",
                    entry_id=entry.id,
                    error=str(e),
                    exc_info=True,
                )
                result = OperationResult.transient_error(
                    f"Unhandled exception: {str(e)}",
                    error_code="PROCESSING_EXCEPTION",
                )
            finally:
                heartbeat.set()

            return self.queue.ack(entry.id, result, lease_token=entry.lease_token)

    def _start_heartbeat(self, entry: QueueEntry) -> threading.Event:
        """Keep extending the claim lease until the returned event is set."""
        done = threading.Event()

        def beat() -> None:
            while not done.wait(self.heartbeat_interval):
                try:
                    extended = self.queue.extend_lease(entry.id, entry.lease_token)
                except Exception as e:
                    self.log.warning(
                        "lease_heartbeat_error", entry_id=entry.id, error=str(e)
                    )
                    continue
                if not extended:
                    self.log.warning("lease_heartbeat_lost_claim", entry_id=entry.id)
                    return

        threading.Thread(
            target=beat, name=f"lease-heartbeat-{entry.id}", daemon=True
        ).start()
        return done

    def _run(self, worker_id: str) -> None:
        self.log.debug("worker_started", worker_id=worker_id)
        while not self._stop_event.is_set():
            try:
                self.process_next(worker_id, timeout=self.poll_interval)
            except Exception as e:
                self.log.error(
                    "worker_loop_error",
                    worker_id=worker_id,
                    error=str(e),
                    exc_info=True,
                )
                self._stop_event.wait(self.poll_interval)
        self.log.debug("worker_stopped", worker_id=worker_id)

    def request_stop(self) -> None:
        """Ask workers to exit after their current job."""
        self._stop_event.set()

    def join(self, timeout: Optional[float] = None) -> bool:
        """Wait for worker threads to exit.

        Returns:
            True if every worker exited within the timeout
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        for thread in self._threads:
            if deadline is None:
                thread.join()
            else:
                thread.join(max(deadline - time.monotonic(), 0.0))
        finished = not self.is_running
        if not finished:
            self.log.warning(
                "worker_pool_join_timeout",
                timeout_seconds=timeout,
                alive=[t.name for t in self._threads if t.is_alive()],
            )
        return finished

    def stop(self, timeout: Optional[float] = None) -> bool:
        """Request stop and wait for the workers."""
        self.request_stop()
        return self.join(timeout)
