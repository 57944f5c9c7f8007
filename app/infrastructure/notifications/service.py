"""Notification queue service for dependency injection.

Provides the queue control interface (enqueue, stats, operator controls,
shutdown) over the job queue, the dispatcher, the delivery log and the
worker pool.
"""

import threading
from datetime import timedelta
from typing import Any, Dict, List, Optional, TYPE_CHECKING, Union

import structlog
from pydantic import ValidationError

from infrastructure.notifications.delivery_log import DeliveryLogStore
from infrastructure.notifications.dispatcher import NotificationDispatcher
from infrastructure.notifications.models import (
    DeliveryLogEntry,
    DeliverySummary,
    NotificationJob,
)
from infrastructure.queue import (
    JobQueue,
    JobValidationError,
    QueueEntry,
    QueueStats,
    WorkerPool,
)

if TYPE_CHECKING:
    from infrastructure.configuration import Settings

logger = structlog.get_logger()


class NotificationQueueService:
    """Class-based notification queue service.

    Thin facade over the queue, dispatcher and worker pool so routes and
    the standalone worker share one object.

    Usage:
        # Via dependency injection
        from infrastructure.services import NotificationServiceDep

        @router.post("/jobs")
        def enqueue(service: NotificationServiceDep, job: NotificationJob):
            entry = service.enqueue(job)
            return {"id": entry.id, "state": entry.state.value}

        # Direct instantiation
        from infrastructure.services import get_settings

        service = NotificationQueueService.from_settings(get_settings())
        service.start()
    """

    def __init__(
        self,
        queue: JobQueue,
        dispatcher: NotificationDispatcher,
        delivery_log: DeliveryLogStore,
        concurrency: int = 1,
        poll_interval: float = 1.0,
        shutdown_timeout: float = 30.0,
        worker_pool: Optional[WorkerPool] = None,
    ):
        self.queue = queue
        self.dispatcher = dispatcher
        self.delivery_log_store = delivery_log
        self.shutdown_timeout = shutdown_timeout
        self.workers = worker_pool or WorkerPool(
            queue,
            handler=dispatcher.process,
            concurrency=concurrency,
            poll_interval=poll_interval,
        )
        self._close_lock = threading.Lock()
        self._closing = False
        self._closed = threading.Event()
        self._drained: Optional[bool] = None

    @classmethod
    def from_settings(cls, settings: "Settings") -> "NotificationQueueService":
        """Build the service with the configured queue backend and transports."""
        # Import here to avoid circular dependency at module level
        from infrastructure.notifications.channels import (
            EmailChannel,
            PushChannel,
            SMSChannel,
        )
        from infrastructure.notifications.delivery_log import InMemoryDeliveryLogStore
        from infrastructure.notifications.models import Channel
        from infrastructure.notifications.resolvers import (
            InMemoryPreferenceResolver,
            InMemoryRecipientResolver,
            LoggingRealtimePublisher,
        )
        from infrastructure.queue import create_job_queue
        from integrations.notify import NotifyEmailTransport, NotifySMSTransport

        notify = settings.notify
        channels = {
            Channel.EMAIL: EmailChannel(
                NotifyEmailTransport(notify),
                client_url=notify.NOTIFY_CLIENT_URL,
                sender_name=notify.NOTIFY_SENDER_NAME,
            ),
            Channel.SMS: SMSChannel(
                NotifySMSTransport(notify),
                client_url=notify.NOTIFY_CLIENT_URL,
                signature=notify.NOTIFY_SENDER_NAME,
            ),
            Channel.PUSH: PushChannel(LoggingRealtimePublisher()),
        }
        delivery_log = InMemoryDeliveryLogStore()
        dispatcher = NotificationDispatcher(
            channels=channels,
            recipients=InMemoryRecipientResolver(),
            preferences=InMemoryPreferenceResolver(),
            delivery_log=delivery_log,
        )
        return cls(
            queue=create_job_queue(settings, NotificationJob),
            dispatcher=dispatcher,
            delivery_log=delivery_log,
            concurrency=settings.queue.concurrency,
            poll_interval=settings.queue.poll_interval_seconds,
            shutdown_timeout=settings.queue.shutdown_timeout_seconds,
        )

    def enqueue(self, job: Union[NotificationJob, Dict[str, Any]]) -> QueueEntry:
        """Validate and admit a notification job.

        Raises:
            JobValidationError: If the job is malformed
            QueueClosedError: If the service has been closed
        """
        if not isinstance(job, NotificationJob):
            try:
                job = NotificationJob.model_validate(job)
            except ValidationError as e:
                raise JobValidationError(str(e)) from e
        return self.queue.enqueue(job)

    def get_entry(self, entry_id: str) -> QueueEntry:
        return self.queue.get(entry_id)

    def stats(self) -> QueueStats:
        return self.queue.stats()

    def retry_failed(self) -> int:
        return self.queue.retry_failed()

    def pause(self) -> None:
        self.queue.pause()

    def resume(self) -> None:
        self.queue.resume()

    @property
    def is_paused(self) -> bool:
        return self.queue.is_paused

    def prune(self, older_than: Optional[timedelta] = None) -> int:
        return self.queue.prune(older_than)

    def delivery_log(self, notification_id: str) -> List[DeliveryLogEntry]:
        return self.delivery_log_store.list_for_notification(notification_id)

    def delivery_summary(self, notification_id: Optional[str] = None) -> DeliverySummary:
        return self.delivery_log_store.summary(notification_id)

    def start(self) -> None:
        """Start the worker pool."""
        if self._closing:
            raise RuntimeError("Cannot start a closed notification queue service")
        self.workers.start()
        logger.info(
            "notification_queue_service_started",
            concurrency=self.workers.concurrency,
        )

    @property
    def is_closed(self) -> bool:
        return self._closed.is_set()

    def wait_closed(self, timeout: Optional[float] = None) -> bool:
        return self._closed.wait(timeout)

    def close(self, timeout: Optional[float] = None) -> bool:
        """Stop claiming, drain in-flight dispatches and release the queue.

        Safe to call more than once and from several signal handlers. The
        first call does the work; later calls wait for it to finish, up to
        their own timeout, and report the same drain outcome.

        Args:
            timeout: Seconds to wait for in-flight dispatches. Defaults to
                shutdown_timeout.

        Returns:
            True if every worker finished within the timeout
        """
        timeout = self.shutdown_timeout if timeout is None else timeout
        with self._close_lock:
            first_call = not self._closing
            self._closing = True

        if not first_call:
            self._closed.wait(timeout)
            return bool(self._drained)

        logger.info("notification_queue_closing", timeout_seconds=timeout)

        self.workers.request_stop()
        self.queue.close()
        self._drained = self.workers.join(timeout)

        logger.info("notification_queue_closed", drained=self._drained)
        self._closed.set()
        return self._drained
