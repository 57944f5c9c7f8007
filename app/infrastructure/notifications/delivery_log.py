"""Delivery log storage.

One record per (notification, channel) attempt. Rows are only ever created
and moved from PENDING to a terminal status; nothing here deletes them.
"""

import threading
from datetime import datetime, timezone
from typing import Dict, List, Optional, Protocol

import structlog
from infrastructure.notifications.exceptions import (
    DeliveryLogNotFoundError,
    DeliveryLogStateError,
)
from infrastructure.notifications.models import (
    DeliveryLogEntry,
    DeliveryStatus,
    DeliverySummary,
)

logger = structlog.get_logger()


class DeliveryLogStore(Protocol):
    """Storage interface for delivery log rows.

    Methods:
        create: Persist a new row and return it with its id
        update_status: Move a PENDING row to its terminal status (once)
        list_for_notification: Rows for one notification, oldest first
        summary: Status counts overall and per channel
    """

    def create(self, entry: DeliveryLogEntry) -> DeliveryLogEntry: ...

    def update_status(
        self,
        log_id: str,
        status: DeliveryStatus,
        provider_message_id: Optional[str] = None,
        error_message: Optional[str] = None,
    ) -> DeliveryLogEntry: ...

    def list_for_notification(self, notification_id: str) -> List[DeliveryLogEntry]: ...

    def summary(self, notification_id: Optional[str] = None) -> DeliverySummary: ...


def summarize(
    entries: List[DeliveryLogEntry], notification_id: Optional[str] = None
) -> DeliverySummary:
    """Count delivery statuses overall and per channel."""
    summary = DeliverySummary(notification_id=notification_id)
    for entry in entries:
        status = entry.status.value
        summary.total += 1
        setattr(summary, status, getattr(summary, status) + 1)
        channel_counts = summary.by_channel.setdefault(
            entry.channel.value,
            {s.value: 0 for s in DeliveryStatus},
        )
        channel_counts[status] += 1
    return summary


class InMemoryDeliveryLogStore:
    """Thread-safe in-memory DeliveryLogStore."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._rows: Dict[str, DeliveryLogEntry] = {}
        self._next_id = 1

    def create(self, entry: DeliveryLogEntry) -> DeliveryLogEntry:
        with self._lock:
            stored = entry.model_copy(update={"id": str(self._next_id)})
            self._next_id += 1
            self._rows[stored.id] = stored  # type: ignore[index]
        logger.debug(
            "delivery_log_created",
            log_id=stored.id,
            notification_id=stored.notification_id,
            channel=stored.channel.value,
            status=stored.status.value,
        )
        return stored.model_copy()

    def update_status(
        self,
        log_id: str,
        status: DeliveryStatus,
        provider_message_id: Optional[str] = None,
        error_message: Optional[str] = None,
    ) -> DeliveryLogEntry:
        with self._lock:
            current = self._rows.get(log_id)
            if current is None:
                raise DeliveryLogNotFoundError(log_id)
            if current.status != DeliveryStatus.PENDING:
                raise DeliveryLogStateError(
                    f"Delivery log row {log_id} is already {current.status.value}"
                )
            updated = current.model_copy(
                update={
                    "status": status,
                    "provider_message_id": provider_message_id,
                    "error_message": error_message,
                    "updated_at": datetime.now(timezone.utc),
                }
            )
            self._rows[log_id] = updated
        return updated.model_copy()

    def list_for_notification(self, notification_id: str) -> List[DeliveryLogEntry]:
        with self._lock:
            rows = [r for r in self._rows.values() if r.notification_id == notification_id]
        return sorted((r.model_copy() for r in rows), key=lambda r: int(r.id or 0))

    def all(self) -> List[DeliveryLogEntry]:
        with self._lock:
            return [r.model_copy() for r in self._rows.values()]

    def summary(self, notification_id: Optional[str] = None) -> DeliverySummary:
        if notification_id is None:
            return summarize(self.all())
        return summarize(self.list_for_notification(notification_id), notification_id)
