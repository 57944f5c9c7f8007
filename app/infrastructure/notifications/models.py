"""Notification delivery models.

Jobs, contact data and delivery log records exchanged between the queue
control service, the dispatcher and the delivery log store.

Uses Pydantic BaseModel for:
- Runtime input validation at enqueue time
- Type safety with proper error messages
- Consistency with the API layer (api/routes/notifications.py)
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Channel(str, Enum):
    """Delivery medium requested for a notification."""

    EMAIL = "email"
    SMS = "sms"
    PUSH = "push"


class NotificationPriority(str, Enum):
    """Notification priority levels.

    Determines queue ordering: every waiting HIGH job is claimed before any
    MEDIUM job, and every MEDIUM job before any LOW job.
    """

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @property
    def rank(self) -> int:
        """Queue rank, lower is served first."""
        return _PRIORITY_RANKS[self]


_PRIORITY_RANKS = {
    NotificationPriority.HIGH: 1,
    NotificationPriority.MEDIUM: 2,
    NotificationPriority.LOW: 3,
}


class DeliveryStatus(str, Enum):
    """Outcome of one channel attempt, as recorded in the delivery log."""

    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"


class NotificationPayload(BaseModel):
    """Content of a notification.

    Attributes:
        category: Preference category (e.g., 'billing', 'scheduling')
        title: Email subject and push title
        message: Full message body
        short_message: Optional condensed body preferred for SMS
        priority: NotificationPriority (default: MEDIUM)
        action_url: Optional path appended to the client URL for links
    """

    model_config = ConfigDict(frozen=True)

    category: str
    title: str = ""
    message: str
    short_message: Optional[str] = None
    priority: NotificationPriority = NotificationPriority.MEDIUM
    action_url: Optional[str] = None


class NotificationJob(BaseModel):
    """A request to notify one user over one or more channels.

    The notification_id is the dedup key: while a job with the same id is
    waiting, delayed or being processed, enqueueing it again is a no-op.

    Example:
        job = NotificationJob(
            notification_id="n-1",
            user_id="u-1",
            channels=["email", "sms"],
            payload={"category": "billing", "priority": "high", "message": "Invoice due"},
        )
    """

    model_config = ConfigDict(frozen=True)

    notification_id: str
    user_id: str
    channels: List[Channel] = Field(..., min_length=1)
    payload: NotificationPayload

    @field_validator("notification_id", "user_id")
    @classmethod
    def validate_identifier(cls, v: str) -> str:
        """Ensure identifiers are not blank."""
        if not v or not v.strip():
            raise ValueError("Identifier cannot be empty")
        return v.strip()

    @field_validator("channels")
    @classmethod
    def dedupe_channels(cls, v: List[Channel]) -> List[Channel]:
        """Drop repeated channels, keeping first-seen order."""
        return list(dict.fromkeys(v))

    @property
    def dedup_key(self) -> str:
        return self.notification_id

    @property
    def priority_rank(self) -> int:
        return self.payload.priority.rank

    @property
    def job_id(self) -> str:
        """Stable external identifier used in logs and API responses."""
        return f"notification-{self.notification_id}"


class ContactInfo(BaseModel):
    """Addressing data for a user.

    Attributes:
        user_id: User identifier
        email: Email address, if on file
        phone: Phone number as stored, if on file (normalized before SMS)
        display_name: Name used in greetings
    """

    user_id: str
    email: Optional[str] = None
    phone: Optional[str] = None
    display_name: Optional[str] = None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DeliveryLogEntry(BaseModel):
    """Audit record of one channel attempt for one notification.

    Rows are created PENDING right before a transport call and moved to
    SENT or FAILED once. Rows for missing contact data are created FAILED.
    """

    id: Optional[str] = None
    notification_id: str
    user_id: str
    channel: Channel
    status: DeliveryStatus = DeliveryStatus.PENDING
    provider_message_id: Optional[str] = None
    error_message: Optional[str] = None
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    def to_row(self) -> Dict[str, Any]:
        """Persisted row shape."""
        return self.model_dump(mode="json", exclude={"id"})


class ChannelOutcome(BaseModel):
    """Result of processing one requested channel within a dispatch.

    Attributes:
        channel: Channel processed
        status: SENT, FAILED or None when the channel was skipped
        skipped: True when the channel was disabled by preference
        log_id: Delivery log row id, if one was written
        provider_message_id: Provider id on success
        error_message: Failure reason
    """

    channel: Channel
    status: Optional[DeliveryStatus] = None
    skipped: bool = False
    log_id: Optional[str] = None
    provider_message_id: Optional[str] = None
    error_message: Optional[str] = None


class DeliverySummary(BaseModel):
    """Delivery log counts, overall and per channel."""

    notification_id: Optional[str] = None
    total: int = 0
    sent: int = 0
    failed: int = 0
    pending: int = 0
    by_channel: Dict[str, Dict[str, int]] = Field(default_factory=dict)
