"""Notification delivery.

Fans a "notify this user" job out over email, SMS and push with:
- Per-user, per-category channel preferences (fail-open)
- One delivery log row per attempted channel
- Circuit breakers around provider transports
- Queue-backed retries when contact or preference lookups fail

Usage:
    from infrastructure.notifications import NotificationJob
    from infrastructure.services import get_notification_service

    service = get_notification_service()
    entry = service.enqueue(
        NotificationJob(
            notification_id="n-1",
            user_id="u-1",
            channels=["email", "sms"],
            payload={"category": "billing", "priority": "high", "message": "Invoice due"},
        )
    )
"""

# Models
from infrastructure.notifications.models import (
    Channel,
    ChannelOutcome,
    ContactInfo,
    DeliveryLogEntry,
    DeliveryStatus,
    DeliverySummary,
    NotificationJob,
    NotificationPayload,
    NotificationPriority,
)

# Errors
from infrastructure.notifications.exceptions import (
    DeliveryLogError,
    DeliveryLogNotFoundError,
    DeliveryLogStateError,
    NotificationError,
)

# Collaborators
from infrastructure.notifications.delivery_log import (
    DeliveryLogStore,
    InMemoryDeliveryLogStore,
)
from infrastructure.notifications.resolvers import (
    InMemoryPreferenceResolver,
    InMemoryRecipientResolver,
    LoggingRealtimePublisher,
    PreferenceResolver,
    RealtimePublisher,
    RecipientResolver,
)

# Channels
from infrastructure.notifications.channels import (
    EmailChannel,
    NotificationChannel,
    PushChannel,
    SMSChannel,
)

# Dispatcher and service
from infrastructure.notifications.dispatcher import NotificationDispatcher
from infrastructure.notifications.service import NotificationQueueService

__all__ = [
    # Models
    "Channel",
    "ChannelOutcome",
    "ContactInfo",
    "DeliveryLogEntry",
    "DeliveryStatus",
    "DeliverySummary",
    "NotificationJob",
    "NotificationPayload",
    "NotificationPriority",
    # Errors
    "NotificationError",
    "DeliveryLogError",
    "DeliveryLogNotFoundError",
    "DeliveryLogStateError",
    # Collaborators
    "DeliveryLogStore",
    "InMemoryDeliveryLogStore",
    "RecipientResolver",
    "PreferenceResolver",
    "RealtimePublisher",
    "InMemoryRecipientResolver",
    "InMemoryPreferenceResolver",
    "LoggingRealtimePublisher",
    # Channels
    "NotificationChannel",
    "EmailChannel",
    "PushChannel",
    "SMSChannel",
    # Dispatcher and service
    "NotificationDispatcher",
    "NotificationQueueService",
]
