"""Notification channel implementations."""

from infrastructure.notifications.channels.base import (
    MISSING_CONTACT_INFO,
    EmailTransport,
    NotificationChannel,
    SMSTransport,
)
from infrastructure.notifications.channels.email import EmailChannel
from infrastructure.notifications.channels.push import PushChannel
from infrastructure.notifications.channels.sms import SMSChannel

__all__ = [
    "MISSING_CONTACT_INFO",
    "EmailTransport",
    "SMSTransport",
    "NotificationChannel",
    "EmailChannel",
    "PushChannel",
    "SMSChannel",
]
