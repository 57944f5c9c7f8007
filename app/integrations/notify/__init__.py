"""Notify module for sending email and SMS through the GC Notify API."""

from .client import (
    epoch_seconds,
    create_jwt_token,
    create_authorization_header,
    post_event,
)
from .transports import NotifyEmailTransport, NotifySMSTransport

__all__ = [
    "epoch_seconds",
    "create_jwt_token",
    "create_authorization_header",
    "post_event",
    "NotifyEmailTransport",
    "NotifySMSTransport",
]
