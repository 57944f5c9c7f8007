"""Notification channel abstract base class and transport protocols.

All channel implementations (Email, SMS, Push) implement NotificationChannel.
Email and SMS channels hand rendered messages to a provider transport.
"""

from abc import ABC, abstractmethod
from typing import Optional, Protocol

from infrastructure.notifications.models import (
    Channel,
    ContactInfo,
    NotificationPayload,
)
from infrastructure.operations import OperationResult

MISSING_CONTACT_INFO = "missing contact info"


class EmailTransport(Protocol):
    """Provider that sends one rendered email.

    Returns an OperationResult whose data carries the provider message id
    under "message_id", or a failed OperationResult. May raise.
    """

    def send(
        self, to: str, subject: str, html_body: str, text_body: str
    ) -> OperationResult: ...


class SMSTransport(Protocol):
    """Provider that sends one SMS (body at most 1600 characters)."""

    def send(self, phone_number: str, body: str) -> OperationResult: ...


class NotificationChannel(ABC):
    """Abstract base class for notification channels.

    Each channel handles delivery through one medium:
    - EmailChannel: provider email transport
    - SMSChannel: provider SMS transport
    - PushChannel: realtime fan-out

    The dispatcher holds one instance per Channel value and never branches
    on the channel kind; adding a channel is a new subclass plus one entry
    in that mapping.

    Example Implementation:
        class FaxChannel(NotificationChannel):
            channel = Channel.FAX

            def resolve_address(self, contact):
                return contact.fax

            def attempt(self, contact, payload):
                return self._transport.send(contact.fax, payload.message)
    """

    channel: Channel
    writes_delivery_log: bool = True

    def resolve_address(self, contact: ContactInfo) -> Optional[str]:
        """Return the address this channel sends to, or None if missing.

        Channels that need no address (push) return the user id.
        """
        return contact.user_id

    @abstractmethod
    def attempt(
        self, contact: ContactInfo, payload: NotificationPayload
    ) -> OperationResult:
        """Deliver the payload to the contact.

        Returns:
            OperationResult
            - Success: data={"message_id": "<provider id>"}
            - Failure: message holds the reason recorded in the delivery log

        May raise; the dispatcher records an exception as a failed attempt.
        """
        pass

    def health_check(self) -> OperationResult:
        """Report channel health. Channels without a provider are always healthy."""
        return OperationResult.success(message=f"{self.channel.value} channel ready")

    @staticmethod
    def missing_contact() -> OperationResult:
        return OperationResult.permanent_error(
            message=MISSING_CONTACT_INFO, error_code="MISSING_CONTACT_INFO"
        )
