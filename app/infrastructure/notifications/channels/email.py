"""Email channel implementation."""

from typing import Optional

import structlog
from infrastructure.notifications.channels.base import (
    EmailTransport,
    NotificationChannel,
)
from infrastructure.notifications.models import Channel, ContactInfo, NotificationPayload
from infrastructure.notifications.rendering import render_email
from infrastructure.operations import OperationResult
from infrastructure.resilience.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerOpenError,
)

logger = structlog.get_logger()


class EmailChannel(NotificationChannel):
    """Email notification channel.

    Renders the payload into subject, HTML and plain-text bodies and sends
    it through the configured EmailTransport, guarded by a circuit breaker.
    """

    channel = Channel.EMAIL

    def __init__(
        self,
        transport: EmailTransport,
        client_url: str = "",
        sender_name: str = "",
        circuit_breaker: Optional[CircuitBreaker] = None,
    ):
        self._transport = transport
        self._client_url = client_url
        self._sender_name = sender_name
        self._circuit_breaker = circuit_breaker or CircuitBreaker(
            name="email_channel",
            failure_threshold=5,
            timeout_seconds=60,
        )
        logger.info("initialized_email_channel")

    def resolve_address(self, contact: ContactInfo) -> Optional[str]:
        email = (contact.email or "").strip()
        return email or None

    def attempt(
        self, contact: ContactInfo, payload: NotificationPayload
    ) -> OperationResult:
        to = self.resolve_address(contact)
        if to is None:
            return self.missing_contact()

        rendered = render_email(
            payload,
            recipient_name=contact.display_name,
            client_url=self._client_url,
            sender_name=self._sender_name,
        )

        try:
            result = self._circuit_breaker.call(
                self._transport.send,
                to=to,
                subject=rendered.subject,
                html_body=rendered.html_body,
                text_body=rendered.text_body,
            )
        except CircuitBreakerOpenError as e:
            return OperationResult.transient_error(
                message=str(e), error_code="CIRCUIT_BREAKER_OPEN"
            )

        if result.is_success:
            logger.info("email_sent", to=to, category=payload.category)
        else:
            logger.warning("email_failed", to=to, error=result.message)
        return result

    def get_circuit_breaker_stats(self) -> dict:
        return self._circuit_breaker.get_stats()
