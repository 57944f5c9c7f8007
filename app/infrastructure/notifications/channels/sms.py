"""SMS channel implementation."""

from typing import Optional

import structlog
from infrastructure.notifications.channels.base import (
    NotificationChannel,
    SMSTransport,
)
from infrastructure.notifications.models import Channel, ContactInfo, NotificationPayload
from infrastructure.notifications.rendering import format_phone_number, render_sms
from infrastructure.operations import OperationResult
from infrastructure.resilience.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerOpenError,
)

logger = structlog.get_logger()


class SMSChannel(NotificationChannel):
    """SMS notification channel.

    Normalizes the recipient phone number to E.164 and sends a condensed
    body (see rendering.render_sms). A number that cannot be normalized is
    treated as missing contact info.
    """

    channel = Channel.SMS

    def __init__(
        self,
        transport: SMSTransport,
        client_url: str = "",
        signature: Optional[str] = None,
        circuit_breaker: Optional[CircuitBreaker] = None,
    ):
        self._transport = transport
        self._client_url = client_url
        self._signature = signature
        self._circuit_breaker = circuit_breaker or CircuitBreaker(
            name="sms_channel",
            failure_threshold=5,
            timeout_seconds=60,
        )
        logger.info("initialized_sms_channel")

    def resolve_address(self, contact: ContactInfo) -> Optional[str]:
        phone = format_phone_number(contact.phone)
        if contact.phone and phone is None:
            logger.warning("invalid_phone_number", user_id=contact.user_id)
        return phone

    def attempt(
        self, contact: ContactInfo, payload: NotificationPayload
    ) -> OperationResult:
        phone_number = self.resolve_address(contact)
        if phone_number is None:
            return self.missing_contact()

        body = render_sms(payload, client_url=self._client_url, signature=self._signature)

        try:
            result = self._circuit_breaker.call(
                self._transport.send, phone_number=phone_number, body=body
            )
        except CircuitBreakerOpenError as e:
            return OperationResult.transient_error(
                message=str(e), error_code="CIRCUIT_BREAKER_OPEN"
            )

        if result.is_success:
            logger.info("sms_sent", phone_number=phone_number, length=len(body))
        else:
            logger.warning("sms_failed", phone_number=phone_number, error=result.message)
        return result

    def get_circuit_breaker_stats(self) -> dict:
        return self._circuit_breaker.get_stats()
