"""Email and SMS transports backed by the GC Notify API.

Both transports send through a generic template whose personalisation
carries the already rendered content, so message formatting stays in the
notification channels.
"""

from typing import TYPE_CHECKING, Any, Dict

import requests
from infrastructure.logging import get_module_logger
from infrastructure.operations import OperationResult
from infrastructure.operations.classifiers import (
    classify_http_response,
    classify_request_exception,
)
from integrations.notify.client import EMAIL_ENDPOINT, SMS_ENDPOINT, post_event

if TYPE_CHECKING:
    from infrastructure.configuration import NotifySettings

logger = get_module_logger()


class _NotifyTransport:
    def __init__(self, settings: "NotifySettings"):
        self._settings = settings

    def _send(self, path: str, payload: Dict[str, Any]) -> OperationResult:
        try:
            response = post_event(self._settings, path, payload)
        except ValueError as e:
            return OperationResult.permanent_error(
                message=f"GC Notify is not configured: {str(e)}",
                error_code="NOTIFY_NOT_CONFIGURED",
            )
        except requests.RequestException as e:
            logger.warning("notify_request_failed", path=path, error=str(e))
            return classify_request_exception(e)

        if response.status_code == 201:
            response_data = response.json()
            return OperationResult.success(
                message="Sent via GC Notify",
                data={"message_id": response_data.get("id")},
            )

        logger.warning(
            "notify_request_rejected",
            path=path,
            response_code=response.status_code,
        )
        return classify_http_response(response)


class NotifyEmailTransport(_NotifyTransport):
    """EmailTransport sending through the configured Notify email template."""

    def send(
        self, to: str, subject: str, html_body: str, text_body: str
    ) -> OperationResult:
        payload = {
            "email_address": to,
            "template_id": self._settings.NOTIFY_EMAIL_TEMPLATE_ID,
            "personalisation": {
                "subject": subject,
                "body": text_body,
                "html_body": html_body,
            },
        }
        return self._send(EMAIL_ENDPOINT, payload)


class NotifySMSTransport(_NotifyTransport):
    """SMSTransport sending through the configured Notify SMS template."""

    def send(self, phone_number: str, body: str) -> OperationResult:
        payload = {
            "phone_number": phone_number,
            "template_id": self._settings.NOTIFY_SMS_TEMPLATE_ID,
            "personalisation": {"body": body},
        }
        return self._send(SMS_ENDPOINT, payload)
