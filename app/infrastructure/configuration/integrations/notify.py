"""GC Notify integration settings."""

from pydantic import Field

from infrastructure.configuration.base import IntegrationSettings


class NotifySettings(IntegrationSettings):
    """GC Notify API configuration used by the email and SMS transports.

    Environment Variables:
        NOTIFY_API_URL: GC Notify API endpoint URL
        NOTIFY_CLIENT_ID: Service id used as the JWT issuer
        NOTIFY_CLIENT_SECRET: Service API secret used to sign the JWT
        NOTIFY_EMAIL_TEMPLATE_ID: Template rendering the {subject}/{body} email
        NOTIFY_SMS_TEMPLATE_ID: Template rendering the {body} SMS
        NOTIFY_SENDER_NAME: Name used in the email footer and SMS signature
        NOTIFY_CLIENT_URL: Frontend base URL prepended to action links
        NOTIFY_REQUEST_TIMEOUT_SECONDS: HTTP timeout for provider calls

    Example:
        ```python
        from infrastructure.services import get_settings

        settings = get_settings()

        api_url = settings.notify.NOTIFY_API_URL
        sender = settings.notify.NOTIFY_SENDER_NAME
        ```
    """

    NOTIFY_API_URL: str = Field(default="", alias="NOTIFY_API_URL")
    NOTIFY_CLIENT_ID: str | None = Field(default=None, alias="NOTIFY_CLIENT_ID")
    NOTIFY_CLIENT_SECRET: str | None = Field(
        default=None, alias="NOTIFY_CLIENT_SECRET"
    )
    NOTIFY_EMAIL_TEMPLATE_ID: str = Field(default="", alias="NOTIFY_EMAIL_TEMPLATE_ID")
    NOTIFY_SMS_TEMPLATE_ID: str = Field(default="", alias="NOTIFY_SMS_TEMPLATE_ID")
    NOTIFY_SENDER_NAME: str = Field(default="T3 Mechanical", alias="NOTIFY_SENDER_NAME")
    NOTIFY_CLIENT_URL: str = Field(default="", alias="NOTIFY_CLIENT_URL")
    NOTIFY_REQUEST_TIMEOUT_SECONDS: int = Field(
        default=60, alias="NOTIFY_REQUEST_TIMEOUT_SECONDS"
    )

    @property
    def is_configured(self) -> bool:
        """True when the API URL and credentials are all present."""
        return bool(
            self.NOTIFY_API_URL and self.NOTIFY_CLIENT_ID and self.NOTIFY_CLIENT_SECRET
        )
