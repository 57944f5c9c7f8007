"""Notification dispatcher with per-channel delivery logging.

Turns one claimed notification job into per-channel delivery attempts:
- Resolves the recipient's contact data and channel preferences
- Skips channels the user disabled for the category
- Records a delivery log row per attempted channel (pending, then sent/failed)
- Never lets a channel failure abort the remaining channels

The job succeeds once every requested channel has been attempted; each
channel's outcome lives in the delivery log. Only a failed contact or
preference lookup raises out of process(), which the worker reports to
the queue as a retryable failure.

Usage Example:
    from infrastructure.notifications import NotificationDispatcher

    dispatcher = NotificationDispatcher(
        channels={Channel.EMAIL: email_channel, Channel.SMS: sms_channel},
        recipients=recipient_resolver,
        preferences=preference_resolver,
        delivery_log=delivery_log_store,
    )

    result = dispatcher.process(job)
"""

from typing import Dict, List, Optional

import structlog
from infrastructure.notifications.channels.base import (
    MISSING_CONTACT_INFO,
    NotificationChannel,
)
from infrastructure.notifications.delivery_log import DeliveryLogStore
from infrastructure.notifications.models import (
    Channel,
    ChannelOutcome,
    ContactInfo,
    DeliveryLogEntry,
    DeliveryStatus,
    NotificationJob,
)
from infrastructure.notifications.resolvers import (
    PreferenceResolver,
    PreferenceSet,
    RecipientResolver,
    is_channel_enabled,
)
from infrastructure.operations import OperationResult

logger = structlog.get_logger()

CHANNEL_NOT_CONFIGURED = "channel not configured"


class NotificationDispatcher:
    """Per-job, multi-channel notification dispatcher.

    Attributes:
        channels: Dict mapping Channel to its NotificationChannel
        recipients: RecipientResolver for contact data
        preferences: PreferenceResolver for per-category channel settings
        delivery_log: DeliveryLogStore receiving one row per attempt
    """

    def __init__(
        self,
        channels: Dict[Channel, NotificationChannel],
        recipients: RecipientResolver,
        preferences: PreferenceResolver,
        delivery_log: DeliveryLogStore,
    ):
        self.channels = channels
        self.recipients = recipients
        self.preferences = preferences
        self.delivery_log = delivery_log

        logger.info(
            "initialized_notification_dispatcher",
            channels=[c.value for c in channels],
        )

    def __call__(self, job: NotificationJob) -> OperationResult:
        return self.process(job)

    def process(self, job: NotificationJob) -> OperationResult:
        """Attempt every requested channel for a job.

        Returns:
            OperationResult.success with data:
                - results: list of ChannelOutcome dicts, one per requested channel
                - skipped: True when the user does not exist

        Raises:
            Exception: Whatever the recipient or preference lookup raised
        """
        log = logger.bind(notification_id=job.notification_id, user_id=job.user_id)

        contact = self.recipients.get_contact(job.user_id)
        if contact is None:
            log.warning("notification_recipient_not_found")
            return OperationResult.success(
                message="user not found",
                data={"skipped": True, "reason": "user not found", "results": []},
            )

        preferences = self.preferences.get_preferences(job.user_id, job.payload.category)
        if preferences is None:
            log.warning(
                "notification_preferences_missing",
                category=job.payload.category,
                default="all_channels_enabled",
            )

        outcomes = [
            self._process_channel(job, contact, channel, preferences)
            for channel in job.channels
        ]

        sent = sum(1 for o in outcomes if o.status == DeliveryStatus.SENT)
        failed = sum(1 for o in outcomes if o.status == DeliveryStatus.FAILED)
        skipped = sum(1 for o in outcomes if o.skipped)
        log.info(
            "notification_dispatched",
            channel_count=len(outcomes),
            sent=sent,
            failed=failed,
            skipped=skipped,
        )

        return OperationResult.success(
            message=f"Attempted {len(outcomes) - skipped} of {len(outcomes)} channels",
            data={"skipped": False, "results": [o.model_dump(mode="json") for o in outcomes]},
        )

    def _process_channel(
        self,
        job: NotificationJob,
        contact: ContactInfo,
        channel: Channel,
        preferences: Optional[PreferenceSet],
    ) -> ChannelOutcome:
        log = logger.bind(notification_id=job.notification_id, channel=channel.value)

        if not is_channel_enabled(preferences, channel):
            log.info("notification_channel_disabled", category=job.payload.category)
            return ChannelOutcome(channel=channel, skipped=True)

        implementation = self.channels.get(channel)
        if implementation is None:
            log.error("notification_channel_not_configured")
            return self._record_failure(job, channel, CHANNEL_NOT_CONFIGURED)

        if not implementation.writes_delivery_log:
            implementation.attempt(contact, job.payload)
            return ChannelOutcome(channel=channel, status=DeliveryStatus.SENT)

        if implementation.resolve_address(contact) is None:
            log.info("notification_channel_missing_contact")
            return self._record_failure(job, channel, MISSING_CONTACT_INFO)

        try:
            row = self.delivery_log.create(
                DeliveryLogEntry(
                    notification_id=job.notification_id,
                    user_id=job.user_id,
                    channel=channel,
                    status=DeliveryStatus.PENDING,
                )
            )
        except Exception as e:
            log.error("delivery_log_create_failed", error=str(e), exc_info=True)
            return ChannelOutcome(
                channel=channel,
                status=DeliveryStatus.FAILED,
                error_message=f"delivery log unavailable: {str(e)}",
            )

        try:
            result = implementation.attempt(contact, job.payload)
        except Exception as e:
            log.error("notification_channel_exception", error=str(e), exc_info=True)
            result = OperationResult.transient_error(
                message=f"Transport error: {str(e)}", error_code="TRANSPORT_EXCEPTION"
            )

        if result.is_success:
            message_id = (result.data or {}).get("message_id")
            outcome = ChannelOutcome(
                channel=channel,
                status=DeliveryStatus.SENT,
                log_id=row.id,
                provider_message_id=message_id,
            )
            log.info("notification_channel_sent", provider_message_id=message_id)
        else:
            outcome = ChannelOutcome(
                channel=channel,
                status=DeliveryStatus.FAILED,
                log_id=row.id,
                error_message=result.message,
            )
            log.warning(
                "notification_channel_failed",
                error=result.message,
                error_code=result.error_code,
            )

        try:
            self.delivery_log.update_status(
                row.id,  # type: ignore[arg-type]
                outcome.status,  # type: ignore[arg-type]
                provider_message_id=outcome.provider_message_id,
                error_message=outcome.error_message,
            )
        except Exception as e:
            log.error(
                "delivery_log_update_failed",
                log_id=row.id,
                status=outcome.status.value if outcome.status else None,
                error=str(e),
                exc_info=True,
            )
        return outcome

    def _record_failure(
        self, job: NotificationJob, channel: Channel, reason: str
    ) -> ChannelOutcome:
        """Write a row directly in FAILED state without a transport call."""
        outcome = ChannelOutcome(
            channel=channel, status=DeliveryStatus.FAILED, error_message=reason
        )
        try:
            row = self.delivery_log.create(
                DeliveryLogEntry(
                    notification_id=job.notification_id,
                    user_id=job.user_id,
                    channel=channel,
                    status=DeliveryStatus.FAILED,
                    error_message=reason,
                )
            )
            outcome.log_id = row.id
        except Exception as e:
            logger.error(
                "delivery_log_create_failed",
                notification_id=job.notification_id,
                channel=channel.value,
                error=str(e),
                exc_info=True,
            )
        return outcome

    def channel_health(self) -> List[dict]:
        """Health of every registered channel."""
        return [
            {"channel": channel.value, **impl.health_check().to_dict()}
            for channel, impl in self.channels.items()
        ]
