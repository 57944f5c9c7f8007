"""Push (in-app) channel implementation."""

import structlog
from infrastructure.notifications.channels.base import NotificationChannel
from infrastructure.notifications.models import Channel, ContactInfo, NotificationPayload
from infrastructure.notifications.resolvers import RealtimePublisher
from infrastructure.operations import OperationResult

logger = structlog.get_logger()


class PushChannel(NotificationChannel):
    """In-app channel backed by the realtime fan-out.

    Push is counted as delivered once handed to the publisher and writes no
    delivery log row. Publisher errors are logged, never reported as a
    failed delivery.
    """

    channel = Channel.PUSH
    writes_delivery_log = False

    def __init__(self, publisher: RealtimePublisher):
        self._publisher = publisher

    def attempt(
        self, contact: ContactInfo, payload: NotificationPayload
    ) -> OperationResult:
        try:
            self._publisher.publish(
                contact.user_id,
                {
                    "category": payload.category,
                    "title": payload.title,
                    "message": payload.message,
                    "priority": payload.priority.value,
                    "action_url": payload.action_url,
                },
            )
        except Exception as e:
            logger.warning(
                "realtime_publish_failed",
                user_id=contact.user_id,
                error=str(e),
            )
        return OperationResult.success(message="Delivered via realtime fan-out")
