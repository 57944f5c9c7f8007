"""Notification delivery exceptions."""


class NotificationError(Exception):
    """Base class for notification delivery errors."""


class DeliveryLogError(NotificationError):
    """Raised when the delivery log store cannot create or update a row."""


class DeliveryLogNotFoundError(DeliveryLogError, KeyError):
    """Raised when updating a delivery log row that does not exist."""


class DeliveryLogStateError(DeliveryLogError):
    """Raised when updating a delivery log row that already has a terminal status."""
