"""Job queue exceptions."""


class QueueError(Exception):
    """Base class for job queue errors."""


class JobValidationError(QueueError, ValueError):
    """Raised when a job is rejected at admission (e.g. empty dedup key)."""


class QueueClosedError(QueueError):
    """Raised when enqueueing on a queue that has been closed."""


class EntryNotFoundError(QueueError, KeyError):
    """Raised when an entry id is unknown to the queue."""
