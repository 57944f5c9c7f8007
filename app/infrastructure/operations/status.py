"""Operation status enumeration.

Classifies the outcome of transport calls and notification jobs so the
queue can decide between completing, retrying and failing a job.
"""

from enum import Enum


class OperationStatus(Enum):
    """Status codes for operation results.

    Attributes:
        SUCCESS: Operation completed successfully
        TRANSIENT_ERROR: Retryable error (network, timeout, rate limit, lookup outage)
        PERMANENT_ERROR: Non-retryable error (validation, rejected destination)
        UNAUTHORIZED: Provider rejected the credentials
        NOT_FOUND: Resource not found
    """

    SUCCESS = "success"
    TRANSIENT_ERROR = "transient_error"
    PERMANENT_ERROR = "permanent_error"
    UNAUTHORIZED = "unauthorized"
    NOT_FOUND = "not_found"
