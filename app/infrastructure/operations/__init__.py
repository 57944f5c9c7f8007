"""Operation result types, status enums and error classifiers.

Standardized result types shared by channel transports, channels, the
dispatcher and the job queue.
"""

from infrastructure.operations.classifiers import (
    classify_http_response,
    classify_request_exception,
)
from infrastructure.operations.result import OperationResult
from infrastructure.operations.status import OperationStatus

__all__ = [
    "OperationResult",
    "OperationStatus",
    "classify_http_response",
    "classify_request_exception",
]
