"""Error classifiers for notification provider responses.

Converts HTTP responses and exceptions raised by the ``requests`` library
into standardized OperationResult objects so every transport reports
failures the same way.

Usage:
    from infrastructure.operations.classifiers import (
        classify_http_response,
        classify_request_exception,
    )

    try:
        response = requests.post(url, json=payload, timeout=60)
    except requests.RequestException as exc:
        return classify_request_exception(exc)
    if response.status_code != 201:
        return classify_http_response(response)
"""

from typing import Optional

import requests

from infrastructure.operations.result import OperationResult
from infrastructure.operations.status import OperationStatus


def _retry_after(response: requests.Response) -> Optional[int]:
    value = response.headers.get("Retry-After")
    if value and value.isdigit():
        return int(value)
    return None


def _error_detail(response: requests.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:200]
    errors = body.get("errors") if isinstance(body, dict) else None
    if errors and isinstance(errors, list):
        return "; ".join(str(e.get("message", e)) for e in errors if e)
    return str(body)[:200]


def classify_http_response(response: requests.Response) -> OperationResult:
    """Classify a non-success provider HTTP response.

    Status Code Mapping:
    - 429: Rate limiting → TRANSIENT_ERROR with retry_after
    - 401/403: Credentials rejected → UNAUTHORIZED
    - 404: Not found → NOT_FOUND
    - 5xx: Server error → TRANSIENT_ERROR
    - Other 4xx: Rejected request (bad destination, bad content) → PERMANENT_ERROR

    Args:
        response: Response returned by the provider API

    Returns:
        OperationResult describing the failure
    """
    status_code = response.status_code
    detail = _error_detail(response)
    error_code = f"HTTP_{status_code}"

    if status_code == 429:
        return OperationResult.transient_error(
            f"Provider rate limit exceeded: {detail}",
            error_code="RATE_LIMITED",
            retry_after=_retry_after(response),
        )
    if status_code in (401, 403):
        return OperationResult.error(
            OperationStatus.UNAUTHORIZED,
            f"Provider rejected credentials: HTTP {status_code}",
            error_code=error_code,
        )
    if status_code == 404:
        return OperationResult.error(
            OperationStatus.NOT_FOUND,
            f"Provider resource not found: {detail}",
            error_code=error_code,
        )
    if status_code >= 500:
        return OperationResult.transient_error(
            f"Provider error: HTTP {status_code}",
            error_code=error_code,
        )
    return OperationResult.permanent_error(
        f"Provider rejected request: HTTP {status_code}: {detail}",
        error_code=error_code,
    )


def classify_request_exception(exc: Exception) -> OperationResult:
    """Classify an exception raised while calling a provider.

    Timeouts and connection failures are transient; anything else is
    reported as a transient send error since the provider state is unknown.

    Args:
        exc: Exception raised by the HTTP client

    Returns:
        OperationResult with TRANSIENT_ERROR status
    """
    if isinstance(exc, requests.Timeout):
        return OperationResult.transient_error(
            f"Provider timeout: {exc}", error_code="TIMEOUT"
        )
    if isinstance(exc, requests.ConnectionError):
        return OperationResult.transient_error(
            f"Connection error: {exc}", error_code="CONNECTION_ERROR"
        )
    return OperationResult.transient_error(
        f"Send error: {type(exc).__name__}: {exc}", error_code="SEND_ERROR"
    )
