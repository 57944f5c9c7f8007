"""Context binding for structured logging.

Binds job- or request-scoped context to every log entry emitted inside a
block, so all lines produced while a worker processes a notification carry
the same correlation ID.

Usage:
    from infrastructure.logging import bind_log_context

    with bind_log_context(correlation_id="notification-n-1", entry_id="12"):
        logger.info("processing_notification")

Dependencies:
    - structlog.contextvars
"""

import uuid
from contextlib import contextmanager
from typing import Any, Generator, Optional

import structlog


@contextmanager
def bind_log_context(
    correlation_id: Optional[str] = None,
    **extra_context: Any,
) -> Generator[None, None, None]:
    """Bind context to all logs within the context manager.

    Args:
        correlation_id: Unique identifier for the unit of work.
            Auto-generated if not provided.
        **extra_context: Additional key-value pairs to include in logs.
            None values are dropped.

    Yields:
        None - context is bound to structlog's context vars.

    Example:
        with bind_log_context(
            correlation_id=job.notification_id,
            worker_id="notification-worker-1",
        ):
            dispatcher.process(job)
    """
    context: dict[str, Any] = {"correlation_id": correlation_id or str(uuid.uuid4())}
    context.update({k: v for k, v in extra_context.items() if v is not None})

    structlog.contextvars.bind_contextvars(**context)
    try:
        yield
    finally:
        structlog.contextvars.unbind_contextvars(*context.keys())


def get_correlation_id() -> Optional[str]:
    """Get the current correlation ID from the logging context.

    Returns:
        The correlation ID if set, None otherwise.
    """
    ctx = structlog.contextvars.get_contextvars()
    return ctx.get("correlation_id")


def clear_log_context() -> None:
    """Clear all bound context from the logging context."""
    structlog.contextvars.clear_contextvars()
