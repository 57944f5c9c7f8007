"""Structured logging infrastructure.

This package provides centralized logging configuration and utilities
for the notification service using structlog.

Public API:
    - configure_logging(): Initialize logging for the application
    - get_logger(): Get a logger instance with a specific name
    - get_module_logger(): Get a logger for the calling module
    - bind_log_context(): Context manager for job/request-scoped logging
    - get_correlation_id(): Get current correlation ID from context
    - clear_log_context(): Clear all bound context

Processors:
    - mask_sensitive_data(): Redact secrets and tokens
    - mask_contact_data(): Partially mask recipient emails and phone numbers

Example:
    from infrastructure.logging import configure_logging, get_module_logger

    configure_logging()

    logger = get_module_logger()
    logger.info("module_initialized")
"""

from infrastructure.logging.setup import (
    configure_logging,
    get_logger,
    get_module_logger,
)
from infrastructure.logging.context import (
    bind_log_context,
    get_correlation_id,
    clear_log_context,
)
from infrastructure.logging.formatters import (
    mask_sensitive_data,
    mask_contact_data,
    SENSITIVE_PATTERNS,
    CONTACT_FIELDS,
)

__all__ = [
    # Setup
    "configure_logging",
    "get_logger",
    "get_module_logger",
    # Context
    "bind_log_context",
    "get_correlation_id",
    "clear_log_context",
    # Processors
    "mask_sensitive_data",
    "mask_contact_data",
    "SENSITIVE_PATTERNS",
    "CONTACT_FIELDS",
]
