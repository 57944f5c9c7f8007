"""Custom log processors for structured logging.

Usage:
    from infrastructure.logging.formatters import mask_sensitive_data, mask_contact_data
"""

from typing import Any

# Sensitive field patterns that should be masked in logs
SENSITIVE_PATTERNS = frozenset(
    {
        "password",
        "secret",
        "token",
        "api_key",
        "apikey",
        "authorization",
        "credential",
        "jwt",
        "bearer",
    }
)

# Keys that carry recipient addresses
CONTACT_FIELDS = frozenset({"email", "phone", "phone_number", "to", "recipient"})


def mask_sensitive_data(
    mask_value: str = "***REDACTED***",
    additional_patterns: frozenset[str] | None = None,
):
    """Create a processor that masks sensitive data in log entries.

    Values are replaced for keys containing a sensitive pattern
    (case-insensitive matching).

    Args:
        mask_value: The string to replace sensitive values with.
        additional_patterns: Extra patterns to consider sensitive.

    Returns:
        A structlog processor function.
    """
    patterns = SENSITIVE_PATTERNS
    if additional_patterns:
        patterns = patterns | additional_patterns

    def processor(
        logger: Any, method_name: str, event_dict: dict[str, Any]
    ) -> dict[str, Any]:
        masked_dict = {}
        for key, value in event_dict.items():
            key_lower = key.lower()
            is_sensitive = any(pattern in key_lower for pattern in patterns)
            if is_sensitive and value is not None:
                masked_dict[key] = mask_value
            else:
                masked_dict[key] = value
        return masked_dict

    return processor


def _mask_address(value: str) -> str:
    if "@" in value:
        local, _, domain = value.partition("@")
        return f"{local[:1]}***@{domain}"
    if len(value) > 4:
        return f"{'*' * (len(value) - 4)}{value[-4:]}"
    return "****"


def mask_contact_data(fields: frozenset[str] = CONTACT_FIELDS):
    """Create a processor that partially masks email addresses and phone numbers.

    Keeps the first character of the mailbox and the last four digits of a
    phone number so support staff can still correlate log lines.

    Args:
        fields: Event keys whose string values are recipient addresses.

    Returns:
        A structlog processor function.

    Example:
        processor = mask_contact_data()
        processor(None, "info", {"email": "jane@example.com"})
        # {"email": "j***@example.com"}
    """

    def processor(
        logger: Any, method_name: str, event_dict: dict[str, Any]
    ) -> dict[str, Any]:
        for key, value in event_dict.items():
            if key.lower() in fields and isinstance(value, str) and value:
                event_dict[key] = _mask_address(value)
        return event_dict

    return processor
