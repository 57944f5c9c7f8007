"""Resilience patterns for notification delivery.

Circuit breakers guard the email and SMS provider transports.
Job-level retries with exponential backoff live in infrastructure.queue.
"""

from infrastructure.resilience.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerOpenError,
    CircuitState,
)

__all__ = [
    "CircuitBreaker",
    "CircuitBreakerOpenError",
    "CircuitState",
]
