"""Circuit breaker for notification channel transports.

Stops hammering an email or SMS provider that keeps failing:
1. CLOSED state: Normal operation, sends pass through
2. OPEN state: Fast-fail sends without calling the provider
3. HALF_OPEN state: Let a limited number of sends test recovery

State transitions:
- CLOSED -> OPEN: After failure_threshold consecutive failures
- OPEN -> HALF_OPEN: After timeout period expires
- HALF_OPEN -> CLOSED: After a successful send
- HALF_OPEN -> OPEN: If the test send fails

A call "fails" when the wrapped function raises, or when it returns an
OperationResult with a retryable status (provider outage, timeout).
Permanent rejections such as an invalid phone number do not count
against the provider.
"""

import threading
import time
from enum import Enum
from typing import Any, Callable, Optional

import structlog

from infrastructure.operations import OperationResult

logger = structlog.get_logger()


class CircuitState(Enum):
    """Circuit breaker states."""

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreakerOpenError(Exception):
    """Raised when circuit breaker is open and the call is rejected."""


class CircuitBreaker:
    """Circuit breaker guarding one provider.

    Args:
        name: Name of the circuit (typically the channel transport)
        failure_threshold: Consecutive failures before opening
        timeout_seconds: Seconds to wait before attempting recovery (HALF_OPEN)
        half_open_max_calls: Max concurrent calls allowed in HALF_OPEN state
        time_func: Monotonic time source, replaceable in tests
    """

    def __init__(
        self,
        name: str,
        failure_threshold: int = 5,
        timeout_seconds: float = 60,
        half_open_max_calls: int = 1,
        time_func: Callable[[], float] = time.monotonic,
    ):
        self.name = name
        self.failure_threshold = failure_threshold
        self.timeout_seconds = timeout_seconds
        self.half_open_max_calls = half_open_max_calls
        self._time = time_func

        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._opened_at: Optional[float] = None
        self._half_open_calls = 0
        self._lock = threading.Lock()

    @property
    def state(self) -> CircuitState:
        """Get current circuit state."""
        with self._lock:
            return self._state

    def call(self, func: Callable[..., Any], *args, **kwargs) -> Any:
        """Execute func through the circuit breaker.

        Raises:
            CircuitBreakerOpenError: If the circuit is open
            Exception: Any exception raised by func
        """
        with self._lock:
            if self._state == CircuitState.OPEN:
                elapsed = self._time() - (self._opened_at or 0.0)
                if elapsed >= self.timeout_seconds:
                    self._transition(CircuitState.HALF_OPEN)
                else:
                    remaining = int(self.timeout_seconds - elapsed)
                    logger.warning(
                        "circuit_breaker_open",
                        name=self.name,
                        retry_in_seconds=remaining,
                    )
                    raise CircuitBreakerOpenError(
                        f"Circuit breaker '{self.name}' is OPEN. "
                        f"Retry in {remaining} seconds."
                    )

            if self._state == CircuitState.HALF_OPEN:
                if self._half_open_calls >= self.half_open_max_calls:
                    raise CircuitBreakerOpenError(
                        f"Circuit breaker '{self.name}' is HALF_OPEN "
                        f"(max concurrent calls reached)."
                    )
                self._half_open_calls += 1

        try:
            result = func(*args, **kwargs)
        except Exception as e:
            self._on_failure(str(e))
            raise
        finally:
            with self._lock:
                if self._half_open_calls > 0:
                    self._half_open_calls -= 1

        if isinstance(result, OperationResult) and result.is_retryable:
            self._on_failure(result.message)
        else:
            self._on_success()
        return result

    def _on_success(self) -> None:
        with self._lock:
            if self._state == CircuitState.HALF_OPEN:
                self._transition(CircuitState.CLOSED)
            self._failure_count = 0

    def _on_failure(self, error: str) -> None:
        with self._lock:
            self._failure_count += 1
            if self._state == CircuitState.HALF_OPEN:
                logger.warning(
                    "circuit_breaker_recovery_failed", name=self.name, error=error
                )
                self._transition(CircuitState.OPEN)
            elif (
                self._state == CircuitState.CLOSED
                and self._failure_count >= self.failure_threshold
            ):
                logger.error(
                    "circuit_breaker_threshold_exceeded",
                    name=self.name,
                    failure_count=self._failure_count,
                    threshold=self.failure_threshold,
                    error=error,
                )
                self._transition(CircuitState.OPEN)
            else:
                logger.warning(
                    "circuit_breaker_failure",
                    name=self.name,
                    failure_count=self._failure_count,
                    threshold=self.failure_threshold,
                    error=error,
                )

    def _transition(self, state: CircuitState) -> None:
        """Move to state (lock must be held)."""
        logger.info(
            "circuit_breaker_state_changed",
            name=self.name,
            previous=self._state.value,
            state=state.value,
        )
        self._state = state
        self._half_open_calls = 0
        if state == CircuitState.OPEN:
            self._opened_at = self._time()
        elif state == CircuitState.CLOSED:
            self._failure_count = 0
            self._opened_at = None

    def get_stats(self) -> dict:
        """Get circuit breaker statistics."""
        with self._lock:
            return {
                "name": self.name,
                "state": self._state.value,
                "failure_count": self._failure_count,
                "failure_threshold": self.failure_threshold,
            }

    def reset(self) -> None:
        """Manually close the circuit (admin operations and tests)."""
        with self._lock:
            self._transition(CircuitState.CLOSED)
