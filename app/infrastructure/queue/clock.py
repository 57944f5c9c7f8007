"""Time sources for the job queue.

The queue reads time only through a Clock so backoff, lease and rate
limit timing can be driven deterministically in tests.
"""

import threading
from datetime import datetime, timedelta, timezone
from typing import Optional, Protocol


class Clock(Protocol):
    """Source of the current UTC time."""

    def now(self) -> datetime:
        """Return the current time as a timezone-aware UTC datetime."""
        ...


class SystemClock:
    """Wall clock backed by datetime.now(timezone.utc)."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class FakeClock:
    """Manually advanced clock for tests.

    Example:
        clock = FakeClock()
        queue = InMemoryJobQueue(config, clock=clock)
        clock.advance(2)  # make a 2 second backoff due
    """

    def __init__(self, start: Optional[datetime] = None) -> None:
        self._now = start or datetime(2026, 1, 1, tzinfo=timezone.utc)
        self._lock = threading.Lock()

    def now(self) -> datetime:
        with self._lock:
            return self._now

    def advance(self, seconds: float) -> datetime:
        """Move the clock forward and return the new time."""
        with self._lock:
            self._now += timedelta(seconds=seconds)
            return self._now
