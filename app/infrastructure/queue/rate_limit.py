"""Sliding window rate limiter for queue claims."""

import threading
from collections import deque
from typing import Deque, Optional

from infrastructure.queue.clock import Clock, SystemClock


class SlidingWindowRateLimiter:
    """Admit at most ``max_calls`` acquisitions in any rolling window.

    Keeps the timestamps of admitted calls; a call is admitted when fewer
    than ``max_calls`` of them fall inside the last ``window_seconds``.
    The limiter only throttles, it never reorders callers.

    Example:
        limiter = SlidingWindowRateLimiter(max_calls=100, window_seconds=60)
        wait = limiter.try_acquire()
        if wait:
            # no token, retry in `wait` seconds
    """

    def __init__(
        self,
        max_calls: int,
        window_seconds: float,
        clock: Optional[Clock] = None,
    ) -> None:
        if max_calls < 1:
            raise ValueError("max_calls must be at least 1")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be positive")
        self.max_calls = max_calls
        self.window_seconds = window_seconds
        self._clock = clock or SystemClock()
        self._calls: Deque[float] = deque()
        self._lock = threading.Lock()

    def _evict(self, now: float) -> None:
        while self._calls and self._calls[0] <= now - self.window_seconds:
            self._calls.popleft()

    def try_acquire(self) -> float:
        """Take a token if one is free.

        Returns:
            0.0 if the call was admitted, otherwise the number of seconds
            until the oldest call leaves the window.
        """
        with self._lock:
            now = self._clock.now().timestamp()
            self._evict(now)
            if len(self._calls) < self.max_calls:
                self._calls.append(now)
                return 0.0
            return self._calls[0] + self.window_seconds - now

    def in_window(self) -> int:
        """Number of admitted calls in the current window."""
        with self._lock:
            self._evict(self._clock.now().timestamp())
            return len(self._calls)

    def release(self) -> None:
        """Give back the most recent token when the claim it paid for found nothing."""
        with self._lock:
            if self._calls:
                self._calls.pop()
