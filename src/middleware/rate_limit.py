"""Per-client rate limiting using an in-memory sliding window."""

import threading
import time
from collections import deque

from src.config import settings
from src.exceptions import RateLimitError


class RateLimiter:
    """
    Sliding-window rate limiter keyed by client IP.

    Keeps the timestamps of recent requests per key behind one lock.
    Keys whose window has fully expired are swept once per window length.
    Note: This is not distributed and resets on restart.
    """

    def __init__(self, window_seconds: int | None = None) -> None:
        """
        Initialize rate limiter with in-memory storage.

        Args:
            window_seconds: Window length (defaults to settings)
        """
        self._requests: dict[str, deque[float]] = {}
        self._window_seconds = window_seconds or settings.rate_limit_window_seconds
        self._lock = threading.Lock()
        self._last_sweep = 0.0

    def __len__(self) -> int:
        with self._lock:
            return len(self._requests)

    def _sweep(self, current_time: float) -> None:
        cutoff = current_time - self._window_seconds
        stale = [key for key, window in self._requests.items() if not window or window[-1] <= cutoff]
        for key in stale:
            del self._requests[key]
        self._last_sweep = current_time

    def check_rate_limit(self, key: str, limit: int, now: float | None = None) -> None:
        """
        Record a request and check it against the limit.

        Args:
            key: Client identifier (usually the client IP)
            limit: Maximum requests allowed per window
            now: Current time (defaults to the clock)

        Raises:
            RateLimitError: If rate limit is exceeded
        """
        current_time = time.time() if now is None else now
        with self._lock:
            if current_time - self._last_sweep >= self._window_seconds:
                self._sweep(current_time)

            window = self._requests.setdefault(key, deque())
            while window and current_time - window[0] >= self._window_seconds:
                window.popleft()

            if len(window) >= limit:
                retry_after = max(1, int(self._window_seconds - (current_time - window[0])))
                raise RateLimitError(
                    message=f"Rate limit exceeded: {limit} requests per {self._window_seconds} seconds",
                    retry_after=retry_after,
                    details={
                        "limit": limit,
                        "window_seconds": self._window_seconds,
                    },
                )

            window.append(current_time)

    def reset_key(self, key: str) -> None:
        """
        Reset rate limit counter for a specific key.

        Args:
            key: Client identifier to reset
        """
        with self._lock:
            self._requests.pop(key, None)

    def clear_all(self) -> None:
        """Clear all rate limit counters (useful for testing)."""
        with self._lock:
            self._requests.clear()


# Global rate limiter instance
rate_limiter = RateLimiter()
