"""
Client-side throttling of backend requests.
"""
import threading
import time
from collections import deque
from typing import Deque

from .logger import logger


class RateLimiter:
    """Allow at most ``max_calls`` requests in any ``time_window`` seconds."""

    def __init__(self, max_calls: int = 60, time_window: float = 60):
        self.max_calls = max_calls
        self.time_window = time_window
        self._timestamps: Deque[float] = deque()
        self._lock = threading.Lock()

    def _prune(self, now: float) -> None:
        horizon = now - self.time_window
        while self._timestamps and self._timestamps[0] <= horizon:
            self._timestamps.popleft()

    def acquire(self) -> None:
        """Block until a request slot is free, then take it."""
        while True:
            with self._lock:
                now = time.monotonic()
                self._prune(now)
                if len(self._timestamps) < self.max_calls:
                    self._timestamps.append(now)
                    return
                wait = self._timestamps[0] + self.time_window - now

            logger.warning(
                "Request limit of %d per %.0fs reached, waiting %.1fs",
                self.max_calls, self.time_window, wait
            )
            time.sleep(wait)

    def remaining(self) -> int:
        """Requests that can be made right now without waiting."""
        with self._lock:
            self._prune(time.monotonic())
            return self.max_calls - len(self._timestamps)


# Transcription and chat completions count against one account limit.
_openai_rate_limiter = RateLimiter(max_calls=50, time_window=60)


def get_openai_rate_limiter() -> RateLimiter:
    return _openai_rate_limiter
