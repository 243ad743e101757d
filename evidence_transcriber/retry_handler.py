"""
Retries with exponential backoff and a circuit breaker for backend calls.

Transient network errors and rate limits are retried inside a single call.
A backend that keeps failing across calls trips the breaker; until the
cooldown ends every call fails fast with BackendUnavailableError, which the
orchestrator records as a gap for the affected chunk.
"""
import functools
import threading
import time
from typing import Any, Callable, Dict, Optional, Tuple, Type

import requests
from openai import APIConnectionError, APITimeoutError, RateLimitError

from .exceptions import BackendUnavailableError
from .logger import logger


class CircuitBreaker:
    """Count backend outcomes and refuse calls after a run of failures."""

    def __init__(self, failure_threshold: int = 10, cooldown_seconds: float = 120.0):
        self.failure_threshold = failure_threshold
        self.cooldown_seconds = cooldown_seconds
        self.total_calls = 0
        self.total_failures = 0
        self.failure_streak = 0
        self._reopen_at: Optional[float] = None
        self._lock = threading.Lock()

    @property
    def is_open(self) -> bool:
        return self._reopen_at is not None

    def record_success(self) -> None:
        with self._lock:
            self.total_calls += 1
            self.failure_streak = 0
            if self._reopen_at is not None:
                logger.info("Backend recovered, circuit breaker closed")
                self._reopen_at = None

    def record_failure(self) -> None:
        with self._lock:
            self.total_calls += 1
            self.total_failures += 1
            self.failure_streak += 1
            if self.failure_streak >= self.failure_threshold and self._reopen_at is None:
                self._reopen_at = time.monotonic() + self.cooldown_seconds
                logger.error(
                    "Circuit breaker opened after %d consecutive failures, refusing calls for %.0fs",
                    self.failure_streak, self.cooldown_seconds
                )

    def allow_request(self) -> bool:
        """
        Return True when a call may go through.

        After the cooldown one trial call is let through; its outcome
        closes the breaker or keeps the failure streak running.
        """
        with self._lock:
            if self._reopen_at is None:
                return True
            if time.monotonic() >= self._reopen_at:
                logger.info("Circuit breaker cooldown over, allowing a trial call")
                self._reopen_at = None
                self.failure_streak = self.failure_threshold - 1
                return True
            return False

    def seconds_until_retry(self) -> float:
        if self._reopen_at is None:
            return 0.0
        return max(0.0, self._reopen_at - time.monotonic())

    def stats(self) -> Dict[str, Any]:
        return {
            "total_calls": self.total_calls,
            "total_failures": self.total_failures,
            "failure_streak": self.failure_streak,
            "open": self.is_open,
            "failure_rate": self.total_failures / max(self.total_calls, 1),
        }


_circuit_breaker = CircuitBreaker()


# Transient transport failures worth another attempt.
NETWORK_EXCEPTIONS = (
    requests.exceptions.ConnectionError,
    requests.exceptions.Timeout,
    APIConnectionError,
    APITimeoutError,
    ConnectionError,
    TimeoutError,
)

RATE_LIMIT_EXCEPTIONS = (
    RateLimitError,
)


def retry_with_backoff(
    max_retries: int = 5,
    initial_delay: float = 1.0,
    max_delay: float = 60.0,
    exponential_base: float = 2.0,
    retry_on: Tuple[Type[Exception], ...] = NETWORK_EXCEPTIONS,
    rate_limit_retry_on: Tuple[Type[Exception], ...] = RATE_LIMIT_EXCEPTIONS,
    rate_limit_min_wait: float = 60.0,
    breaker: Optional[CircuitBreaker] = None,
):
    """
    Decorator retrying a backend call on transient errors.

    Args:
        max_retries: Attempts after the first one.
        initial_delay: Wait before the first retry, in seconds.
        max_delay: Upper bound for the wait between retries.
        exponential_base: Growth factor of the wait.
        retry_on: Exceptions retried with the regular backoff.
        rate_limit_retry_on: Exceptions retried after at least ``rate_limit_min_wait``.
        rate_limit_min_wait: Minimum wait after a rate limit response.
        breaker: Circuit breaker to consult (module-wide one by default).

    Raises:
        BackendUnavailableError: If the breaker is open when an attempt starts.
    """
    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args, **kwargs) -> Any:
            circuit = breaker or _circuit_breaker
            delay = initial_delay

            for attempt in range(max_retries + 1):
                if not circuit.allow_request():
                    raise BackendUnavailableError(
                        f"{func.__name__} refused: backend failing, retry in "
                        f"{circuit.seconds_until_retry():.0f}s"
                    )

                try:
                    result = func(*args, **kwargs)
                except rate_limit_retry_on as e:
                    circuit.record_failure()
                    if attempt == max_retries:
                        logger.error("Rate limit persisted after %d retries in %s: %s", max_retries, func.__name__, e)
                        raise
                    wait = max(rate_limit_min_wait, delay)
                    logger.warning(
                        "Rate limited in %s, retry %d/%d in %.1fs",
                        func.__name__, attempt + 1, max_retries, wait
                    )
                except retry_on as e:
                    circuit.record_failure()
                    if attempt == max_retries:
                        logger.error("%s failed after %d retries: %s", func.__name__, max_retries, e)
                        raise
                    wait = delay
                    logger.warning(
                        "%s in %s, retry %d/%d in %.1fs",
                        type(e).__name__, func.__name__, attempt + 1, max_retries, wait
                    )
                else:
                    circuit.record_success()
                    return result

                time.sleep(wait)
                delay = min(delay * exponential_base, max_delay)

        return wrapper
    return decorator


def retry_api_call(max_retries: int = 3):
    """Retry policy for speech and reasoning backends."""
    return retry_with_backoff(max_retries=max_retries, initial_delay=2.0, max_delay=30.0)


def get_circuit_breaker() -> CircuitBreaker:
    return _circuit_breaker


def log_api_stats() -> None:
    """Log backend call totals for the run."""
    stats = _circuit_breaker.stats()
    logger.info(
        "Backend calls: %d total, %d failed (%.1f%% success), circuit breaker %s",
        stats["total_calls"],
        stats["total_failures"],
        (1 - stats["failure_rate"]) * 100,
        "open" if stats["open"] else "closed",
    )
