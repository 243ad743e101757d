"""
Tests for rate_limiter module.
"""
import threading
from unittest.mock import patch

import pytest

from evidence_transcriber.rate_limiter import RateLimiter, get_openai_rate_limiter


class FakeClock:
    """monotonic()/sleep() pair where sleeping advances the clock."""

    def __init__(self, start=1000.0):
        self.now = start
        self.sleeps = []

    def monotonic(self):
        return self.now

    def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def clock():
    fake = FakeClock()
    with patch("evidence_transcriber.rate_limiter.time", fake):
        yield fake


class TestRateLimiter:
    """Tests for RateLimiter."""

    def test_calls_within_limit_do_not_wait(self, clock):
        limiter = RateLimiter(max_calls=3, time_window=60)

        for _ in range(3):
            limiter.acquire()

        assert clock.sleeps == []
        assert limiter.remaining() == 0

    def test_waits_for_oldest_call_to_leave_window(self, clock):
        limiter = RateLimiter(max_calls=2, time_window=60)

        limiter.acquire()
        clock.now = 1010.0
        limiter.acquire()
        clock.now = 1020.0
        limiter.acquire()

        assert clock.sleeps == [40.0]
        assert clock.now == 1060.0

    def test_old_calls_expire(self, clock):
        limiter = RateLimiter(max_calls=2, time_window=60)
        limiter.acquire()
        limiter.acquire()

        clock.now = 1061.0

        assert limiter.remaining() == 2
        limiter.acquire()
        assert clock.sleeps == []

    def test_remaining(self, clock):
        limiter = RateLimiter(max_calls=5, time_window=60)
        limiter.acquire()
        limiter.acquire()

        assert limiter.remaining() == 3

    def test_concurrent_acquire_never_exceeds_limit(self):
        limiter = RateLimiter(max_calls=20, time_window=3600)

        threads = [threading.Thread(target=limiter.acquire) for _ in range(20)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert limiter.remaining() == 0

    def test_shared_openai_limiter(self):
        limiter = get_openai_rate_limiter()

        assert limiter is get_openai_rate_limiter()
        assert limiter.max_calls == 50
        assert limiter.time_window == 60
