"""Tests for rate limiting functionality."""

import pytest

from slaplist import rate_limiter
from slaplist.rate_limiter import RateLimiter


class ManualClock:
    """Monotonic clock whose sleep just moves time forward."""

    def __init__(self):
        self.now = 100.0
        self.sleeps = []

    def time(self):
        return self.now

    def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def manual():
    return ManualClock()


def make_limiter(manual, calls_per_second, burst_size=None):
    return RateLimiter(calls_per_second, burst_size, clock=manual.time, sleep=manual.sleep)


def test_rate_limiter_basic(manual):
    """Test basic rate limiting."""
    limiter = make_limiter(manual, 2.0, burst_size=2)

    # Should allow burst
    assert limiter.acquire(blocking=False) is True
    assert limiter.acquire(blocking=False) is True

    # Should block after burst
    assert limiter.acquire(blocking=False) is False

    # Should allow after waiting for 1 token to refill
    manual.now += 0.6
    assert limiter.acquire(blocking=False) is True


def test_rate_limiter_blocking(manual):
    """Test blocking rate limiting."""
    limiter = make_limiter(manual, 5.0, burst_size=1)

    assert limiter.acquire(blocking=False) is True

    # Should wait 1/5 s and succeed
    assert limiter.acquire(blocking=True) is True
    assert sum(manual.sleeps) == pytest.approx(0.2)
    assert limiter.get_stats()["seconds_waited"] == pytest.approx(0.2)


def test_rate_limiter_timeout(manual):
    """Test timeout behavior."""
    limiter = make_limiter(manual, 1.0, burst_size=1)

    assert limiter.acquire(blocking=False) is True

    assert limiter.acquire(blocking=True, timeout=0.2) is False
    assert sum(manual.sleeps) == pytest.approx(0.2)


def test_rate_limiter_stats(manual):
    """Test statistics tracking."""
    limiter = make_limiter(manual, 2.0, burst_size=5)

    for _ in range(3):
        limiter.acquire()

    stats = limiter.get_stats()

    assert stats["calls_last_minute"] == 3
    assert stats["tokens_available"] == 2  # 5 - 3 = 2
    assert stats["burst_size"] == 5
    assert stats["rate"] == 2.0


def test_rate_limiter_refill(manual):
    """Test token refill is capped at the burst size."""
    limiter = make_limiter(manual, 10.0, burst_size=2)

    limiter.acquire()
    limiter.acquire()

    manual.now += 0.3  # 3 tokens worth of time

    assert limiter.get_stats()["tokens_available"] == 2


def test_calls_age_out_of_last_minute(manual):
    limiter = make_limiter(manual, 10.0, burst_size=5)
    limiter.acquire()

    manual.now += 61

    assert limiter.get_stats()["calls_last_minute"] == 0


def test_global_stats():
    stats = rate_limiter.get_rate_limit_stats()

    assert set(stats) == {"youtube"}
    assert stats["youtube"]["burst_size"] == 5
