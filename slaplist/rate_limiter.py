"""Request pacing for provider APIs.

This paces bursts of requests (e.g. paginating a long playlist). The daily
unit budget is a separate concern handled by quota.QuotaManager.
"""

import sys
import time
from collections import deque
from threading import Lock
from typing import Callable, Optional


class RateLimiter:
    """Token bucket rate limiter with thread safety."""

    def __init__(
        self,
        calls_per_second: float,
        burst_size: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Initialize rate limiter.

        Args:
            calls_per_second: Maximum sustained calls per second
            burst_size: Maximum burst size (defaults to calls_per_second)
            clock: Monotonic time source in seconds
            sleep: Called with the number of seconds to wait
        """
        self.rate = calls_per_second
        self.burst = burst_size or max(1, int(calls_per_second))
        self.clock = clock
        self.sleep = sleep
        self.tokens = float(self.burst)
        self.last_update = clock()
        self.lock = Lock()
        self.call_times = deque(maxlen=100)
        self.total_wait = 0.0

    def _refill(self, now: float):
        elapsed = now - self.last_update
        self.tokens = min(self.burst, self.tokens + elapsed * self.rate)
        self.last_update = now

    def acquire(self, blocking: bool = True, timeout: Optional[float] = None) -> bool:
        """
        Acquire permission to make an API call.

        Args:
            blocking: If True, wait until a token is available
            timeout: Maximum time to wait in seconds (None = infinite)

        Returns:
            True if acquired, False if timeout or non-blocking and no tokens
        """
        start_time = self.clock()

        while True:
            with self.lock:
                now = self.clock()
                self._refill(now)

                if self.tokens >= 1:
                    self.tokens -= 1
                    self.call_times.append(now)
                    return True

                if not blocking:
                    return False

                wait_time = (1 - self.tokens) / self.rate

            if timeout is not None:
                remaining = timeout - (self.clock() - start_time)
                if remaining <= 0:
                    return False
                wait_time = min(wait_time, remaining)

            self.total_wait += wait_time
            self.sleep(wait_time)

    def get_stats(self) -> dict:
        """Get statistics about recent API calls."""
        with self.lock:
            now = self.clock()
            self._refill(now)
            recent_calls = [t for t in self.call_times if now - t < 60]

            return {
                "calls_last_minute": len(recent_calls),
                "tokens_available": int(self.tokens),
                "burst_size": self.burst,
                "rate": self.rate,
                "seconds_waited": round(self.total_wait, 3),
            }


# Shared by every YouTubeClient in the process. Roughly the 50 ms spacing
# between playlist pages, with room for a short burst.
_youtube_limiter = RateLimiter(calls_per_second=20.0, burst_size=5)


def youtube_rate_limit(show_progress: bool = False) -> None:
    """Apply YouTube Data API request pacing."""
    if show_progress:
        stats = _youtube_limiter.get_stats()
        if stats["tokens_available"] < 1:
            print("⏳ Rate limiting active (YouTube API)...", file=sys.stderr)
    _youtube_limiter.acquire()


def get_rate_limit_stats() -> dict:
    """Get statistics for all rate limiters."""
    return {"youtube": _youtube_limiter.get_stats()}
