"""Token-bucket rate limiting for alert delivery."""

from __future__ import annotations

import time
from collections.abc import Callable


class TokenBucket:
    """A simple token bucket that refills at a fixed rate.

    *clock* returns seconds on a monotonic scale; tests pass a fake.
    """

    def __init__(
        self,
        rate: float,
        capacity: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if rate <= 0:
            raise ValueError("rate must be positive")
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.rate = rate
        self.capacity = capacity
        self.tokens = capacity
        self._clock = clock
        self._last_refill = clock()

    def _refill(self) -> None:
        now = self._clock()
        elapsed = max(0.0, now - self._last_refill)
        self.tokens = min(self.capacity, self.tokens + elapsed * self.rate)
        self._last_refill = now

    def try_acquire(self) -> bool:
        """Try to consume one token. Returns True if successful."""
        self._refill()
        if self.tokens >= 1.0:
            self.tokens -= 1.0
            return True
        return False

    def time_until_available(self) -> float:
        """Seconds until at least one token is available."""
        self._refill()
        if self.tokens >= 1.0:
            return 0.0
        return (1.0 - self.tokens) / self.rate


class RateLimiter:
    """Admission control for one destination (or the global send path).

    Rejected sends are not queued; the caller records them and moves on.
    """

    def __init__(self, bucket: TokenBucket) -> None:
        self._bucket = bucket

    @classmethod
    def per_hour(
        cls,
        max_per_hour: int,
        burst: int,
        clock: Callable[[], float] = time.monotonic,
    ) -> RateLimiter:
        return cls(TokenBucket(rate=max_per_hour / 3600.0, capacity=float(burst), clock=clock))

    @classmethod
    def per_minute(
        cls,
        max_per_minute: int,
        burst: int,
        clock: Callable[[], float] = time.monotonic,
    ) -> RateLimiter:
        return cls(TokenBucket(rate=max_per_minute / 60.0, capacity=float(burst), clock=clock))

    def allow(self) -> bool:
        return self._bucket.try_acquire()

    def retry_after(self) -> float:
        return self._bucket.time_until_available()
