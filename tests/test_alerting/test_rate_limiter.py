"""Tests for TokenBucket and RateLimiter."""

from __future__ import annotations

import pytest

from jobguard.alerting.rate_limiter import RateLimiter, TokenBucket


class FakeMonotonic:
    def __init__(self) -> None:
        self.t = 1000.0

    def __call__(self) -> float:
        return self.t


class TestTokenBucket:
    def test_initial_capacity(self) -> None:
        clock = FakeMonotonic()
        bucket = TokenBucket(rate=1.0, capacity=3.0, clock=clock)
        assert [bucket.try_acquire() for _ in range(4)] == [True, True, True, False]

    def test_refill(self) -> None:
        clock = FakeMonotonic()
        bucket = TokenBucket(rate=2.0, capacity=2.0, clock=clock)
        bucket.try_acquire()
        bucket.try_acquire()
        assert bucket.try_acquire() is False
        clock.t += 0.5
        assert bucket.try_acquire() is True

    def test_capacity_cap(self) -> None:
        clock = FakeMonotonic()
        bucket = TokenBucket(rate=10.0, capacity=2.0, clock=clock)
        clock.t += 100
        assert [bucket.try_acquire() for _ in range(3)] == [True, True, False]

    def test_time_until_available(self) -> None:
        clock = FakeMonotonic()
        bucket = TokenBucket(rate=0.5, capacity=1.0, clock=clock)
        assert bucket.time_until_available() == 0.0
        bucket.try_acquire()
        assert bucket.time_until_available() == pytest.approx(2.0)

    def test_invalid_parameters(self) -> None:
        with pytest.raises(ValueError):
            TokenBucket(rate=0, capacity=1)
        with pytest.raises(ValueError):
            TokenBucket(rate=1, capacity=0)


class TestRateLimiter:
    def test_burst_one_admits_one_per_instant(self) -> None:
        clock = FakeMonotonic()
        limiter = RateLimiter.per_hour(100, 1, clock=clock)
        assert limiter.allow() is True
        assert limiter.allow() is False

    def test_per_hour_refill_rate(self) -> None:
        clock = FakeMonotonic()
        limiter = RateLimiter.per_hour(60, 1, clock=clock)
        limiter.allow()
        assert limiter.retry_after() == pytest.approx(60.0)
        clock.t += 60
        assert limiter.allow() is True

    def test_per_minute(self) -> None:
        clock = FakeMonotonic()
        limiter = RateLimiter.per_minute(50, 10, clock=clock)
        admitted = sum(limiter.allow() for _ in range(20))
        assert admitted == 10
