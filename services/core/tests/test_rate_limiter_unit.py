"""Unit tests for the Redis-backed search rate limiter.

Tests cover:
- Fixed-window counting with check_rate_limit
- Per-client windows in SearchRateLimiter
- Retry-After calculation
- Shared windows in Redis, outage handling and thread safety
"""

import threading

import pytest

from cardsearch_core.infrastructure.rate_limiter import (
    RateLimitConfig,
    RateLimitExceeded,
    RateLimitWindow,
    SearchRateLimiter,
    check_rate_limit,
)


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


# =============================================================================
# WINDOW TESTS
# =============================================================================


class TestCheckRateLimit:
    """Tests for check_rate_limit."""

    def test_allows_up_to_limit(self):
        window = RateLimitWindow(count=0, window_start=0.0, limit=3)

        results = [check_rate_limit(window, 1.0) for _ in range(4)]

        assert results == [True, True, True, False]
        assert window.count == 3

    def test_resets_after_window(self):
        window = RateLimitWindow(count=3, window_start=0.0, limit=3, window_seconds=60)

        assert check_rate_limit(window, 59.0) is False
        assert check_rate_limit(window, 60.0) is True
        assert window.count == 1
        assert window.window_start == 60.0

    def test_retry_after(self):
        window = RateLimitWindow(count=3, window_start=100.0, limit=3, window_seconds=60)

        assert window.retry_after(130.0) == 31
        assert window.retry_after(500.0) == 0


class TestRateLimitConfig:
    def test_minimums(self):
        config = RateLimitConfig(requests_per_minute=0, window_seconds=0)

        assert config.requests_per_minute == 1
        assert config.window_seconds == 1


# =============================================================================
# LIMITER TESTS
# =============================================================================


class TestSearchRateLimiter:
    """Tests for SearchRateLimiter."""

    def test_raises_when_over_limit(self, fake_redis, clock):
        limiter = SearchRateLimiter(
            fake_redis, RateLimitConfig(requests_per_minute=2), clock=clock
        )

        limiter.acquire("user:1")
        limiter.acquire("user:1")
        with pytest.raises(RateLimitExceeded) as exc_info:
            limiter.acquire("user:1")

        # Window [960, 1020) at t=1000
        assert exc_info.value.retry_after == 21

    def test_counts_stored_per_window_key(self, fake_redis, clock):
        limiter = SearchRateLimiter(
            fake_redis, RateLimitConfig(requests_per_minute=5), clock=clock
        )

        limiter.acquire("user:1")
        limiter.acquire("user:1")

        assert fake_redis.values == {"ratelimit:search:user:1:16": 2}
        assert fake_redis.ttls["ratelimit:search:user:1:16"] == 61

    def test_limit_shared_between_processes(self, fake_redis, clock):
        config = RateLimitConfig(requests_per_minute=2)
        first = SearchRateLimiter(fake_redis, config, clock=clock)
        second = SearchRateLimiter(fake_redis, config, clock=clock)

        first.acquire("user:1")
        second.acquire("user:1")

        with pytest.raises(RateLimitExceeded):
            first.acquire("user:1")

    def test_clients_are_independent(self, fake_redis, clock):
        limiter = SearchRateLimiter(
            fake_redis, RateLimitConfig(requests_per_minute=1), clock=clock
        )

        limiter.acquire("user:1")
        limiter.acquire("user:2")

        with pytest.raises(RateLimitExceeded):
            limiter.acquire("user:1")

    def test_next_window_allows_again(self, fake_redis, clock):
        limiter = SearchRateLimiter(
            fake_redis, RateLimitConfig(requests_per_minute=1), clock=clock
        )
        limiter.acquire("ip:10.0.0.1")

        clock.advance(60)

        limiter.acquire("ip:10.0.0.1")

    def test_reset(self, fake_redis, clock):
        limiter = SearchRateLimiter(
            fake_redis, RateLimitConfig(requests_per_minute=1), clock=clock
        )
        limiter.acquire("user:1")
        fake_redis.values["unrelated"] = 7

        limiter.reset()

        limiter.acquire("user:1")
        assert fake_redis.values["unrelated"] == 7

    def test_redis_outage_allows_request(self, fake_redis, clock, caplog):
        from redis.exceptions import ConnectionError as RedisConnectionError

        limiter = SearchRateLimiter(
            fake_redis, RateLimitConfig(requests_per_minute=1), clock=clock
        )
        fake_redis.error = RedisConnectionError("connection refused")

        limiter.acquire("user:1")
        limiter.acquire("user:1")

        assert "Rate limiter unavailable" in caplog.text

    def test_concurrent_acquires_never_exceed_limit(self, fake_redis, clock):
        limiter = SearchRateLimiter(
            fake_redis, RateLimitConfig(requests_per_minute=50), clock=clock
        )
        allowed = []
        lock = threading.Lock()

        def worker():
            for _ in range(20):
                try:
                    limiter.acquire("user:1")
                except RateLimitExceeded:
                    continue
                with lock:
                    allowed.append(1)

        threads = [threading.Thread(target=worker) for _ in range(5)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len(allowed) == 50
