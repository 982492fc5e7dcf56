"""Redis-backed rate limiter for search requests.

Implements a fixed-window counter per client. Windows are aligned to
``window_seconds`` so every API process shares the same Redis key for a
client's current window:

- ratelimit:search:{client_key}:{window_index} - Requests counted so far

Each request increments the key in a pipeline with an expiry, rebuilds the
client's ``RateLimitWindow`` from the stored count and passes it to
``check_rate_limit``.

Usage:
    limiter = SearchRateLimiter(redis.from_url(url), RateLimitConfig(requests_per_minute=120))

    limiter.acquire(client_key)  # raises RateLimitExceeded when over the limit
"""

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional, Protocol

from redis.exceptions import RedisError

logger = logging.getLogger(__name__)

KEY_PREFIX = "ratelimit:search"


class RedisProtocol(Protocol):
    """Protocol for the sync Redis client calls the limiter makes."""

    def pipeline(self) -> Any: ...
    def delete(self, *keys: str) -> int: ...
    def scan_iter(self, match: Optional[str] = None) -> Any: ...


class RateLimitExceeded(Exception):
    """Raised when a client has used up its window.

    Attributes:
        retry_after: Seconds until the current window resets.
    """

    def __init__(self, message: str, retry_after: int = 0):
        self.retry_after = retry_after
        super().__init__(message)


@dataclass
class RateLimitConfig:
    """Configuration for search rate limiting.

    Attributes:
        requests_per_minute: Maximum requests per client per window.
        window_seconds: Length of one window.
    """

    requests_per_minute: int = 120
    window_seconds: int = 60

    def __post_init__(self):
        if self.requests_per_minute < 1:
            self.requests_per_minute = 1
        if self.window_seconds < 1:
            self.window_seconds = 1


@dataclass
class RateLimitWindow:
    """Request count for one client in the current window."""

    count: int
    window_start: float
    limit: int
    window_seconds: int = 60

    def expired(self, now: float) -> bool:
        return now - self.window_start >= self.window_seconds

    def retry_after(self, now: float) -> int:
        return max(0, int(self.window_start + self.window_seconds - now) + 1)


def check_rate_limit(window: RateLimitWindow, now: float) -> bool:
    """Count one request against ``window``.

    Starts a new window when the current one has expired.

    Returns:
        True if the request is allowed, False if the limit is reached.
    """
    if window.expired(now):
        window.count = 0
        window.window_start = now

    if window.count >= window.limit:
        return False

    window.count += 1
    return True


class SearchRateLimiter:
    """Per-client fixed windows stored in Redis.

    A Redis outage does not block searches: the request is let through and
    a warning is logged.
    """

    def __init__(
        self,
        redis: RedisProtocol,
        config: Optional[RateLimitConfig] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.redis = redis
        self.config = config or RateLimitConfig()
        self._clock = clock

    def _key(self, client_key: str, window_index: int) -> str:
        return f"{KEY_PREFIX}:{client_key}:{window_index}"

    def _increment(self, key: str) -> int:
        pipe = self.redis.pipeline()
        pipe.incr(key)
        # Key expires one second after its window closes
        pipe.expire(key, self.config.window_seconds + 1)
        count, _ = pipe.execute()
        return int(count)

    def acquire(self, client_key: str) -> None:
        """Count a request for ``client_key``.

        Raises:
            RateLimitExceeded: If the client is over its limit.
        """
        now = self._clock()
        window_index = int(now // self.config.window_seconds)
        window_start = float(window_index * self.config.window_seconds)

        try:
            count = self._increment(self._key(client_key, window_index))
        except RedisError as e:
            logger.warning(f"Rate limiter unavailable, allowing request: {e}")
            return

        # The stored count already includes this request
        window = RateLimitWindow(
            count=count - 1,
            window_start=window_start,
            limit=self.config.requests_per_minute,
            window_seconds=self.config.window_seconds,
        )
        if not check_rate_limit(window, now):
            raise RateLimitExceeded(
                f"Rate limit of {window.limit} requests per "
                f"{window.window_seconds}s exceeded",
                retry_after=window.retry_after(now),
            )

    def reset(self) -> None:
        """Drop every stored window."""
        keys = list(self.redis.scan_iter(match=f"{KEY_PREFIX}:*"))
        if keys:
            self.redis.delete(*keys)


__all__ = [
    "RateLimitConfig",
    "RateLimitExceeded",
    "RateLimitWindow",
    "SearchRateLimiter",
    "check_rate_limit",
]
