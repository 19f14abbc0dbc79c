"""
Fixed-window request counters keyed by client address.

`InMemoryRateLimiter` keeps counters in the process and is only correct for a
single instance. `RedisRateLimiter` keeps them in redis so every instance
behind a load balancer shares the same window.
"""

import math
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Protocol

import redis

from .config import Settings
from .logging import get_logger

logger = get_logger("ratelimit")

# expired windows are swept once this many clients are tracked
MAX_TRACKED_KEYS = 10000


@dataclass
class RateLimitDecision:
    allowed: bool
    limit: int
    remaining: int
    reset_in: int


class RateLimiter(Protocol):
    limit: int
    window_seconds: int

    def hit(self, key: str) -> RateLimitDecision:
        ...


@dataclass
class _Window:
    count: int
    reset_at: float


class InMemoryRateLimiter:
    def __init__(self, limit: int, window_seconds: int, time_fn: Callable[[], float] = time.monotonic):
        self.limit = max(1, limit)
        self.window_seconds = max(1, window_seconds)
        self.time_fn = time_fn
        self.windows: Dict[str, _Window] = {}
        self._lock = threading.Lock()

    def _sweep(self, now: float) -> None:
        expired = [k for k, w in self.windows.items() if now >= w.reset_at]
        for k in expired:
            del self.windows[k]

    def hit(self, key: str) -> RateLimitDecision:
        with self._lock:
            return self._hit(key)

    def _hit(self, key: str) -> RateLimitDecision:
        now = self.time_fn()
        window = self.windows.get(key)
        if window is None or now >= window.reset_at:
            if window is None and len(self.windows) >= MAX_TRACKED_KEYS:
                self._sweep(now)
            window = _Window(count=0, reset_at=now + self.window_seconds)
            self.windows[key] = window

        reset_in = max(1, math.ceil(window.reset_at - now))
        if window.count >= self.limit:
            return RateLimitDecision(allowed=False, limit=self.limit, remaining=0, reset_in=reset_in)

        window.count += 1
        return RateLimitDecision(
            allowed=True, limit=self.limit, remaining=self.limit - window.count, reset_in=reset_in
        )


class RedisRateLimiter:
    def __init__(self, client: Any, limit: int, window_seconds: int, prefix: str = "galerium:ratelimit:"):
        self.client = client
        self.limit = max(1, limit)
        self.window_seconds = max(1, window_seconds)
        self.prefix = prefix

    def hit(self, key: str) -> RateLimitDecision:
        name = self.prefix + key
        try:
            pipe = self.client.pipeline()
            pipe.incr(name)
            pipe.ttl(name)
            count, ttl = pipe.execute()
            if count == 1 or ttl is None or ttl < 0:
                self.client.expire(name, self.window_seconds)
                ttl = self.window_seconds
        except redis.RedisError as e:
            # the counter is best-effort: let traffic through while the store is down
            logger.warning("ratelimit.store_unavailable", extra={"error_message": str(e)})
            return RateLimitDecision(
                allowed=True, limit=self.limit, remaining=self.limit, reset_in=self.window_seconds
            )

        reset_in = max(1, int(ttl))
        if count > self.limit:
            return RateLimitDecision(allowed=False, limit=self.limit, remaining=0, reset_in=reset_in)
        return RateLimitDecision(allowed=True, limit=self.limit, remaining=self.limit - count, reset_in=reset_in)


def build_rate_limiter(settings: Settings) -> Optional[RateLimiter]:
    if not settings.rate_limit_enabled:
        return None
    if settings.rate_limit_redis_url:
        client = redis.Redis.from_url(settings.rate_limit_redis_url)
        return RedisRateLimiter(client, settings.rate_limit_max, settings.rate_limit_window_seconds)
    return InMemoryRateLimiter(settings.rate_limit_max, settings.rate_limit_window_seconds)
