"""Per-caller request counters.

Each caller gets a window that opens on their first request and lasts
``window_seconds``; up to ``limit`` requests pass inside it.

MemoryRateLimiter keeps counters in this process only, which holds for a
single-process deployment. Multi-instance deployments must use
RedisRateLimiter so every instance shares the same counters.
"""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable

import redis.asyncio as redis

from config import settings

logger = logging.getLogger(__name__)

RATE_LIMIT_PREFIX = "ratelimit:"


@dataclass
class _Window:
    count: int
    reset_at: float


class MemoryRateLimiter:
    def __init__(
        self,
        bucket: str,
        limit: int,
        window_seconds: float,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.bucket = bucket
        self.limit = limit
        self.window_seconds = window_seconds
        self._clock = clock
        self._windows: dict[str, _Window] = {}
        self._lock = threading.Lock()

    async def allow(self, key: str) -> bool:
        """Count one request for ``key``; False once the limit is reached."""
        now = self._clock()
        with self._lock:
            self._cleanup(now)
            window = self._windows.get(key)
            if window is None or now >= window.reset_at:
                self._windows[key] = _Window(count=1, reset_at=now + self.window_seconds)
                return True
            if window.count >= self.limit:
                logger.warning("Rate limit hit: bucket=%s key=%s", self.bucket, key)
                return False
            window.count += 1
            return True

    async def reset(self) -> None:
        with self._lock:
            self._windows.clear()

    def _cleanup(self, now: float) -> None:
        """Drop elapsed windows. Called while holding _lock."""
        expired = [k for k, w in self._windows.items() if w.reset_at <= now]
        for k in expired:
            del self._windows[k]


class RedisRateLimiter:
    """Shared counters on ``ratelimit:<bucket>:<key>``, incremented atomically."""

    def __init__(self, bucket: str, limit: int, window_seconds: int, client: redis.Redis | None = None):
        self.bucket = bucket
        self.limit = limit
        self.window_seconds = int(window_seconds)
        self._client = client

    def _get_redis(self) -> redis.Redis:
        if self._client is None:
            self._client = redis.from_url(
                settings.redis_url,
                decode_responses=True,
                socket_timeout=settings.redis_timeout,
                socket_connect_timeout=settings.redis_timeout,
            )
        return self._client

    async def allow(self, key: str) -> bool:
        r = self._get_redis()
        redis_key = f"{RATE_LIMIT_PREFIX}{self.bucket}:{key}"
        # SET NX EX opens the window; INCR keeps the existing TTL.
        pipe = r.pipeline(transaction=True)
        pipe.set(redis_key, 0, ex=self.window_seconds, nx=True)
        pipe.incr(redis_key)
        _, count = await pipe.execute()
        if count > self.limit:
            logger.warning("Rate limit hit: bucket=%s key=%s", self.bucket, key)
            return False
        return True

    async def reset(self) -> None:
        """Delete every counter in this bucket."""
        r = self._get_redis()
        async for key in r.scan_iter(match=f"{RATE_LIMIT_PREFIX}{self.bucket}:*"):
            await r.delete(key)


def build_limiter(bucket: str, limit: int):
    if settings.rate_limit_backend == "redis":
        return RedisRateLimiter(bucket, limit, settings.rate_limit_window_seconds)
    return MemoryRateLimiter(bucket, limit, settings.rate_limit_window_seconds)


view_limiter = build_limiter("view", settings.view_rate_limit)
download_limiter = build_limiter("download", settings.download_rate_limit)
notify_limiter = build_limiter("notify", settings.notify_rate_limit)
