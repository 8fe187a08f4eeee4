"""Tests for sharing.rate_limit counters."""

import fakeredis
import fakeredis.aioredis as fakeredis_aio

from sharing.rate_limit import RATE_LIMIT_PREFIX, MemoryRateLimiter, RedisRateLimiter


class _Clock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now


class TestMemoryRateLimiter:
    async def test_limit_plus_one_is_rejected(self):
        limiter = MemoryRateLimiter("view", limit=3, window_seconds=60, clock=_Clock())
        assert [await limiter.allow("u1") for _ in range(3)] == [True, True, True]
        assert await limiter.allow("u1") is False

    async def test_fresh_window_after_expiry(self):
        clock = _Clock()
        limiter = MemoryRateLimiter("view", limit=2, window_seconds=60, clock=clock)
        await limiter.allow("u1")
        await limiter.allow("u1")
        assert await limiter.allow("u1") is False
        clock.now += 60
        assert await limiter.allow("u1") is True

    async def test_window_starts_at_first_request(self):
        clock = _Clock()
        limiter = MemoryRateLimiter("view", limit=1, window_seconds=60, clock=clock)
        assert await limiter.allow("u1") is True
        clock.now += 59
        assert await limiter.allow("u1") is False

    async def test_keys_are_independent(self):
        limiter = MemoryRateLimiter("download", limit=1, window_seconds=60, clock=_Clock())
        assert await limiter.allow("u1") is True
        assert await limiter.allow("u2") is True
        assert await limiter.allow("u1") is False

    async def test_reset_clears_counters(self):
        limiter = MemoryRateLimiter("download", limit=1, window_seconds=60, clock=_Clock())
        await limiter.allow("u1")
        await limiter.reset()
        assert await limiter.allow("u1") is True


class TestRedisRateLimiter:
    def _limiter(self, limit: int = 2):
        client = fakeredis_aio.FakeRedis(server=fakeredis.FakeServer(), decode_responses=True)
        return RedisRateLimiter("view", limit=limit, window_seconds=60, client=client), client

    async def test_limit_plus_one_is_rejected(self):
        limiter, _ = self._limiter(limit=2)
        assert await limiter.allow("u1") is True
        assert await limiter.allow("u1") is True
        assert await limiter.allow("u1") is False

    async def test_counter_has_window_ttl(self):
        limiter, client = self._limiter()
        await limiter.allow("u1")
        await limiter.allow("u1")
        key = f"{RATE_LIMIT_PREFIX}view:u1"
        assert await client.get(key) == "2"
        assert 0 < await client.ttl(key) <= 60

    async def test_fresh_window_after_key_expires(self):
        limiter, client = self._limiter(limit=1)
        await limiter.allow("u1")
        assert await limiter.allow("u1") is False
        await client.delete(f"{RATE_LIMIT_PREFIX}view:u1")
        assert await limiter.allow("u1") is True

    async def test_reset_clears_only_its_bucket(self):
        client = fakeredis_aio.FakeRedis(server=fakeredis.FakeServer(), decode_responses=True)
        view = RedisRateLimiter("view", limit=1, window_seconds=60, client=client)
        download = RedisRateLimiter("download", limit=1, window_seconds=60, client=client)
        await view.allow("u1")
        await view.allow("u2")
        await download.allow("u1")

        await view.reset()

        assert await view.allow("u1") is True
        assert await view.allow("u2") is True
        assert await download.allow("u1") is False
