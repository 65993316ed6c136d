"""
Unit tests for the request gate rate limiters and path policy.
"""

import asyncio

import pytest

from services.rate_limit import (
    CacheRateLimiter,
    MemoryRateLimiter,
    RateLimitPolicy,
    build_rate_limiter,
)

from conftest import FakeKeyValueClient, make_settings
from core.cache import CacheService
from core.kv import KeyValueClient


class TestRateLimitPolicy:
    """Test cases for path-based limits."""

    @pytest.fixture
    def policy(self):
        return RateLimitPolicy(make_settings())

    def test_signup_is_strictest(self, policy):
        assert policy.resolve("/api/auth/signup") == (5, 900)

    def test_other_auth_routes(self, policy):
        assert policy.resolve("/api/auth/signin") == (20, 900)
        assert policy.resolve("/api/auth/signup/extra") == (20, 900)

    def test_default(self, policy):
        assert policy.resolve("/api/flights/search") == (100, 900)
        assert policy.resolve("/api/authors") == (100, 900)

    def test_limits_follow_settings(self):
        policy = RateLimitPolicy(make_settings(signup_rate_limit_requests=2, rate_limit_window=60))
        assert policy.resolve("/api/auth/signup") == (2, 60)


class TestMemoryRateLimiter:
    """Test cases for the process-local fixed window."""

    @pytest.fixture
    def limiter(self, clock):
        return MemoryRateLimiter(sweep_interval=1, clock=clock)

    @pytest.mark.asyncio
    async def test_rejects_after_limit(self, limiter):
        """Test the sixth request in a window of five is rejected."""
        results = [await limiter.hit("1.2.3.4:/api/auth/signup", 5, 900) for _ in range(6)]

        assert [r.allowed for r in results] == [True] * 5 + [False]
        assert [r.remaining for r in results] == [4, 3, 2, 1, 0, 0]

    @pytest.mark.asyncio
    async def test_rejection_does_not_extend_count(self, limiter):
        for _ in range(5):
            await limiter.hit("k", 2, 60)
        assert limiter._windows["k"][0] == 2

    @pytest.mark.asyncio
    async def test_window_resets(self, limiter, clock):
        first = await limiter.hit("k", 1, 60)
        assert (await limiter.hit("k", 1, 60)).allowed is False

        clock.advance(60)
        assert (await limiter.hit("k", 1, 60)).allowed is False

        clock.advance(1)
        fresh = await limiter.hit("k", 1, 60)
        assert fresh.allowed is True
        assert fresh.reset_at == first.reset_at + 61

    @pytest.mark.asyncio
    async def test_keys_are_independent(self, limiter):
        await limiter.hit("a:/api/x", 1, 60)

        assert (await limiter.hit("a:/api/x", 1, 60)).allowed is False
        assert (await limiter.hit("a:/api/y", 1, 60)).allowed is True
        assert (await limiter.hit("b:/api/x", 1, 60)).allowed is True

    @pytest.mark.asyncio
    async def test_sweep_drops_only_expired(self, limiter, clock):
        await limiter.hit("short", 10, 30)
        await limiter.hit("long", 10, 300)

        clock.advance(31)
        assert limiter.sweep() == 1

        assert len(limiter) == 1
        assert "long" in limiter._windows

    @pytest.mark.asyncio
    async def test_sweeper_task_lifecycle(self, clock):
        limiter = MemoryRateLimiter(sweep_interval=0.01, clock=clock)
        await limiter.hit("k", 10, 30)
        clock.advance(31)

        await limiter.start()
        await asyncio.sleep(0.05)
        await limiter.stop()

        assert len(limiter) == 0
        assert limiter._task is None


class TestCacheRateLimiter:
    """Test cases for the shared-store limiter."""

    @pytest.mark.asyncio
    async def test_uses_gate_namespace(self, cache, kv):
        limiter = CacheRateLimiter(cache)

        result = await limiter.hit("1.2.3.4:/api/x", 2, 900)

        assert result.allowed is True
        assert result.remaining == 1
        assert await kv.get("jetvein:rate_limit:gate:1.2.3.4:/api/x") == "1"

    @pytest.mark.asyncio
    async def test_fails_open(self, cache, kv):
        kv.down = True
        limiter = CacheRateLimiter(cache)

        results = [await limiter.hit("k", 1, 900) for _ in range(3)]

        assert all(r.allowed for r in results)


class TestBuildRateLimiter:
    """Test cases for backend selection."""

    def test_redis_backend_with_store(self, kv):
        settings = make_settings(rate_limit_backend="redis")
        limiter = build_rate_limiter(settings, CacheService(settings, kv))
        assert isinstance(limiter, CacheRateLimiter)

    def test_redis_backend_without_store_falls_back(self):
        settings = make_settings(rate_limit_backend="redis", redis_url=None)
        limiter = build_rate_limiter(settings, CacheService(settings, KeyValueClient(settings)))
        assert isinstance(limiter, MemoryRateLimiter)

    def test_memory_backend(self):
        settings = make_settings(rate_limit_backend="memory", rate_limit_sweep_interval=42)
        limiter = build_rate_limiter(settings, CacheService(settings, FakeKeyValueClient()))
        assert isinstance(limiter, MemoryRateLimiter)
        assert limiter.sweep_interval == 42
