"""Fixed-window rate limiting for the request gate.

Two interchangeable backends behind one interface:

- ``CacheRateLimiter``: counters in the shared key-value store, so every
  worker and instance enforces one global quota.
- ``MemoryRateLimiter``: a process-local map, each process enforcing its
  own quota. Used when no store is configured or RATE_LIMIT_BACKEND=memory.
"""

import asyncio
import time
from typing import Callable, Dict, Optional, Tuple

from core.cache import CacheService
from core.config import Settings
from core.logging import get_logger
from models.cache import RateLimitResult

logger = get_logger(__name__)


class RateLimitPolicy:
    """Maps a request path to its (limit, window seconds)."""

    def __init__(self, settings: Settings):
        self.default = (settings.rate_limit_requests, settings.rate_limit_window)
        self.auth = (settings.auth_rate_limit_requests, settings.rate_limit_window)
        self.signup = (settings.signup_rate_limit_requests, settings.rate_limit_window)

    def resolve(self, path: str) -> Tuple[int, int]:
        if path == "/api/auth/signup":
            return self.signup
        if path.startswith("/api/auth/"):
            return self.auth
        return self.default


class RateLimiter:
    """Interface shared by the limiter backends."""

    async def hit(self, key: str, limit: int, window: int) -> RateLimitResult:
        raise NotImplementedError

    async def start(self) -> None:
        pass

    async def stop(self) -> None:
        pass


class MemoryRateLimiter(RateLimiter):
    """Process-local fixed windows keyed by ``client:path``.

    The map is touched only from the event loop thread, so no lock. A
    background task sweeps expired windows to bound memory.
    """

    def __init__(self, sweep_interval: int = 300, clock: Callable[[], float] = time.time):
        self.sweep_interval = sweep_interval
        self._clock = clock
        self._windows: Dict[str, Tuple[int, float]] = {}
        self._task: Optional[asyncio.Task] = None

    def __len__(self) -> int:
        return len(self._windows)

    async def hit(self, key: str, limit: int, window: int) -> RateLimitResult:
        now = self._clock()
        entry = self._windows.get(key)

        if entry is None or now > entry[1]:
            reset_at = now + window
            self._windows[key] = (1, reset_at)
            return RateLimitResult(allowed=True, remaining=limit - 1, limit=limit, reset_at=reset_at)

        count, reset_at = entry
        if count >= limit:
            return RateLimitResult(allowed=False, remaining=0, limit=limit, reset_at=reset_at)

        count += 1
        self._windows[key] = (count, reset_at)
        return RateLimitResult(allowed=True, remaining=limit - count, limit=limit, reset_at=reset_at)

    def sweep(self) -> int:
        """Drop windows that have already ended. Returns how many went."""
        now = self._clock()
        expired = [key for key, (_, reset_at) in self._windows.items() if now > reset_at]
        for key in expired:
            del self._windows[key]
        return len(expired)

    async def start(self) -> None:
        if self._task is not None:
            return
        self._task = asyncio.create_task(self._sweep_loop())
        logger.info("Rate limit sweeper started", interval=self.sweep_interval)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Rate limit sweeper stopped")

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self.sweep_interval)
            removed = self.sweep()
            if removed:
                logger.debug("Swept expired rate limit windows", removed=removed, remaining=len(self))


class CacheRateLimiter(RateLimiter):
    """Shared-store windows via ``CacheService.check_rate_limit`` (fails open)."""

    def __init__(self, cache: CacheService):
        self.cache = cache

    async def hit(self, key: str, limit: int, window: int) -> RateLimitResult:
        return await self.cache.check_rate_limit(f"gate:{key}", limit, window)


def build_rate_limiter(settings: Settings, cache: CacheService) -> RateLimiter:
    """Pick the gate backend from settings; memory when no store is configured."""
    if settings.rate_limit_backend == "redis" and cache.kv.is_configured:
        return CacheRateLimiter(cache)
    if settings.rate_limit_backend == "redis":
        logger.warning("RATE_LIMIT_BACKEND=redis but REDIS_URL is not set, using process-local limiter")
    return MemoryRateLimiter(sweep_interval=settings.rate_limit_sweep_interval)
