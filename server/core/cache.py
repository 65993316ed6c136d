"""Cache service: namespaced JSON values over the key-value client.

Read paths degrade to "no data" when the store hiccups so callers can fall
back to the primary source. Explicit writes (``set``, ``delete``, ``mset``)
raise ``CacheWriteError`` because the caller depends on them. Best-effort
writes (search history, counters) log and report failure instead of raising.
"""

import json
import time
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple, Union

from core.config import Settings
from core.exceptions import CacheWriteError, StoreUnavailableError
from core.kv import KeyValueClient
from core.logging import get_logger, log_cache_operation
from models.cache import CacheCorrupt, CacheHit, CacheItem, CacheLookup, CacheMiss, RateLimitResult
from models.flight import SearchHistoryEntry

logger = get_logger(__name__)


def _encode(value: Any) -> str:
    return json.dumps(value, allow_nan=False, separators=(",", ":"))


class CacheService:
    """Typed facade over ``KeyValueClient``; owns key naming and serialization."""

    def __init__(self, settings: Settings, kv: KeyValueClient):
        self.settings = settings
        self.kv = kv
        self.key_prefix = settings.cache_key_prefix
        self.default_ttl = settings.cache_ttl

    def build_key(self, key: str, prefix: Optional[str] = None) -> str:
        """Namespace ``key`` with ``prefix`` or the application prefix."""
        return f"{prefix or self.key_prefix}{key}"

    # ============================================================================
    # Basic operations
    # ============================================================================

    async def set(self, key: str, value: Any, ttl: Optional[int] = None, prefix: Optional[str] = None) -> None:
        """Store ``value`` as JSON. Raises ``CacheWriteError`` if it was not stored."""
        cache_key = self.build_key(key, prefix)
        ttl = ttl or self.default_ttl
        try:
            serialized = _encode(value)
        except (TypeError, ValueError) as e:
            logger.error("Cache serialization failed", key=cache_key, error=str(e))
            raise CacheWriteError("Failed to cache data") from e

        try:
            await self.kv.set(cache_key, serialized, ttl=ttl)
        except StoreUnavailableError as e:
            logger.error("Cache set failed", key=cache_key, error=str(e))
            raise CacheWriteError("Failed to cache data") from e
        log_cache_operation(logger, "set", cache_key, ttl=ttl)

    async def lookup(self, key: str, prefix: Optional[str] = None) -> CacheLookup:
        """Read ``key`` telling a miss apart from an unparseable value."""
        cache_key = self.build_key(key, prefix)
        try:
            raw = await self.kv.get(cache_key)
        except StoreUnavailableError as e:
            logger.error("Cache get failed", key=cache_key, error=str(e))
            return CacheMiss()

        if raw is None:
            log_cache_operation(logger, "get", cache_key, hit=False)
            return CacheMiss()

        try:
            value = json.loads(raw)
        except ValueError as e:
            logger.warning("Corrupt cache value", key=cache_key, error=str(e))
            return CacheCorrupt(raw=raw, error=str(e))

        log_cache_operation(logger, "get", cache_key, hit=True)
        return CacheHit(value)

    async def get(self, key: str, prefix: Optional[str] = None) -> Optional[Any]:
        """Cached value, or None when absent, corrupt or unreachable."""
        result = await self.lookup(key, prefix)
        if isinstance(result, CacheHit):
            return result.value
        return None

    async def delete(self, key: str, prefix: Optional[str] = None) -> bool:
        cache_key = self.build_key(key, prefix)
        try:
            deleted = await self.kv.delete(cache_key)
        except StoreUnavailableError as e:
            logger.error("Cache delete failed", key=cache_key, error=str(e))
            raise CacheWriteError("Failed to delete cache data") from e
        log_cache_operation(logger, "delete", cache_key, deleted=bool(deleted))
        return bool(deleted)

    async def exists(self, key: str, prefix: Optional[str] = None) -> bool:
        cache_key = self.build_key(key, prefix)
        try:
            return await self.kv.exists(cache_key)
        except StoreUnavailableError as e:
            logger.error("Cache exists check failed", key=cache_key, error=str(e))
            return False

    # ============================================================================
    # Flight and aircraft data
    # ============================================================================

    async def cache_flight_data(self, flight_number: str, data: Dict[str, Any]) -> None:
        await self.set(f"flight:{flight_number.upper()}", data, ttl=self.settings.flight_cache_ttl)

    async def get_flight_data(self, flight_number: str) -> Optional[Dict[str, Any]]:
        return await self.get(f"flight:{flight_number.upper()}")

    async def cache_aircraft_history(self, registration: str, history: Dict[str, Any]) -> None:
        await self.set(f"aircraft:{registration.upper()}", history, ttl=self.settings.aircraft_cache_ttl)

    async def get_aircraft_history(self, registration: str) -> Optional[Dict[str, Any]]:
        return await self.get(f"aircraft:{registration.upper()}")

    # ============================================================================
    # Search history
    # ============================================================================

    def _history_key(self, user_id: str) -> str:
        return self.build_key(f"search_history:{user_id}")

    async def add_search_history(self, user_id: str, term: str) -> bool:
        """Record ``term`` at the head of the user's history.

        Push, trim and expiry go out as one batch on the same key. Returns
        False when nothing was recorded; never raises.
        """
        key = self._history_key(user_id)
        entry = _encode({"term": term, "timestamp": int(time.time() * 1000)})
        try:
            await (
                self.kv.batch()
                .list_push(key, entry)
                .list_trim(key, 0, self.settings.search_history_max - 1)
                .expire(key, self.settings.search_history_ttl)
                .execute()
            )
        except Exception as e:
            logger.warning("Search history write failed", user_id=user_id, error=str(e))
            return False
        log_cache_operation(logger, "history_push", key)
        return True

    async def get_search_history(self, user_id: str, limit: int = 10) -> List[Dict[str, Any]]:
        """Newest-first history, at most ``limit`` entries; [] when unavailable."""
        if limit <= 0:
            return []
        key = self._history_key(user_id)
        try:
            raw_entries = await self.kv.list_range(key, 0, limit - 1)
        except StoreUnavailableError as e:
            logger.error("Search history read failed", user_id=user_id, error=str(e))
            return []

        history = []
        for raw in raw_entries:
            try:
                history.append(SearchHistoryEntry.model_validate_json(raw).model_dump())
            except ValueError:
                logger.warning("Skipping corrupt search history entry", user_id=user_id)
        return history

    async def clear_search_history(self, user_id: str) -> bool:
        return await self.delete(f"search_history:{user_id}")

    # ============================================================================
    # Rate limiting
    # ============================================================================

    async def check_rate_limit(self, identifier: str, limit: int = 100, window: int = 3600) -> RateLimitResult:
        """Fixed-window counter shared by every process using this store.

        The window starts with the first request (key created with TTL =
        ``window``). Fails open when the store is unreachable.
        """
        key = self.build_key(f"rate_limit:{identifier}")
        now = time.time()
        try:
            _, count, ttl = await (
                self.kv.batch()
                .set(key, "0", ttl=window, only_if_absent=True)
                .incr_by(key, 1)
                .ttl(key)
                .execute()
            )
        except StoreUnavailableError as e:
            logger.error("Rate limit check failed, allowing request", identifier=identifier, error=str(e))
            return RateLimitResult(allowed=True, remaining=limit - 1, limit=limit, reset_at=now + window)

        count = int(count)
        reset_at = now + (ttl if ttl and ttl > 0 else window)
        if count > limit:
            logger.info("Rate limit exceeded", identifier=identifier, count=count, limit=limit)
            return RateLimitResult(allowed=False, remaining=0, limit=limit, reset_at=reset_at)
        return RateLimitResult(allowed=True, remaining=limit - count, limit=limit, reset_at=reset_at)

    # ============================================================================
    # Sessions
    # ============================================================================

    async def create_session(self, session_id: str, data: Dict[str, Any], ttl: Optional[int] = None) -> None:
        await self.set(f"session:{session_id}", data, ttl=ttl or self.settings.session_ttl)

    async def get_session(self, session_id: str) -> Optional[Dict[str, Any]]:
        return await self.get(f"session:{session_id}")

    async def delete_session(self, session_id: str) -> bool:
        return await self.delete(f"session:{session_id}")

    # ============================================================================
    # Analytics counters
    # ============================================================================

    async def increment_counter(self, name: str, delta: int = 1) -> int:
        """Bump a non-expiring counter; 0 when the store is unavailable."""
        key = self.build_key(f"counter:{name}")
        try:
            return await self.kv.incr_by(key, delta)
        except StoreUnavailableError as e:
            logger.error("Counter increment failed", counter=name, error=str(e))
            return 0

    async def get_counter(self, name: str) -> int:
        key = self.build_key(f"counter:{name}")
        try:
            value = await self.kv.get(key)
        except StoreUnavailableError as e:
            logger.error("Counter read failed", counter=name, error=str(e))
            return 0
        try:
            return int(value) if value else 0
        except ValueError:
            return 0

    # ============================================================================
    # Bulk operations
    # ============================================================================

    async def mget(self, keys: Sequence[str], prefix: Optional[str] = None) -> List[Optional[Any]]:
        """Fetch many keys in one round trip; None for missing or corrupt values."""
        cache_keys = [self.build_key(key, prefix) for key in keys]
        try:
            values = await self.kv.mget(cache_keys)
        except StoreUnavailableError as e:
            logger.error("Cache mget failed", count=len(cache_keys), error=str(e))
            return [None for _ in keys]

        results = []
        for cache_key, raw in zip(cache_keys, values):
            if raw is None:
                results.append(None)
                continue
            try:
                results.append(json.loads(raw))
            except ValueError:
                logger.warning("Corrupt cache value", key=cache_key)
                results.append(None)
        return results

    async def mset(
        self,
        entries: Iterable[Union[CacheItem, Tuple[str, Any], Tuple[str, Any, Optional[int]]]],
        prefix: Optional[str] = None,
    ) -> None:
        """Write many entries in one atomic batch. Raises ``CacheWriteError``."""
        batch = self.kv.batch()
        try:
            for entry in entries:
                item = CacheItem(*entry)
                batch.set(self.build_key(item.key, prefix), _encode(item.value), ttl=item.ttl)
        except (TypeError, ValueError) as e:
            logger.error("Cache mset serialization failed", error=str(e))
            raise CacheWriteError("Failed to set multiple cache entries") from e

        try:
            await batch.execute()
        except StoreUnavailableError as e:
            logger.error("Cache mset failed", count=len(batch), error=str(e))
            raise CacheWriteError("Failed to set multiple cache entries") from e
        log_cache_operation(logger, "mset", prefix or self.key_prefix, count=len(batch))

    async def clear_pattern(self, pattern: str) -> int:
        """Delete every namespaced key matching the glob ``pattern``."""
        cache_pattern = self.build_key(pattern)
        try:
            keys = await self.kv.keys_matching(cache_pattern)
            if not keys:
                return 0
            deleted = await self.kv.delete(*keys)
        except StoreUnavailableError as e:
            logger.error("Cache clear pattern failed", pattern=cache_pattern, error=str(e))
            return 0
        log_cache_operation(logger, "clear_pattern", cache_pattern, deleted=deleted)
        return deleted

    # ============================================================================
    # Health
    # ============================================================================

    async def ping(self) -> bool:
        try:
            return await self.kv.ping()
        except Exception as e:
            logger.error("Cache ping failed", error=str(e))
            return False

    async def stats(self) -> Dict[str, Any]:
        """Backing-store figures for the health endpoint; {} when unavailable."""
        try:
            memory = await self.kv.info("memory")
            return {
                "keys": await self.kv.dbsize(),
                "used_memory": memory.get("used_memory_human"),
                "cache_hits": await self.get_counter("cache_hits"),
                "api_calls": await self.get_counter("api_calls"),
            }
        except Exception as e:
            logger.error("Cache stats failed", error=str(e))
            return {}
