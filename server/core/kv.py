"""Async key-value client over Redis.

Owns the network connection and nothing else: keys and values are opaque
strings here. Namespacing and JSON live in ``core.cache``.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

import redis.asyncio as redis
from redis.asyncio.retry import Retry
from redis.backoff import ExponentialBackoff
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisError
from redis.exceptions import TimeoutError as RedisTimeoutError

from core.config import Settings
from core.exceptions import ConfigurationError, StoreUnavailableError
from core.logging import get_logger

logger = get_logger(__name__)


@dataclass
class Command:
    """One queued batch command, named after the client method it mirrors."""
    name: str
    args: Tuple[Any, ...] = ()
    kwargs: Dict[str, Any] = field(default_factory=dict)


class Batch:
    """Commands queued client-side and executed atomically in one round trip.

    Usage:
        results = await client.batch().incr_by(key, 1).expire(key, 60).execute()
    """

    def __init__(self, client: "KeyValueClient"):
        self._client = client
        self.commands: List[Command] = []

    def _queue(self, name: str, *args, **kwargs) -> "Batch":
        self.commands.append(Command(name, args, kwargs))
        return self

    def set(self, key: str, value: str, ttl: Optional[int] = None, only_if_absent: bool = False) -> "Batch":
        return self._queue("set", key, value, ttl=ttl, only_if_absent=only_if_absent)

    def delete(self, *keys: str) -> "Batch":
        return self._queue("delete", *keys)

    def incr_by(self, key: str, delta: int = 1) -> "Batch":
        return self._queue("incr_by", key, delta)

    def expire(self, key: str, ttl: int) -> "Batch":
        return self._queue("expire", key, ttl)

    def ttl(self, key: str) -> "Batch":
        return self._queue("ttl", key)

    def list_push(self, key: str, *values: str) -> "Batch":
        return self._queue("list_push", key, *values)

    def list_trim(self, key: str, start: int, end: int) -> "Batch":
        return self._queue("list_trim", key, start, end)

    def __len__(self) -> int:
        return len(self.commands)

    async def execute(self) -> List[Any]:
        if not self.commands:
            return []
        return await self._client.execute_batch(self.commands)


# Batch command name -> how it is queued on a redis pipeline
_PIPELINE_COMMANDS = {
    "set": lambda pipe, key, value, ttl=None, only_if_absent=False: pipe.set(key, value, ex=ttl, nx=only_if_absent),
    "delete": lambda pipe, *keys: pipe.delete(*keys),
    "incr_by": lambda pipe, key, delta: pipe.incrby(key, delta),
    "expire": lambda pipe, key, ttl: pipe.expire(key, ttl),
    "ttl": lambda pipe, key: pipe.ttl(key),
    "list_push": lambda pipe, key, *values: pipe.lpush(key, *values),
    "list_trim": lambda pipe, key, start, end: pipe.ltrim(key, start, end),
}


class KeyValueClient:
    """One shared Redis connection per process.

    ``startup()`` connects eagerly at process start; any command issued
    before that (or after a failed startup) connects lazily. redis-py
    reconnects on its own and retries each command up to
    ``redis_max_retries`` times on connection errors and timeouts.
    """

    def __init__(self, settings: Settings):
        self.settings = settings
        self._redis: Optional[redis.Redis] = None

    @property
    def is_configured(self) -> bool:
        return bool(self.settings.redis_url)

    def _create(self) -> redis.Redis:
        if not self.settings.redis_url:
            raise ConfigurationError("REDIS_URL environment variable is not set")
        return redis.from_url(
            self.settings.redis_url,
            encoding="utf-8",
            decode_responses=True,
            socket_timeout=self.settings.redis_command_timeout,
            socket_connect_timeout=self.settings.redis_connect_timeout,
            retry=Retry(ExponentialBackoff(), self.settings.redis_max_retries),
            retry_on_error=[RedisConnectionError, RedisTimeoutError],
        )

    def _connection(self) -> redis.Redis:
        if self._redis is None:
            self._redis = self._create()
        return self._redis

    async def startup(self) -> None:
        """Open the connection and probe it. A dead store is logged, not fatal."""
        if not self.is_configured:
            logger.warning("REDIS_URL not set, key-value store disabled")
            return
        try:
            await self._connection().ping()
            logger.info("Key-value store connected")
        except RedisError as e:
            logger.warning("Key-value store unreachable at startup, will retry lazily", error=str(e))

    async def shutdown(self) -> None:
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None
            logger.info("Key-value store connection closed")

    async def _call(self, operation: str, *args, **kwargs) -> Any:
        client = self._connection()
        try:
            return await getattr(client, operation)(*args, **kwargs)
        except RedisError as e:
            raise StoreUnavailableError(f"Key-value store {operation} failed: {e}") from e

    # ------------------------------------------------------------------
    # Primitive operations
    # ------------------------------------------------------------------

    async def get(self, key: str) -> Optional[str]:
        return await self._call("get", key)

    async def set(self, key: str, value: str, ttl: Optional[int] = None, only_if_absent: bool = False) -> bool:
        result = await self._call("set", key, value, ex=ttl, nx=only_if_absent)
        return bool(result)

    async def delete(self, *keys: str) -> int:
        if not keys:
            return 0
        return await self._call("delete", *keys)

    async def exists(self, key: str) -> bool:
        return bool(await self._call("exists", key))

    async def incr_by(self, key: str, delta: int = 1) -> int:
        return await self._call("incrby", key, delta)

    async def list_push(self, key: str, *values: str) -> int:
        return await self._call("lpush", key, *values)

    async def list_range(self, key: str, start: int, end: int) -> List[str]:
        return await self._call("lrange", key, start, end)

    async def list_trim(self, key: str, start: int, end: int) -> bool:
        return bool(await self._call("ltrim", key, start, end))

    async def expire(self, key: str, ttl: int) -> bool:
        return bool(await self._call("expire", key, ttl))

    async def ttl(self, key: str) -> int:
        return await self._call("ttl", key)

    async def mget(self, keys: Sequence[str]) -> List[Optional[str]]:
        if not keys:
            return []
        return await self._call("mget", list(keys))

    async def keys_matching(self, pattern: str) -> List[str]:
        client = self._connection()
        try:
            return [key async for key in client.scan_iter(match=pattern, count=500)]
        except RedisError as e:
            raise StoreUnavailableError(f"Key-value store scan failed: {e}") from e

    async def ping(self) -> bool:
        return bool(await self._call("ping"))

    async def info(self, section: str = "memory") -> Dict[str, Any]:
        return await self._call("info", section)

    async def dbsize(self) -> int:
        return await self._call("dbsize")

    # ------------------------------------------------------------------
    # Batches
    # ------------------------------------------------------------------

    def batch(self) -> Batch:
        return Batch(self)

    async def execute_batch(self, commands: Sequence[Command]) -> List[Any]:
        """Run queued commands inside MULTI/EXEC and return their replies in order."""
        client = self._connection()
        try:
            async with client.pipeline(transaction=True) as pipe:
                for command in commands:
                    _PIPELINE_COMMANDS[command.name](pipe, *command.args, **command.kwargs)
                return await pipe.execute()
        except RedisError as e:
            raise StoreUnavailableError(f"Key-value store batch failed: {e}") from e
