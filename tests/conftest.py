"""
Shared fixtures: an in-memory key-value store, settings, and an app client
with the container's providers overridden.
"""

import fnmatch
import math
import os
import time
from typing import Any, Dict, List, Optional, Sequence

# Settings() is instantiated when main is imported
TEST_SECRET = "test-secret-key-0123456789-abcdefghijklmnop"
os.environ.setdefault("JWT_SECRET_KEY", TEST_SECRET)
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("RATE_LIMIT_BACKEND", "memory")

import pytest
from dependency_injector import providers
from fastapi.testclient import TestClient

from core.cache import CacheService
from core.config import Settings
from core.database import Database
from core.exceptions import StoreUnavailableError
from core.kv import Batch, Command
from models.auth import User
from services.flight_lookup import FlightLookupService
from services.rate_limit import MemoryRateLimiter, RateLimitPolicy
from services.user_auth import UserAuthService


class FakeClock:
    """Manually advanced clock for expiry and window tests."""

    def __init__(self, start: Optional[float] = None):
        self.now = float(int(time.time())) if start is None else start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeKeyValueClient:
    """In-memory stand-in for ``KeyValueClient`` with Redis-like semantics.

    Set ``down = True`` to make every command raise ``StoreUnavailableError``.
    """

    def __init__(self, clock: Optional[FakeClock] = None):
        self.clock = clock or FakeClock()
        self.data: Dict[str, Any] = {}
        self.expiry: Dict[str, float] = {}
        self.down = False
        self.is_configured = True
        self.started = False

    async def startup(self) -> None:
        self.started = True

    async def shutdown(self) -> None:
        self.started = False

    def _check(self) -> None:
        if self.down:
            raise StoreUnavailableError("Key-value store unreachable")

    def _live(self, key: str) -> bool:
        deadline = self.expiry.get(key)
        if deadline is not None and self.clock() >= deadline:
            self.data.pop(key, None)
            self.expiry.pop(key, None)
        return key in self.data

    async def get(self, key: str) -> Optional[str]:
        self._check()
        if not self._live(key):
            return None
        value = self.data[key]
        if isinstance(value, list):
            raise StoreUnavailableError("WRONGTYPE")
        return value

    async def set(self, key: str, value: str, ttl: Optional[int] = None, only_if_absent: bool = False) -> bool:
        self._check()
        if only_if_absent and self._live(key):
            return False
        self.data[key] = value
        if ttl:
            self.expiry[key] = self.clock() + ttl
        else:
            self.expiry.pop(key, None)
        return True

    async def delete(self, *keys: str) -> int:
        self._check()
        removed = 0
        for key in keys:
            if self._live(key):
                del self.data[key]
                self.expiry.pop(key, None)
                removed += 1
        return removed

    async def exists(self, key: str) -> bool:
        self._check()
        return self._live(key)

    async def incr_by(self, key: str, delta: int = 1) -> int:
        self._check()
        current = int(self.data[key]) if self._live(key) else 0
        self.data[key] = str(current + delta)
        return current + delta

    async def list_push(self, key: str, *values: str) -> int:
        self._check()
        items = self.data[key] if self._live(key) else []
        for value in values:
            items.insert(0, value)
        self.data[key] = items
        return len(items)

    async def list_range(self, key: str, start: int, end: int) -> List[str]:
        self._check()
        if not self._live(key):
            return []
        items = self.data[key]
        return items[start:] if end == -1 else items[start:end + 1]

    async def list_trim(self, key: str, start: int, end: int) -> bool:
        self._check()
        if self._live(key):
            items = self.data[key]
            self.data[key] = items[start:] if end == -1 else items[start:end + 1]
        return True

    async def expire(self, key: str, ttl: int) -> bool:
        self._check()
        if not self._live(key):
            return False
        self.expiry[key] = self.clock() + ttl
        return True

    async def ttl(self, key: str) -> int:
        self._check()
        if not self._live(key):
            return -2
        if key not in self.expiry:
            return -1
        return math.ceil(self.expiry[key] - self.clock())

    async def mget(self, keys: Sequence[str]) -> List[Optional[str]]:
        self._check()
        return [
            self.data[key] if self._live(key) and not isinstance(self.data[key], list) else None
            for key in keys
        ]

    async def keys_matching(self, pattern: str) -> List[str]:
        self._check()
        return [key for key in list(self.data) if self._live(key) and fnmatch.fnmatchcase(key, pattern)]

    async def ping(self) -> bool:
        self._check()
        return True

    async def info(self, section: str = "memory") -> Dict[str, Any]:
        self._check()
        return {"used_memory_human": "1.02M"}

    async def dbsize(self) -> int:
        self._check()
        return sum(1 for key in list(self.data) if self._live(key))

    def batch(self) -> Batch:
        return Batch(self)

    async def execute_batch(self, commands: Sequence[Command]) -> List[Any]:
        self._check()
        return [await getattr(self, command.name)(*command.args, **command.kwargs) for command in commands]


def make_settings(**overrides) -> Settings:
    values = {
        "jwt_secret_key": TEST_SECRET,
        "environment": "test",
        "redis_url": "redis://localhost:6379/15",
        "database_url": None,
        "rate_limit_backend": "memory",
        "password_hash_rounds": 4,
        "log_format": "console",
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def settings():
    return make_settings()


@pytest.fixture
def kv(clock):
    return FakeKeyValueClient(clock)


@pytest.fixture
def cache(settings, kv):
    return CacheService(settings, kv)


@pytest.fixture
def db_settings(tmp_path):
    return make_settings(database_url=f"sqlite+aiosqlite:///{tmp_path / 'jetvein.db'}")


@pytest.fixture
def container_overrides():
    """Override providers on the global container; returns a setter."""
    from core.container import container

    def override(**instances):
        for name, instance in instances.items():
            getattr(container, name).override(providers.Object(instance))

    yield override
    container.reset_override()
    container.reset_singletons()


@pytest.fixture
def app_factory(container_overrides, kv, clock):
    """Build a started TestClient around the given settings."""
    from main import create_app

    clients = []

    def build(settings: Settings) -> TestClient:
        cache = CacheService(settings, kv)
        database = Database(settings)
        container_overrides(
            settings=settings,
            kv=kv,
            cache=cache,
            database=database,
            rate_limit_policy=RateLimitPolicy(settings),
            rate_limiter=MemoryRateLimiter(sweep_interval=settings.rate_limit_sweep_interval, clock=clock),
            user_auth_service=UserAuthService(database, settings),
            flight_lookup_service=FlightLookupService(cache),
        )
        client = TestClient(create_app())
        client.__enter__()
        clients.append(client)
        return client

    yield build
    for client in clients:
        client.__exit__(None, None, None)


@pytest.fixture
def client(app_factory, db_settings):
    return app_factory(db_settings)


@pytest.fixture
def auth_headers(db_settings):
    """Bearer header for a signed-in user (no database row needed)."""
    user = User(id=7, name="Asha Rao", email="asha@example.com", password_hash="x")
    token = UserAuthService(Database(db_settings), db_settings).create_access_token(user)
    return {"Authorization": f"Bearer {token}"}
