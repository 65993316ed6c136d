"""Value types returned by the cache layer and the rate limiters."""

import time
from dataclasses import dataclass
from typing import Any, NamedTuple, Optional, Union


@dataclass(frozen=True)
class CacheHit:
    value: Any


@dataclass(frozen=True)
class CacheMiss:
    pass


@dataclass(frozen=True)
class CacheCorrupt:
    """Stored text that did not parse as JSON. The key is left in place."""
    raw: str
    error: str


CacheLookup = Union[CacheHit, CacheMiss, CacheCorrupt]


class CacheItem(NamedTuple):
    """One ``mset`` entry; ``ttl=None`` stores without expiry."""
    key: str
    value: Any
    ttl: Optional[int] = None


@dataclass(frozen=True)
class RateLimitResult:
    """Outcome of one fixed-window check.

    reset_at is epoch seconds at which the current window ends.
    """
    allowed: bool
    remaining: int
    limit: int
    reset_at: float

    @property
    def retry_after(self) -> int:
        return max(0, int(round(self.reset_at - time.time())))

    def headers(self) -> dict:
        return {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(int(self.reset_at)),
        }
