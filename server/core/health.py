"""Health check utilities for the /health endpoint.

Provides uptime tracking and dependency status for the backing store and
the primary database.
"""
import platform
import time
from datetime import datetime, timezone
from typing import Dict, Any, TYPE_CHECKING

import psutil

if TYPE_CHECKING:
    from core.config import Settings
    from core.database import Database
    from core.cache import CacheService

# Module-level startup time tracking
_startup_time: float = 0.0


def set_startup_time() -> None:
    """Record the application startup time. Call once during lifespan startup."""
    global _startup_time
    _startup_time = time.time()


def get_uptime() -> float:
    """Get uptime in seconds since startup."""
    return time.time() - _startup_time if _startup_time else 0.0


def get_memory_mb() -> float:
    """Get current process memory usage in MB."""
    try:
        return psutil.Process().memory_info().rss / (1024 * 1024)
    except psutil.Error:
        return 0.0


async def check_store(cache: "CacheService") -> Dict[str, Any]:
    if not cache.kv.is_configured:
        return {"status": "unhealthy", "connected": False, "code": "CONFIG_ERROR"}
    connected = await cache.ping()
    return {
        "status": "healthy" if connected else "unhealthy",
        "connected": connected,
        "stats": await cache.stats() if connected else {},
    }


async def check_database(database: "Database") -> Dict[str, Any]:
    if not database.is_configured:
        return {"status": "unhealthy", "connected": False, "code": "CONFIG_ERROR"}
    connected = await database.ping()
    stats = {}
    if connected:
        stats["users_count"] = await database.count_users()
    return {
        "status": "healthy" if connected else "unhealthy",
        "connected": connected,
        "stats": stats,
    }


async def get_health_status(
    database: "Database",
    cache: "CacheService",
    settings: "Settings"
) -> Dict[str, Any]:
    """Get comprehensive health status for /health endpoint.

    Returns:
        Dict containing overall status, per-dependency status, uptime and
        resource usage.
    """
    store = await check_store(cache)
    db = await check_database(database)
    healthy = store["connected"] and db["connected"]

    return {
        "status": "healthy" if healthy else "unhealthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "services": {
            "store": store,
            "database": db,
            "api": {
                "status": "healthy",
                "uptime_seconds": round(get_uptime(), 1),
                "memory_mb": round(get_memory_mb(), 1),
                "python": platform.python_version(),
            },
        },
        "environment": {
            "environment": settings.environment,
            "platform": platform.system().lower(),
            "rate_limit_backend": settings.rate_limit_backend,
        },
    }
