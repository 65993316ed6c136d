"""Dependency injection container for the application."""

from dependency_injector import containers, providers

from core.config import Settings
from core.database import Database
from core.kv import KeyValueClient
from core.cache import CacheService
from services.flight_lookup import FlightLookupService
from services.rate_limit import RateLimitPolicy, build_rate_limiter
from services.user_auth import UserAuthService


class Container(containers.DeclarativeContainer):
    """Application dependency injection container."""

    # Settings
    settings = providers.Singleton(
        Settings,
    )

    # Primary database (user accounts)
    database = providers.Singleton(
        Database,
        settings=settings
    )

    # One key-value connection per process
    kv = providers.Singleton(
        KeyValueClient,
        settings=settings
    )

    cache = providers.Singleton(
        CacheService,
        settings=settings,
        kv=kv
    )

    # Request gate
    rate_limit_policy = providers.Singleton(
        RateLimitPolicy,
        settings=settings
    )

    rate_limiter = providers.Singleton(
        build_rate_limiter,
        settings=settings,
        cache=cache
    )

    # Services
    user_auth_service = providers.Singleton(
        UserAuthService,
        database=database,
        settings=settings
    )

    flight_lookup_service = providers.Singleton(
        FlightLookupService,
        cache=cache
    )


# Global container instance
container = Container()
