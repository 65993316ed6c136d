"""Flight search and aircraft history routes."""

from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Query, Request
from fastapi.responses import ORJSONResponse
from pydantic import BaseModel, ConfigDict, Field

from core.cache import CacheService
from core.config import Settings
from core.container import container
from core.exceptions import NotFoundError, ValidationFailed
from core.logging import get_logger
from middleware.gate import client_address, rate_limited_response
from services.flight_lookup import FlightLookupService

logger = get_logger(__name__)
router = APIRouter(prefix="/api/flights", tags=["flights"])


class FlightSearchRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    flight_number: str = Field(alias="flightNumber")


def get_cache() -> CacheService:
    return container.cache()


def get_lookup_service() -> FlightLookupService:
    return container.flight_lookup_service()


def get_settings() -> Settings:
    return container.settings()


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


async def _search(
    request: Request,
    flight_number: str,
    cache: CacheService,
    lookup: FlightLookupService,
    settings: Settings,
):
    rate_limit = await cache.check_rate_limit(
        f"api:{client_address(request)}",
        settings.flight_search_rate_limit,
        settings.flight_search_rate_window,
    )
    if not rate_limit.allowed:
        return rate_limited_response(rate_limit)

    data, cached = await lookup.search(flight_number)
    if data is None:
        raise NotFoundError("Flight not found")

    return ORJSONResponse(
        {"data": data, "cached": cached, "timestamp": _now()},
        headers={"X-Cache": "HIT" if cached else "MISS", **rate_limit.headers()},
    )


@router.get("/search")
async def search_flight(
    request: Request,
    flight: Optional[str] = Query(default=None),
    cache: CacheService = Depends(get_cache),
    lookup: FlightLookupService = Depends(get_lookup_service),
    settings: Settings = Depends(get_settings),
):
    """Cache-first flight lookup, counted against the caller's hourly quota."""
    flight_number = (flight or "").strip()
    if not flight_number:
        raise ValidationFailed("Flight number is required")
    return await _search(request, flight_number, cache, lookup, settings)


@router.post("/search")
async def search_flight_and_record(
    request: Request,
    body: FlightSearchRequest,
    background_tasks: BackgroundTasks,
    cache: CacheService = Depends(get_cache),
    lookup: FlightLookupService = Depends(get_lookup_service),
    settings: Settings = Depends(get_settings),
):
    """Same lookup as GET; also records the term in the caller's search history.

    The history write runs after the response is sent and never affects it.
    """
    flight_number = body.flight_number.strip()
    if not flight_number:
        raise ValidationFailed("Flight number is required")

    response = await _search(request, flight_number, cache, lookup, settings)

    user_email = getattr(request.state, "user_email", None)
    if user_email and response.status_code == 200:
        background_tasks.add_task(cache.add_search_history, user_email, flight_number)
        response.background = background_tasks
    return response


@router.get("/aircraft/{registration}")
async def aircraft_history(
    registration: str,
    lookup: FlightLookupService = Depends(get_lookup_service),
):
    """Recent legs flown by one airframe."""
    data, cached = await lookup.aircraft_history(registration)
    if data is None:
        raise NotFoundError("Aircraft not found")

    return ORJSONResponse(
        {"data": data, "cached": cached, "timestamp": _now()},
        headers={"X-Cache": "HIT" if cached else "MISS"},
    )
