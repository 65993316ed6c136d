"""Per-user recent search terms, backed by the cache service."""

from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, ConfigDict, Field

from core.cache import CacheService
from core.container import container
from core.exceptions import ValidationFailed
from middleware.gate import current_user_email

router = APIRouter(prefix="/api/user/search-history", tags=["search-history"])


class SearchHistoryRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    search_term: str = Field(default="", alias="searchTerm")


def get_cache() -> CacheService:
    return container.cache()


@router.get("")
async def list_search_history(
    limit: int = Query(default=10, ge=1, le=100),
    email: str = Depends(current_user_email),
    cache: CacheService = Depends(get_cache),
):
    history = await cache.get_search_history(email, limit)
    return {
        "history": history,
        "total": len(history),
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@router.post("")
async def record_search(
    body: SearchHistoryRequest,
    email: str = Depends(current_user_email),
    cache: CacheService = Depends(get_cache),
):
    """Record a term. ``success`` is false when the store could not take it."""
    term = body.search_term.strip()
    if not term:
        raise ValidationFailed("Search term is required")
    recorded = await cache.add_search_history(email, term)
    return {"success": recorded}


@router.delete("")
async def clear_search_history(
    email: str = Depends(current_user_email),
    cache: CacheService = Depends(get_cache),
):
    await cache.clear_search_history(email)
    return {"success": True, "message": "Search history cleared"}
