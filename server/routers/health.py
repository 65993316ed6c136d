"""Health check route."""

from fastapi import APIRouter
from fastapi.responses import ORJSONResponse

from core.container import container
from core.health import get_health_status

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check():
    """Store and database status plus process stats; 503 when anything is down."""
    status = await get_health_status(
        container.database(), container.cache(), container.settings()
    )
    return ORJSONResponse(status, status_code=200 if status["status"] == "healthy" else 503)
