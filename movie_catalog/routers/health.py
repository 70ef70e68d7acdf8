"""
Health check and monitoring router.
"""

from datetime import datetime, timezone

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel

from ..dependencies import get_repository
from ..services.movie_repository import MovieRepository

router = APIRouter(tags=["health"])


class HealthResponse(BaseModel):
    """Health check response model."""

    status: str
    timestamp: str
    service: str = "movie-catalog-cache"
    version: str = "0.1.0"


@router.get(
    "/health",
    response_model=HealthResponse,
    status_code=status.HTTP_200_OK,
    summary="Health check",
)
async def health_check():
    """
    Basic health check.

    Always returns 200 OK if the service is running.
    """
    return HealthResponse(
        status="healthy", timestamp=datetime.now(timezone.utc).isoformat()
    )


@router.get("/api/v1/stats", summary="Cache statistics")
async def cache_statistics(repository: MovieRepository = Depends(get_repository)):
    """Store counts, freshness markers and catalog client health."""
    return await repository.get_cache_statistics()
