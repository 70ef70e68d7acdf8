"""
Genre router.
"""

import structlog
from fastapi import APIRouter, Depends

from ..dependencies import get_repository
from ..services.movie_repository import MovieRepository
from .schemas import ErrorResponse, GenreListResponse

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/v1/genres", tags=["genres"])


@router.get("", response_model=GenreListResponse, summary="Cached genres")
async def list_genres(repository: MovieRepository = Depends(get_repository)):
    """All locally known genres, sorted by name."""
    genres = await repository.get_all_genres()
    return {"genres": [genre.to_dict() for genre in genres], "total_count": len(genres)}


@router.post(
    "/refresh",
    response_model=GenreListResponse,
    responses={
        429: {"description": "Catalog rate limited", "model": ErrorResponse},
        503: {"description": "Catalog unavailable", "model": ErrorResponse},
    },
    summary="Refresh genres from the catalog",
)
async def refresh_genres(repository: MovieRepository = Depends(get_repository)):
    genres = await repository.refresh_genres()
    logger.info("Genres refreshed via API", count=len(genres))
    return {"genres": [genre.to_dict() for genre in genres], "total_count": len(genres)}
