"""
Movie router.

Popular listing and detail go through the repository's TTL-gated refresh;
search only reads the local store.
"""

from typing import Optional

import structlog
from fastapi import APIRouter, Depends, Query, Response

from ..dependencies import get_repository
from ..domain.entities import RepositoryResult
from ..services.movie_repository import MovieRepository
from .schemas import ErrorResponse, MovieDetailResponse, MoviePageResponse

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/v1/movies", tags=["movies"])

STALE_WARNING_HEADER = '110 - "Response is Stale"'

ERROR_RESPONSES = {
    404: {"description": "Movie not found", "model": ErrorResponse},
    429: {"description": "Catalog rate limited and nothing cached", "model": ErrorResponse},
    502: {"description": "Catalog sent invalid data", "model": ErrorResponse},
    503: {"description": "Catalog unavailable and nothing cached", "model": ErrorResponse},
}


def _mark_stale(result: RepositoryResult, response: Response) -> Optional[dict]:
    if not result.is_stale:
        return None
    response.headers["Warning"] = STALE_WARNING_HEADER
    return result.warning.to_dict()


@router.get(
    "/popular",
    response_model=MoviePageResponse,
    responses=ERROR_RESPONSES,
    summary="Popular movies",
)
async def get_popular_movies(
    response: Response,
    page: int = Query(1, ge=1, description="1-based page number"),
    repository: MovieRepository = Depends(get_repository),
):
    """
    Get a page of popular movies.

    Served from the local cache while fresh, refreshed from the catalog
    otherwise. Cached data served after a failed refresh carries a
    ``warning`` object and a ``Warning: 110`` header.
    """
    result = await repository.get_popular_movies(page)
    body = result.value.to_dict()
    body["source"] = result.source.value
    body["warning"] = _mark_stale(result, response)
    logger.info(
        "Popular movies served",
        page=page,
        count=len(result.value),
        source=result.source.value,
        stale=result.is_stale,
    )
    return body


@router.get(
    "/search",
    response_model=MoviePageResponse,
    responses={422: {"description": "Invalid parameters", "model": ErrorResponse}},
    summary="Search cached movies",
)
async def search_movies(
    q: Optional[str] = Query(None, max_length=100, description="Title substring"),
    genre_id: Optional[int] = Query(None, description="Genre filter"),
    page: int = Query(1, ge=1),
    repository: MovieRepository = Depends(get_repository),
):
    """Search the local store by title, genre, or both."""
    result = await repository.search_movies(title_query=q, genre_id=genre_id, page=page)
    body = result.to_dict()
    body["source"] = "cache"
    return body


@router.get(
    "/{movie_id}",
    response_model=MovieDetailResponse,
    responses=ERROR_RESPONSES,
    summary="Movie details",
)
async def get_movie(
    movie_id: int,
    response: Response,
    repository: MovieRepository = Depends(get_repository),
):
    """Get a single movie by catalog id."""
    result = await repository.get_movie_by_id(movie_id)
    return {
        "data": result.value.to_dict(),
        "source": result.source.value,
        "warning": _mark_stale(result, response),
    }
