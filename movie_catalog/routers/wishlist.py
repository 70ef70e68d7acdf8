"""
Wishlist router.

The wishlist flag is local state on cached movies; catalog refreshes never
reset it.
"""

import structlog
from fastapi import APIRouter, Depends, Query

from ..dependencies import get_repository
from ..services.movie_repository import MovieRepository
from .schemas import (
    ErrorResponse,
    MovieResponse,
    WishlistPageResponse,
    WishlistStatusResponse,
    WishlistUpdate,
)

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/v1/wishlist", tags=["wishlist"])

NOT_FOUND = {404: {"description": "Movie not cached", "model": ErrorResponse}}


@router.get("", response_model=WishlistPageResponse, summary="Wishlist")
async def get_wishlist(
    page: int = Query(1, ge=1),
    repository: MovieRepository = Depends(get_repository),
):
    result = await repository.get_wishlist(page)
    body = result.to_dict()
    body["source"] = "cache"
    body["total_count"] = await repository.get_wishlist_count()
    return body


@router.get("/{movie_id}", response_model=WishlistStatusResponse, summary="Wishlist status")
async def get_wishlist_status(
    movie_id: int, repository: MovieRepository = Depends(get_repository)
):
    return {
        "movie_id": movie_id,
        "in_wishlist": await repository.is_movie_in_wishlist(movie_id),
    }


@router.put(
    "/{movie_id}",
    response_model=MovieResponse,
    responses=NOT_FOUND,
    summary="Set wishlist status",
)
async def set_wishlist_status(
    movie_id: int,
    update: WishlistUpdate,
    repository: MovieRepository = Depends(get_repository),
):
    movie = await repository.update_wishlist_status(movie_id, update.in_wishlist)
    logger.info("Wishlist updated", movie_id=movie_id, in_wishlist=update.in_wishlist)
    return movie.to_dict()


@router.delete(
    "/{movie_id}",
    response_model=MovieResponse,
    responses=NOT_FOUND,
    summary="Remove from wishlist",
)
async def remove_from_wishlist(
    movie_id: int, repository: MovieRepository = Depends(get_repository)
):
    movie = await repository.update_wishlist_status(movie_id, False)
    logger.info("Removed from wishlist", movie_id=movie_id)
    return movie.to_dict()
