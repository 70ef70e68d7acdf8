"""
Response and request models shared by the routers.
"""

from typing import List, Optional

from pydantic import BaseModel, Field


class GenreResponse(BaseModel):
    id: int
    name: str


class MovieResponse(BaseModel):
    """Movie as returned by the API."""

    id: int
    title: str
    year: str = ""
    runtime: str = ""
    director: str = ""
    actors: str = ""
    plot: str = ""
    poster_url: str = ""
    popularity: float = 0.0
    rating: Optional[float] = None
    genre_ids: List[int] = Field(default_factory=list)
    genres: List[GenreResponse] = Field(default_factory=list)
    is_in_wishlist: bool = False
    last_synced_at: Optional[str] = None


class StaleWarningResponse(BaseModel):
    """Present when the catalog could not be reached and cached data was served."""

    code: str = "stale_served"
    query: str
    reason: str
    error_type: str
    last_refreshed_at: Optional[str] = None


class MoviePageResponse(BaseModel):
    page: Optional[int] = None
    page_size: int
    next_page_token: Optional[str] = None
    movies: List[MovieResponse]
    source: Optional[str] = None
    warning: Optional[StaleWarningResponse] = None


class MovieDetailResponse(BaseModel):
    data: MovieResponse
    source: str
    warning: Optional[StaleWarningResponse] = None


class GenreListResponse(BaseModel):
    genres: List[GenreResponse]
    total_count: int


class WishlistUpdate(BaseModel):
    in_wishlist: bool = Field(..., description="New wishlist status")


class WishlistStatusResponse(BaseModel):
    movie_id: int
    in_wishlist: bool


class WishlistPageResponse(MoviePageResponse):
    total_count: int


class ErrorResponse(BaseModel):
    """Error response model."""

    error: str
    message: str
    details: dict = Field(default_factory=dict)
