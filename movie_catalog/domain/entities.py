"""
Domain entities for the movie catalog.

Core business objects representing movies, genres, pages of results and the
bookkeeping the repository attaches to what it serves.
These entities are framework-agnostic and contain only business logic.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Generic, List, Optional, Tuple, TypeVar

T = TypeVar("T")


class DataSource(str, Enum):
    """Where a served result came from."""

    REMOTE = "remote"  # Refreshed from the catalog during this call
    CACHE = "cache"  # Read from the local stores without a refresh


class QueryType(str, Enum):
    """Logical query families that carry their own freshness marker."""

    POPULAR = "popular"
    MOVIE = "movie"
    GENRES = "genres"


@dataclass(frozen=True)
class QueryKey:
    """
    Identity of a cacheable query, e.g. ("popular", "1") or ("movie", "42").

    Used both as the freshness marker key and as the single-flight key.
    """

    query_type: QueryType
    key: str

    @classmethod
    def popular(cls, page: int) -> "QueryKey":
        return cls(QueryType.POPULAR, str(page))

    @classmethod
    def movie(cls, movie_id: int) -> "QueryKey":
        return cls(QueryType.MOVIE, str(movie_id))

    @classmethod
    def genres(cls) -> "QueryKey":
        return cls(QueryType.GENRES, "all")

    def __str__(self) -> str:
        return f"{self.query_type.value}:{self.key}"


@dataclass(frozen=True)
class Genre:
    """Value object for a genre. The identifier is assigned by the catalog."""

    id: int
    name: str

    def __post_init__(self):
        if not self.name or not self.name.strip():
            raise ValueError(f"Genre {self.id} must have a name")

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name}


@dataclass(frozen=True)
class Movie:
    """
    Aggregate root for movie information.

    ``genre_ids`` is what the catalog sends and what the store persists;
    ``genres`` is resolved against the genre table when the movie is read
    back from the store and is empty on records straight off the network.
    """

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
    genre_ids: Tuple[int, ...] = ()
    genres: Tuple[Genre, ...] = ()
    is_in_wishlist: bool = False
    last_synced_at: Optional[datetime] = None

    def __post_init__(self):
        """Validate movie data and normalize genre ids."""
        if not self.title or not self.title.strip():
            raise ValueError(f"Movie {self.id} must have a title")
        if self.popularity < 0:
            raise ValueError("Popularity must not be negative")
        # Order preserving de-duplication
        object.__setattr__(self, "genre_ids", tuple(dict.fromkeys(self.genre_ids)))

    @property
    def genre_names(self) -> List[str]:
        return [genre.name for genre in self.genres]

    def to_dict(self) -> dict:
        """Convert to dictionary for API responses."""
        return {
            "id": self.id,
            "title": self.title,
            "year": self.year,
            "runtime": self.runtime,
            "director": self.director,
            "actors": self.actors,
            "plot": self.plot,
            "poster_url": self.poster_url,
            "popularity": self.popularity,
            "rating": self.rating,
            "genre_ids": list(self.genre_ids),
            "genres": [genre.to_dict() for genre in self.genres],
            "is_in_wishlist": self.is_in_wishlist,
            "last_synced_at": (
                self.last_synced_at.isoformat() if self.last_synced_at else None
            ),
        }


@dataclass
class CatalogPage:
    """One page of the remote catalog: movies plus the genres they use."""

    page: int
    movies: List[Movie] = field(default_factory=list)
    genres: List[Genre] = field(default_factory=list)


@dataclass
class MovieFilter:
    """
    Filter for local movie queries.

    Attributes:
        genre_id: Only movies tagged with this genre
        title_prefix: Case-insensitive title prefix
        title_query: Case-insensitive substring of the title
        wishlist_only: Only movies on the wishlist
        popular_page: Only movies the catalog last listed on this popular page
    """

    genre_id: Optional[int] = None
    title_prefix: Optional[str] = None
    title_query: Optional[str] = None
    wishlist_only: bool = False
    popular_page: Optional[int] = None

    def is_empty(self) -> bool:
        return (
            self.genre_id is None
            and not self.title_prefix
            and not self.title_query
            and not self.wishlist_only
            and self.popular_page is None
        )


@dataclass
class MoviePage:
    """A bounded page of movies read from the Movie Store."""

    movies: List[Movie]
    page_size: int
    next_page_token: Optional[str] = None
    page: Optional[int] = None

    def __len__(self) -> int:
        return len(self.movies)

    @property
    def is_empty(self) -> bool:
        return not self.movies

    def to_dict(self) -> dict:
        return {
            "page": self.page,
            "page_size": self.page_size,
            "next_page_token": self.next_page_token,
            "movies": [movie.to_dict() for movie in self.movies],
        }


@dataclass(frozen=True)
class StaleServedWarning:
    """
    Informational flag attached to a result served from the local cache after
    the remote refresh failed. Not an error.
    """

    query_key: QueryKey
    reason: str
    error_type: str
    last_refreshed_at: Optional[datetime] = None

    def to_dict(self) -> dict:
        return {
            "code": "stale_served",
            "query": str(self.query_key),
            "reason": self.reason,
            "error_type": self.error_type,
            "last_refreshed_at": (
                self.last_refreshed_at.isoformat() if self.last_refreshed_at else None
            ),
        }


@dataclass
class RepositoryResult(Generic[T]):
    """Successful repository answer, possibly served stale."""

    value: T
    source: DataSource
    warning: Optional[StaleServedWarning] = None

    @property
    def is_stale(self) -> bool:
        return self.warning is not None
