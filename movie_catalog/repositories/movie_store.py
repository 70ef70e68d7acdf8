"""
Movie store interface (Abstract Base Class).

Defines the contract for movie persistence and retrieval
independent of the underlying storage mechanism.
"""

from abc import ABC, abstractmethod
from typing import Iterable, Optional

from ..domain.entities import Movie, MovieFilter, MoviePage


class IMovieStore(ABC):
    """
    Abstract store for movie records.

    Every genre a movie references must already be in the genre store when
    the movie is written.
    """

    @abstractmethod
    async def upsert_all(
        self, movies: Iterable[Movie], popular_page: Optional[int] = None
    ) -> int:
        """
        Insert or update movies keyed by identifier.

        The whole batch is written or nothing is. Local wishlist flags of
        existing rows are preserved.

        Args:
            movies: Movies to persist
            popular_page: When given, the batch becomes the full membership of
                that popular page and earlier members not in it are dropped

        Returns:
            Number of movies written

        Raises:
            ReferentialIntegrityException: If any movie references a genre
                that is not stored
        """
        pass

    @abstractmethod
    async def get_by_id(self, movie_id: int) -> Movie:
        """
        Get a movie with its genres resolved.

        Raises:
            MovieNotFoundException: If the movie is not stored
        """
        pass

    @abstractmethod
    async def query(
        self,
        movie_filter: Optional[MovieFilter] = None,
        page_token: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> MoviePage:
        """
        Get a bounded page of movies matching a filter.

        Ordering is popularity descending, then identifier ascending, so
        repeated queries against an unchanged store return the same pages.

        Args:
            movie_filter: Filter criteria (all movies when None)
            page_token: Continuation token from the previous page
            limit: Page length (store default when None)

        Returns:
            Page of movies with the token of the next page, if any

        Raises:
            ValidationException: If the page token is invalid
        """
        pass

    @abstractmethod
    async def count(self, movie_filter: Optional[MovieFilter] = None) -> int:
        pass

    @abstractmethod
    async def set_wishlist_status(self, movie_id: int, status: bool) -> Movie:
        """
        Set the local wishlist flag of a movie.

        Raises:
            MovieNotFoundException: If the movie is not stored
        """
        pass

    @abstractmethod
    async def is_in_wishlist(self, movie_id: int) -> bool:
        pass
