"""
Remote catalog client interface.

Defines the contract for movie catalog providers. Implementations do not
cache: every call is a live request.
"""

from abc import ABC, abstractmethod
from typing import List

from ..domain.entities import CatalogPage, Genre, Movie


class ICatalogClient(ABC):
    """
    Abstract interface for remote movie catalog clients.

    All methods may raise:
        CatalogUnavailableException: Transient network or service failure
        RateLimitExceededException: The catalog asked us to back off
        MalformedResponseException: The response failed validation
    """

    @abstractmethod
    async def fetch_popular(self, page: int) -> CatalogPage:
        """
        Fetch one page of popular movies with the genres they reference.

        Args:
            page: 1-based page number

        Returns:
            Catalog page with movies and genres
        """
        pass

    @abstractmethod
    async def fetch_by_id(self, movie_id: int) -> Movie:
        """
        Fetch a single movie.

        Raises:
            MovieNotFoundException: If the catalog does not know the movie
        """
        pass

    @abstractmethod
    async def fetch_genres(self) -> List[Genre]:
        """
        Fetch the full genre list.
        """
        pass

    @abstractmethod
    def get_health_status(self) -> dict:
        """
        Get client health status.

        Returns:
            Dictionary with health metrics (circuit state, rate limit usage)
        """
        pass
