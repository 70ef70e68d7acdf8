"""
Genre store interface (Abstract Base Class).

Defines the contract for genre persistence independent of the underlying
storage mechanism.
"""

from abc import ABC, abstractmethod
from typing import Iterable, List, Set

from ..domain.entities import Genre


class IGenreStore(ABC):
    """
    Abstract store for genre records.

    Only the movie repository writes through this interface.
    """

    @abstractmethod
    async def upsert_all(self, genres: Iterable[Genre]) -> int:
        """
        Insert or update genres keyed by identifier.

        Idempotent: rows whose values are unchanged are left alone.

        Args:
            genres: Genres to persist

        Returns:
            Number of rows inserted or changed
        """
        pass

    @abstractmethod
    async def get_by_id(self, genre_id: int) -> Genre:
        """
        Get a genre by identifier.

        Raises:
            GenreNotFoundException: If the genre is not stored
        """
        pass

    @abstractmethod
    async def get_all(self, order_by_name: bool = False) -> List[Genre]:
        """
        Get all genres.

        Args:
            order_by_name: Sort by name (then id); otherwise sorted by id

        Returns:
            All stored genres
        """
        pass

    @abstractmethod
    async def missing_ids(self, genre_ids: Iterable[int]) -> Set[int]:
        """
        Return the subset of ``genre_ids`` that is not stored.
        """
        pass

    @abstractmethod
    async def count(self) -> int:
        pass
