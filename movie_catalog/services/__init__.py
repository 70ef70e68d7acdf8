"""
Service layer - orchestration of the remote catalog and the local stores.
"""

from .freshness import FreshnessTracker
from .movie_repository import MovieRepository
from .single_flight import SingleFlight

__all__ = ["FreshnessTracker", "MovieRepository", "SingleFlight"]
