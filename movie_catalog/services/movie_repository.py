"""
Movie repository.

Single read/write surface over the remote catalog and the local genre and
movie stores, implementing cache-aside with TTL-gated refresh.
"""

import asyncio
import time
from dataclasses import replace
from typing import List, Optional

import structlog

from ..config import CatalogSettings
from ..domain.entities import (
    DataSource,
    Genre,
    Movie,
    MovieFilter,
    MoviePage,
    QueryKey,
    RepositoryResult,
    StaleServedWarning,
)
from ..domain.exceptions import (
    TRANSIENT_REMOTE_ERRORS,
    DataIntegrityException,
    MalformedResponseException,
    MovieCatalogException,
    MovieNotFoundException,
    ReferentialIntegrityException,
    ValidationException,
)
from ..infrastructure.catalog_client import ICatalogClient
from ..metrics import (
    catalog_cache_hits_total,
    catalog_cache_misses_total,
    catalog_referential_retries_total,
    catalog_refresh_duration_seconds,
    catalog_stale_serves_total,
    track_remote_fetch,
)
from ..repositories.genre_store import IGenreStore
from ..repositories.movie_store import IMovieStore
from ..repositories.pagination import token_for_page
from .freshness import FreshnessTracker
from .single_flight import SingleFlight

logger = structlog.get_logger(__name__)


def _drain(task: asyncio.Future) -> None:
    if not task.cancelled() and task.exception() is not None:
        logger.error("detached_commit_failed", error=str(task.exception()))


class MovieRepository:
    """
    Cache-aside repository for movies and genres.

    Read path:
    1. Fresh marker for the query key -> serve from the movie store
    2. Otherwise refresh: fetch from the catalog, write genres, then movies,
       then mark the key fresh
    3. Serve from the movie store (read-after-write)

    When the catalog is unavailable or rate limited, cached rows are served
    with a StaleServedWarning; with nothing cached the error propagates.
    """

    def __init__(
        self,
        catalog_client: ICatalogClient,
        genre_store: IGenreStore,
        movie_store: IMovieStore,
        settings: Optional[CatalogSettings] = None,
        freshness: Optional[FreshnessTracker] = None,
        single_flight: Optional[SingleFlight] = None,
    ):
        """
        Initialize the repository.

        Args:
            catalog_client: Remote catalog client
            genre_store: Local genre store
            movie_store: Local movie store
            settings: TTLs, page size and retry toggle
            freshness: Freshness markers (injectable clock for tests)
            single_flight: Per-key refresh coalescing
        """
        self.catalog_client = catalog_client
        self.genre_store = genre_store
        self.movie_store = movie_store
        self.settings = settings or CatalogSettings()
        self.freshness = freshness if freshness is not None else FreshnessTracker()
        self._flights = single_flight if single_flight is not None else SingleFlight()

    @property
    def page_size(self) -> int:
        return self.settings.page_size

    async def start(self) -> None:
        """Warm the genre cache when configured to. Failures are logged only."""
        if not self.settings.refresh_on_startup:
            return
        try:
            genres = await self.refresh_genres()
            logger.info("genre_cache_warmed", genres=len(genres))
        except MovieCatalogException as e:
            logger.warning("genre_cache_warm_failed", error=e.message)

    async def get_popular_movies(self, page: int = 1) -> RepositoryResult[MoviePage]:
        """
        Get one page of popular movies.

        Args:
            page: 1-based page number

        Returns:
            Page read from the movie store, tagged with its source

        Raises:
            CatalogUnavailableException: Refresh failed and nothing is cached
            RateLimitExceededException: Refresh was throttled and nothing is cached
            DataIntegrityException: The catalog sent an invalid page
        """
        if page < 1:
            raise ValidationException("page", page, "Page numbers start at 1")

        key = QueryKey.popular(page)
        if self._is_fresh(key):
            catalog_cache_hits_total.labels(query_type=key.query_type.value).inc()
            logger.debug("cache_hit", query=str(key))
            return RepositoryResult(await self._read_popular(page), DataSource.CACHE)

        catalog_cache_misses_total.labels(query_type=key.query_type.value).inc()
        try:
            await self._flights.run(key, lambda: self._refresh_popular(key, page))
        except TRANSIENT_REMOTE_ERRORS as e:
            cached = await self._read_popular(page)
            if cached.is_empty:
                logger.warning("refresh_failed_nothing_cached", query=str(key), error=e.message)
                raise
            return RepositoryResult(cached, DataSource.CACHE, self._stale_warning(key, e))

        return RepositoryResult(await self._read_popular(page), DataSource.REMOTE)

    async def get_movie_by_id(self, movie_id: int) -> RepositoryResult[Movie]:
        """
        Get a single movie.

        Raises:
            MovieNotFoundException: The catalog does not know the movie
            CatalogUnavailableException: Refresh failed and the movie is not cached
            RateLimitExceededException: Refresh was throttled and the movie is not cached
            DataIntegrityException: The catalog sent an invalid movie
        """
        key = QueryKey.movie(movie_id)
        if self._is_fresh(key):
            cached = await self._cached_movie(movie_id)
            if cached is not None:
                catalog_cache_hits_total.labels(query_type=key.query_type.value).inc()
                return RepositoryResult(cached, DataSource.CACHE)

        catalog_cache_misses_total.labels(query_type=key.query_type.value).inc()
        try:
            await self._flights.run(key, lambda: self._refresh_movie(key, movie_id))
        except TRANSIENT_REMOTE_ERRORS as e:
            cached = await self._cached_movie(movie_id)
            if cached is None:
                logger.warning("refresh_failed_nothing_cached", query=str(key), error=e.message)
                raise
            return RepositoryResult(cached, DataSource.CACHE, self._stale_warning(key, e))

        return RepositoryResult(await self.movie_store.get_by_id(movie_id), DataSource.REMOTE)

    async def refresh_genres(self) -> List[Genre]:
        """
        Fetch the full genre list and upsert it, unconditionally.

        Returns:
            All stored genres, sorted by name
        """
        key = QueryKey.genres()
        return await self._flights.run(key, lambda: self._refresh_genres(key))

    async def get_all_genres(self) -> List[Genre]:
        return await self.genre_store.get_all(order_by_name=True)

    async def search_movies(
        self,
        title_query: Optional[str] = None,
        genre_id: Optional[int] = None,
        page: int = 1,
    ) -> MoviePage:
        """
        Search the local store by title substring, genre, or both.

        Never calls the catalog.
        """
        title_query = title_query.strip() if title_query else None
        movie_filter = MovieFilter(genre_id=genre_id, title_query=title_query or None)
        return await self._read_page(movie_filter, page)

    async def get_movies_by_genre(self, genre_id: int, page: int = 1) -> MoviePage:
        return await self.search_movies(genre_id=genre_id, page=page)

    async def get_total_movie_count(self) -> int:
        return await self.movie_store.count()

    async def sync_if_needed(self) -> bool:
        """
        Populate an empty store from popular page 1.

        Returns:
            True if a sync ran
        """
        if await self.movie_store.count() > 0:
            return False
        logger.info("store_empty_syncing_popular")
        await self.get_popular_movies(1)
        return True

    async def update_wishlist_status(self, movie_id: int, status: bool) -> Movie:
        return await self.movie_store.set_wishlist_status(movie_id, status)

    async def get_wishlist(self, page: int = 1) -> MoviePage:
        return await self._read_page(MovieFilter(wishlist_only=True), page)

    async def is_movie_in_wishlist(self, movie_id: int) -> bool:
        return await self.movie_store.is_in_wishlist(movie_id)

    async def get_wishlist_count(self) -> int:
        return await self.movie_store.count(MovieFilter(wishlist_only=True))

    async def get_cache_statistics(self) -> dict:
        """
        Get statistics from the local stores and the catalog client.

        Returns:
            Dictionary with cache metrics
        """
        return {
            "movies": await self.movie_store.count(),
            "genres": await self.genre_store.count(),
            "wishlist": await self.get_wishlist_count(),
            "freshness_markers": len(self.freshness),
            "refreshes_in_flight": len(self._flights),
            "external_api": self.catalog_client.get_health_status(),
        }

    def _is_fresh(self, key: QueryKey) -> bool:
        return self.freshness.is_fresh(key, self.settings.ttl_for(key.query_type))

    async def _read_page(self, movie_filter: Optional[MovieFilter], page: int) -> MoviePage:
        token = token_for_page(page, self.page_size)
        result = await self.movie_store.query(movie_filter, token, self.page_size)
        result.page = page
        return result

    async def _read_popular(self, page: int) -> MoviePage:
        """Movies the catalog last listed on a popular page."""
        result = await self.movie_store.query(MovieFilter(popular_page=page), None, self.page_size)
        result.page = page
        return result

    async def _cached_movie(self, movie_id: int) -> Optional[Movie]:
        try:
            return await self.movie_store.get_by_id(movie_id)
        except MovieNotFoundException:
            return None

    def _stale_warning(self, key: QueryKey, error: MovieCatalogException) -> StaleServedWarning:
        catalog_stale_serves_total.labels(
            query_type=key.query_type.value, error_type=type(error).__name__
        ).inc()
        logger.warning(
            "serving_stale",
            query=str(key),
            error_type=type(error).__name__,
            error=error.message,
        )
        return StaleServedWarning(
            query_key=key,
            reason=error.message,
            error_type=type(error).__name__,
            last_refreshed_at=self.freshness.get(key),
        )

    async def _refresh_popular(self, key: QueryKey, page: int) -> None:
        start_time = time.time()
        try:
            catalog_page = await self.catalog_client.fetch_popular(page)
        except MalformedResponseException as e:
            raise self._malformed(key, "fetch_popular", e)
        except TRANSIENT_REMOTE_ERRORS:
            track_remote_fetch("fetch_popular", "error")
            raise
        track_remote_fetch("fetch_popular", "success")

        await self._commit_shielded(
            key, catalog_page.genres, catalog_page.movies, popular_page=page
        )
        catalog_refresh_duration_seconds.labels(query_type=key.query_type.value).observe(
            time.time() - start_time
        )
        logger.info(
            "popular_page_refreshed",
            page=page,
            movies=len(catalog_page.movies),
            genres=len(catalog_page.genres),
        )

    async def _refresh_movie(self, key: QueryKey, movie_id: int) -> None:
        start_time = time.time()
        try:
            movie = await self.catalog_client.fetch_by_id(movie_id)
        except MovieNotFoundException:
            track_remote_fetch("fetch_by_id", "not_found")
            logger.info("movie_not_in_catalog", movie_id=movie_id)
            raise
        except MalformedResponseException as e:
            raise self._malformed(key, "fetch_by_id", e)
        except TRANSIENT_REMOTE_ERRORS:
            track_remote_fetch("fetch_by_id", "error")
            raise
        track_remote_fetch("fetch_by_id", "success")

        await self._commit_shielded(key, [], [movie])
        catalog_refresh_duration_seconds.labels(query_type=key.query_type.value).observe(
            time.time() - start_time
        )
        logger.info("movie_refreshed", movie_id=movie_id)

    async def _refresh_genres(self, key: QueryKey) -> List[Genre]:
        try:
            genres = await self.catalog_client.fetch_genres()
        except MalformedResponseException as e:
            raise self._malformed(key, "fetch_genres", e)
        except TRANSIENT_REMOTE_ERRORS:
            track_remote_fetch("fetch_genres", "error")
            raise
        track_remote_fetch("fetch_genres", "success")

        changed = await self.genre_store.upsert_all(genres)
        self.freshness.mark(key)
        logger.info("genres_refreshed", fetched=len(genres), changed=changed)
        return await self.genre_store.get_all(order_by_name=True)

    @staticmethod
    def _malformed(
        key: QueryKey, operation: str, error: MalformedResponseException
    ) -> DataIntegrityException:
        track_remote_fetch(operation, "malformed")
        logger.error("malformed_catalog_response", query=str(key), error=error.message)
        return DataIntegrityException(
            "catalog response", error.message, details={"query": str(key), **error.details}
        )

    async def _commit_shielded(
        self,
        key: QueryKey,
        genres: List[Genre],
        movies: List[Movie],
        popular_page: Optional[int] = None,
    ) -> None:
        """
        Run the write step so that cancelling the caller cannot cut it in half.

        On cancellation the refresh still waits for the write to finish, so
        the key stays in flight until the store and the marker are settled.
        """
        commit = asyncio.ensure_future(self._commit(key, genres, movies, popular_page))
        try:
            await asyncio.shield(commit)
        except asyncio.CancelledError:
            commit.add_done_callback(_drain)
            await asyncio.wait({commit})
            raise

    async def _commit(
        self,
        key: QueryKey,
        genres: List[Genre],
        movies: List[Movie],
        popular_page: Optional[int] = None,
    ) -> None:
        """
        Write genres, then movies, then the freshness marker.

        A failing genre write means no movie write for this cycle. For a
        popular page the movie write also replaces that page's listing.
        """
        synced_at = self.freshness.now()

        if genres:
            await self.genre_store.upsert_all(genres)

        referenced = {genre_id for movie in movies for genre_id in movie.genre_ids}
        if referenced:
            missing = await self.genre_store.missing_ids(referenced)
            if missing:
                logger.info("unknown_genres_refreshing", query=str(key), missing=sorted(missing))
                await self.refresh_genres()

        stamped = [replace(movie, last_synced_at=synced_at) for movie in movies]
        try:
            await self.movie_store.upsert_all(stamped, popular_page=popular_page)
        except ReferentialIntegrityException as e:
            if not self.settings.retry_on_referential_error:
                raise
            logger.warning(
                "referential_error_retrying", query=str(key), missing=e.missing_genre_ids
            )
            await self.refresh_genres()
            try:
                await self.movie_store.upsert_all(stamped, popular_page=popular_page)
            except ReferentialIntegrityException:
                catalog_referential_retries_total.labels(outcome="failure").inc()
                logger.error("referential_retry_failed", query=str(key))
                raise
            catalog_referential_retries_total.labels(outcome="success").inc()

        self.freshness.mark(key, synced_at)
