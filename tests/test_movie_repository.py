"""
Tests for the movie repository with mocked stores and client.

Covers:
- Genre-before-movie write ordering
- Referential error recovery
- Failure semantics per error kind
- Cancellation during fetch and during the write step
"""

import asyncio
from unittest.mock import AsyncMock, Mock

import pytest

from movie_catalog.config import CatalogSettings
from movie_catalog.domain.entities import (
    CatalogPage,
    DataSource,
    Genre,
    Movie,
    MovieFilter,
    MoviePage,
    QueryKey,
)
from movie_catalog.domain.exceptions import (
    CatalogUnavailableException,
    CircuitBreakerOpenException,
    DataIntegrityException,
    MalformedResponseException,
    MovieNotFoundException,
    RateLimitExceededException,
    ReferentialIntegrityException,
    StoreException,
    ValidationException,
)
from movie_catalog.services.freshness import FreshnessTracker
from movie_catalog.services.movie_repository import MovieRepository
from movie_catalog.services.single_flight import SingleFlight

CATALOG_PAGE = CatalogPage(
    page=1,
    movies=[Movie(id=1, title="Die Hard", popularity=90.0, genre_ids=(10,))],
    genres=[Genre(10, "Action")],
)

CACHED_PAGE = MoviePage(
    movies=[Movie(id=1, title="Die Hard", popularity=90.0, genre_ids=(10,))],
    page_size=20,
)


@pytest.fixture
def mock_stores():
    """Create mock stores."""
    genre_store = AsyncMock()
    movie_store = AsyncMock()
    genre_store.missing_ids.return_value = set()
    genre_store.get_all.return_value = [Genre(10, "Action")]
    movie_store.query.return_value = MoviePage(movies=[], page_size=20)
    return genre_store, movie_store


@pytest.fixture
def mock_catalog():
    """Create mock catalog client."""
    client = AsyncMock()
    client.fetch_popular.return_value = CatalogPage(
        page=1, movies=list(CATALOG_PAGE.movies), genres=list(CATALOG_PAGE.genres)
    )
    client.fetch_genres.return_value = [Genre(10, "Action"), Genre(99, "Noir")]
    client.get_health_status = Mock(return_value={"service": "mock"})
    return client


@pytest.fixture
def repo(mock_stores, mock_catalog, clock):
    """Create repository with mocks."""
    genre_store, movie_store = mock_stores
    return MovieRepository(
        catalog_client=mock_catalog,
        genre_store=genre_store,
        movie_store=movie_store,
        settings=CatalogSettings(refresh_on_startup=False),
        freshness=FreshnessTracker(clock=clock),
    )


class TestRepositoryInitialization:
    def test_initialization(self, repo, mock_stores, mock_catalog):
        """Test repository is properly initialized."""
        genre_store, movie_store = mock_stores

        assert repo.catalog_client == mock_catalog
        assert repo.genre_store == genre_store
        assert repo.movie_store == movie_store
        assert repo.page_size == 20

    def test_keeps_injected_empty_collaborators(self, mock_stores, mock_catalog, clock):
        genre_store, movie_store = mock_stores
        tracker = FreshnessTracker(clock=clock)
        flights = SingleFlight()

        repo = MovieRepository(
            catalog_client=mock_catalog,
            genre_store=genre_store,
            movie_store=movie_store,
            freshness=tracker,
            single_flight=flights,
        )

        assert repo.freshness is tracker
        assert repo._flights is flights

    @pytest.mark.asyncio
    async def test_marks_injected_tracker(self, repo, mock_stores, clock):
        tracker = repo.freshness

        await repo.get_popular_movies(1)

        assert tracker.get(QueryKey.popular(1)) == clock()


class TestWriteOrdering:
    """Genres are durable before the movie write starts."""

    @pytest.mark.asyncio
    async def test_genres_written_before_movies(self, repo, mock_stores):
        genre_store, movie_store = mock_stores
        events = []

        async def record_genres(genres):
            events.append(("genres", [genre.id for genre in genres]))
            return len(genres)

        async def record_movies(movies, popular_page=None):
            events.append(("movies", [movie.id for movie in movies]))
            return len(movies)

        genre_store.upsert_all.side_effect = record_genres
        movie_store.upsert_all.side_effect = record_movies

        await repo.get_popular_movies(1)

        assert events == [("genres", [10]), ("movies", [1])]

    @pytest.mark.asyncio
    async def test_movies_stamped_with_sync_time(self, repo, mock_stores, clock):
        _, movie_store = mock_stores

        await repo.get_popular_movies(1)

        written = movie_store.upsert_all.call_args.args[0]
        assert [movie.last_synced_at for movie in written] == [clock()]

    @pytest.mark.asyncio
    async def test_popular_write_carries_page(self, repo, mock_stores, mock_catalog):
        _, movie_store = mock_stores
        mock_catalog.fetch_by_id.return_value = Movie(id=1, title="Die Hard", genre_ids=(10,))

        await repo.get_popular_movies(3)
        await repo.get_movie_by_id(1)

        calls = movie_store.upsert_all.call_args_list
        assert calls[0].kwargs["popular_page"] == 3
        assert calls[1].kwargs["popular_page"] is None

    @pytest.mark.asyncio
    async def test_popular_page_read_by_membership(self, repo, mock_stores):
        _, movie_store = mock_stores

        result = await repo.get_popular_movies(2)

        movie_filter, token, limit = movie_store.query.call_args.args
        assert movie_filter == MovieFilter(popular_page=2)
        assert token is None
        assert limit == 20
        assert result.value.page == 2

    @pytest.mark.asyncio
    async def test_genre_failure_skips_movie_write(self, repo, mock_stores):
        genre_store, movie_store = mock_stores
        genre_store.upsert_all.side_effect = StoreException("genre upsert", "disk full")

        with pytest.raises(StoreException):
            await repo.get_popular_movies(1)

        movie_store.upsert_all.assert_not_called()
        assert repo.freshness.get(QueryKey.popular(1)) is None

    @pytest.mark.asyncio
    async def test_unknown_genres_refreshed_before_movie_write(
        self, repo, mock_stores, mock_catalog
    ):
        genre_store, movie_store = mock_stores
        genre_store.missing_ids.return_value = {99}
        events = []
        mock_catalog.fetch_genres.side_effect = lambda: events.append("fetch_genres") or [
            Genre(99, "Noir")
        ]
        movie_store.upsert_all.side_effect = (
            lambda movies, **kwargs: events.append("movies") or 1
        )

        await repo.get_popular_movies(1)

        assert events == ["fetch_genres", "movies"]


class TestReferentialRetry:
    """A referential error triggers one genre refresh and one retry."""

    @pytest.mark.asyncio
    async def test_retry_succeeds(self, repo, mock_stores, mock_catalog):
        _, movie_store = mock_stores
        movie_store.upsert_all.side_effect = [ReferentialIntegrityException([99]), 1]

        result = await repo.get_popular_movies(1)

        assert result.source == DataSource.REMOTE
        assert movie_store.upsert_all.call_count == 2
        mock_catalog.fetch_genres.assert_called_once()
        assert repo.freshness.get(QueryKey.popular(1)) is not None

    @pytest.mark.asyncio
    async def test_second_failure_is_terminal(self, repo, mock_stores, mock_catalog):
        _, movie_store = mock_stores
        movie_store.upsert_all.side_effect = ReferentialIntegrityException([99])

        with pytest.raises(ReferentialIntegrityException):
            await repo.get_popular_movies(1)

        assert movie_store.upsert_all.call_count == 2
        mock_catalog.fetch_genres.assert_called_once()
        assert repo.freshness.get(QueryKey.popular(1)) is None

    @pytest.mark.asyncio
    async def test_retry_disabled(self, repo, mock_stores, mock_catalog):
        _, movie_store = mock_stores
        repo.settings = CatalogSettings(retry_on_referential_error=False)
        movie_store.upsert_all.side_effect = ReferentialIntegrityException([99])

        with pytest.raises(ReferentialIntegrityException):
            await repo.get_popular_movies(1)

        assert movie_store.upsert_all.call_count == 1
        mock_catalog.fetch_genres.assert_not_called()


class TestFailureSemantics:
    """Each remote error kind has its own outcome."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "error",
        [
            CatalogUnavailableException("catalog", "HTTP 503"),
            RateLimitExceededException(retry_after=5),
            CircuitBreakerOpenException("catalog", failure_count=5),
        ],
    )
    async def test_transient_error_serves_cache(self, repo, mock_stores, mock_catalog, error):
        _, movie_store = mock_stores
        mock_catalog.fetch_popular.side_effect = error
        movie_store.query.return_value = CACHED_PAGE

        result = await repo.get_popular_movies(1)

        assert result.is_stale
        assert result.source == DataSource.CACHE
        assert result.warning.error_type == type(error).__name__
        assert result.value.movies == CACHED_PAGE.movies

    @pytest.mark.asyncio
    async def test_transient_error_without_cache_propagates(self, repo, mock_catalog):
        mock_catalog.fetch_popular.side_effect = CatalogUnavailableException("catalog")

        with pytest.raises(CatalogUnavailableException):
            await repo.get_popular_movies(1)

    @pytest.mark.asyncio
    async def test_malformed_is_never_served_stale(self, repo, mock_stores, mock_catalog):
        _, movie_store = mock_stores
        mock_catalog.fetch_popular.side_effect = MalformedResponseException(
            "/movies/popular", "movies.0.title missing"
        )
        movie_store.query.return_value = CACHED_PAGE

        with pytest.raises(DataIntegrityException) as exc_info:
            await repo.get_popular_movies(1)

        assert exc_info.value.details["query"] == "popular:1"
        assert exc_info.value.details["endpoint"] == "/movies/popular"
        movie_store.upsert_all.assert_not_called()

    @pytest.mark.asyncio
    async def test_not_found_by_id_is_terminal(self, repo, mock_stores, mock_catalog):
        _, movie_store = mock_stores
        mock_catalog.fetch_by_id.side_effect = MovieNotFoundException(42)
        movie_store.get_by_id.side_effect = MovieNotFoundException(42)

        with pytest.raises(MovieNotFoundException):
            await repo.get_movie_by_id(42)

        movie_store.upsert_all.assert_not_called()

    @pytest.mark.asyncio
    async def test_failed_refresh_leaves_marker_untouched(self, repo, mock_catalog, clock):
        await repo.get_popular_movies(1)
        marked = repo.freshness.get(QueryKey.popular(1))

        clock.advance(600)
        mock_catalog.fetch_popular.side_effect = CatalogUnavailableException("catalog")
        repo.movie_store.query.return_value = CACHED_PAGE
        result = await repo.get_popular_movies(1)

        assert repo.freshness.get(QueryKey.popular(1)) == marked
        assert result.warning.last_refreshed_at == marked

    @pytest.mark.asyncio
    async def test_invalid_page(self, repo, mock_catalog):
        with pytest.raises(ValidationException):
            await repo.get_popular_movies(0)
        mock_catalog.fetch_popular.assert_not_called()


class TestCancellation:
    """Cancelling a caller never leaves a half-written refresh."""

    @pytest.mark.asyncio
    async def test_cancel_during_fetch_writes_nothing(self, repo, mock_stores, mock_catalog):
        genre_store, movie_store = mock_stores
        fetch_started = asyncio.Event()

        async def slow_fetch(page):
            fetch_started.set()
            await asyncio.Event().wait()

        mock_catalog.fetch_popular.side_effect = slow_fetch

        caller = asyncio.create_task(repo.get_popular_movies(1))
        await fetch_started.wait()
        caller.cancel()

        with pytest.raises(asyncio.CancelledError):
            await caller
        await asyncio.sleep(0)

        genre_store.upsert_all.assert_not_called()
        movie_store.upsert_all.assert_not_called()
        assert repo.freshness.get(QueryKey.popular(1)) is None

    @pytest.mark.asyncio
    async def test_cancel_during_write_completes_the_write(self, repo, mock_stores):
        genre_store, movie_store = mock_stores
        genres_started = asyncio.Event()
        release_genres = asyncio.Event()
        movies_written = asyncio.Event()

        async def slow_genres(genres):
            genres_started.set()
            await release_genres.wait()
            return len(genres)

        async def write_movies(movies, popular_page=None):
            movies_written.set()
            return len(movies)

        genre_store.upsert_all.side_effect = slow_genres
        movie_store.upsert_all.side_effect = write_movies

        caller = asyncio.create_task(repo.get_popular_movies(1))
        await genres_started.wait()
        caller.cancel()
        with pytest.raises(asyncio.CancelledError):
            await caller

        release_genres.set()
        await asyncio.wait_for(movies_written.wait(), timeout=1)
        await asyncio.sleep(0)

        assert repo.freshness.get(QueryKey.popular(1)) is not None

    @pytest.mark.asyncio
    async def test_new_caller_waits_for_write_of_cancelled_refresh(
        self, repo, mock_stores, mock_catalog
    ):
        genre_store, movie_store = mock_stores
        genre_store.missing_ids.return_value = {99}
        fetching_genres = asyncio.Event()
        release_genres = asyncio.Event()

        async def slow_genres():
            fetching_genres.set()
            await release_genres.wait()
            return [Genre(99, "Noir")]

        mock_catalog.fetch_genres.side_effect = slow_genres
        events = []

        async def fetch_popular(page):
            events.append("fetch")
            return CATALOG_PAGE

        mock_catalog.fetch_popular.side_effect = fetch_popular
        movie_store.upsert_all.side_effect = (
            lambda movies, **kwargs: events.append("write") or len(movies)
        )

        first = asyncio.create_task(repo.get_popular_movies(1))
        await fetching_genres.wait()
        first.cancel()
        with pytest.raises(asyncio.CancelledError):
            await first

        second = asyncio.create_task(repo.get_popular_movies(1))
        for _ in range(10):
            await asyncio.sleep(0)
        assert events == ["fetch"]

        release_genres.set()
        result = await asyncio.wait_for(second, timeout=1)

        assert result.source == DataSource.REMOTE
        assert events == ["fetch", "write", "fetch", "write"]


class TestCacheStatistics:
    @pytest.mark.asyncio
    async def test_statistics(self, repo, mock_stores):
        genre_store, movie_store = mock_stores
        movie_store.count.return_value = 3
        genre_store.count.return_value = 2

        stats = await repo.get_cache_statistics()

        assert stats["movies"] == 3
        assert stats["genres"] == 2
        assert stats["freshness_markers"] == 0
        assert stats["external_api"] == {"service": "mock"}
