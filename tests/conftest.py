"""
Test configuration and fixtures
"""

import asyncio
from collections import Counter
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

import pytest

from movie_catalog.config import CatalogSettings
from movie_catalog.database import create_db_engine, create_session_factory
from movie_catalog.domain.entities import CatalogPage, Genre, Movie
from movie_catalog.domain.exceptions import MovieNotFoundException
from movie_catalog.infrastructure.catalog_client import ICatalogClient
from movie_catalog.models import Base
from movie_catalog.repositories.sql_genre_store import SqlGenreStore
from movie_catalog.repositories.sql_movie_store import SqlMovieStore
from movie_catalog.services.freshness import FreshnessTracker
from movie_catalog.services.movie_repository import MovieRepository

IN_MEMORY_URL = "sqlite:///:memory:"


class MutableClock:
    """Clock the tests move by hand."""

    def __init__(self, start: Optional[datetime] = None):
        self.current = start or datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += timedelta(seconds=seconds)


class FakeCatalogClient(ICatalogClient):
    """
    In-memory catalog.

    ``errors`` maps an operation name to an exception raised on every call.
    ``gate``, when set, holds every fetch until the event is set.
    """

    def __init__(self):
        self.pages: Dict[int, CatalogPage] = {}
        self.movies: Dict[int, Movie] = {}
        self.genres: List[Genre] = []
        self.errors: Dict[str, Exception] = {}
        self.calls: Counter = Counter()
        self.requests: list = []
        self.gate: Optional[asyncio.Event] = None

    async def _enter(self, operation: str, argument=None):
        self.calls[operation] += 1
        self.requests.append((operation, argument))
        if self.gate is not None:
            await self.gate.wait()
        if operation in self.errors:
            raise self.errors[operation]

    async def fetch_popular(self, page: int) -> CatalogPage:
        await self._enter("fetch_popular", page)
        catalog_page = self.pages.get(page, CatalogPage(page=page))
        return CatalogPage(
            page=page, movies=list(catalog_page.movies), genres=list(catalog_page.genres)
        )

    async def fetch_by_id(self, movie_id: int) -> Movie:
        await self._enter("fetch_by_id", movie_id)
        if movie_id not in self.movies:
            raise MovieNotFoundException(movie_id)
        return self.movies[movie_id]

    async def fetch_genres(self) -> List[Genre]:
        await self._enter("fetch_genres")
        return list(self.genres)

    def get_health_status(self) -> dict:
        return {"service": "fake_catalog", "calls": dict(self.calls)}


@pytest.fixture
def engine():
    """Fresh in-memory database per test"""
    engine = create_db_engine(IN_MEMORY_URL)
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db_session(engine):
    session = create_session_factory(engine)()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def genre_store(db_session):
    return SqlGenreStore(db_session)


@pytest.fixture
def movie_store(db_session):
    return SqlMovieStore(db_session, page_size=20)


@pytest.fixture
def sample_genres():
    return [Genre(10, "Action"), Genre(20, "Drama"), Genre(30, "Comedy")]


@pytest.fixture
def sample_movies():
    """Three movies; two share a popularity score to exercise the id tie-break"""
    return [
        Movie(
            id=1,
            title="Die Hard",
            year="1988",
            runtime="132 min",
            director="John McTiernan",
            popularity=90.0,
            rating=8.2,
            genre_ids=(10,),
        ),
        Movie(id=2, title="The Godfather", year="1972", popularity=95.0, genre_ids=(20,)),
        Movie(id=3, title="Hard Boiled", year="1992", popularity=90.0, genre_ids=(10, 20)),
    ]


@pytest.fixture
def clock():
    return MutableClock()


@pytest.fixture
def fake_catalog():
    return FakeCatalogClient()


@pytest.fixture
def settings():
    return CatalogSettings(
        ttl_seconds=300,
        page_size=20,
        refresh_on_startup=False,
        database_url=IN_MEMORY_URL,
        log_json=False,
    )


@pytest.fixture
def repository(fake_catalog, genre_store, movie_store, settings, clock):
    """Repository over real SQL stores and the fake catalog"""
    return MovieRepository(
        catalog_client=fake_catalog,
        genre_store=genre_store,
        movie_store=movie_store,
        settings=settings,
        freshness=FreshnessTracker(clock=clock),
    )
