"""
Composition root.

Wires engine, session, stores, catalog client and repository by explicit
constructor calls. Nothing here is global; callers own what they build.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session

from .config import CatalogSettings
from .database import create_db_engine, create_session_factory, init_db
from .infrastructure.catalog_client import ICatalogClient
from .infrastructure.http_catalog_client import HttpCatalogClient
from .repositories.sql_genre_store import SqlGenreStore
from .repositories.sql_movie_store import SqlMovieStore
from .services.freshness import FreshnessTracker
from .services.movie_repository import MovieRepository

logger = logging.getLogger(__name__)


def build_repository(
    settings: CatalogSettings,
    session: Session,
    catalog_client: Optional[ICatalogClient] = None,
    freshness: Optional[FreshnessTracker] = None,
) -> MovieRepository:
    """
    Build a movie repository over an open session.

    Args:
        settings: Catalog settings
        session: SQLAlchemy session shared by both stores
        catalog_client: Catalog client; an HttpCatalogClient from settings by default
        freshness: Freshness tracker; a wall-clock tracker by default

    Returns:
        Ready to use MovieRepository
    """
    catalog_client = catalog_client or HttpCatalogClient.from_settings(settings)
    return MovieRepository(
        catalog_client=catalog_client,
        genre_store=SqlGenreStore(session),
        movie_store=SqlMovieStore(session, page_size=settings.page_size),
        settings=settings,
        freshness=freshness,
    )


@dataclass
class CatalogContext:
    """Everything one running catalog cache owns."""

    settings: CatalogSettings
    engine: Engine
    session: Session
    repository: MovieRepository

    async def close(self) -> None:
        close_client = getattr(self.repository.catalog_client, "close", None)
        if close_client is not None:
            await close_client()
        self.session.close()
        self.engine.dispose()
        logger.info("Catalog context closed")


def build_context(
    settings: CatalogSettings,
    catalog_client: Optional[ICatalogClient] = None,
    freshness: Optional[FreshnessTracker] = None,
) -> CatalogContext:
    """Create the database, a session, and a repository on top of them."""
    engine = create_db_engine(settings.database_url)
    init_db(engine)
    session = create_session_factory(engine)()
    repository = build_repository(settings, session, catalog_client, freshness)
    logger.info("Catalog context built")
    return CatalogContext(
        settings=settings, engine=engine, session=session, repository=repository
    )
