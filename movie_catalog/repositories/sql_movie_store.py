"""
SQLAlchemy implementation of the movie store.

Implements persistent storage for movies and their genre links.
"""

import logging
from datetime import datetime, timezone
from typing import Dict, Iterable, Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Query, Session

from ..domain.entities import Genre, Movie, MovieFilter, MoviePage
from ..domain.exceptions import (
    MovieNotFoundException,
    ReferentialIntegrityException,
    StoreException,
)
from ..models import GenreRecord, MovieRecord
from .movie_store import IMovieStore
from .pagination import decode_page_token, encode_page_token

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 20


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _to_db_time(value: Optional[datetime]) -> datetime:
    """Store UTC as naive datetimes, like the rest of the schema."""
    if value is None:
        return datetime.now(timezone.utc).replace(tzinfo=None)
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


class SqlMovieStore(IMovieStore):
    """SQL implementation for movie persistence."""

    def __init__(self, db: Session, page_size: int = DEFAULT_PAGE_SIZE):
        """
        Initialize store.

        Args:
            db: SQLAlchemy database session
            page_size: Default page length of query()
        """
        self.db = db
        self.page_size = page_size

    async def upsert_all(
        self, movies: Iterable[Movie], popular_page: Optional[int] = None
    ) -> int:
        """Write a batch of movies, and optionally a popular page listing, in one transaction."""
        batch = {movie.id: movie for movie in movies}
        if not batch and popular_page is None:
            return 0

        referenced = {genre_id for movie in batch.values() for genre_id in movie.genre_ids}
        genre_records = self._load_genres(referenced)
        missing = referenced - set(genre_records)
        if missing:
            logger.warning(
                f"Rejecting {len(batch)} movies: unknown genre ids {sorted(missing)}"
            )
            raise ReferentialIntegrityException(missing)

        try:
            existing = {
                record.id: record
                for record in self.db.query(MovieRecord)
                .filter(MovieRecord.id.in_(list(batch)))
                .all()
            }

            if popular_page is not None:
                self._release_popular_page(popular_page, list(batch))

            for movie_id, movie in batch.items():
                record = existing.get(movie_id)
                if record is None:
                    record = MovieRecord(id=movie_id, is_in_wishlist=False)
                    self.db.add(record)
                self._update_record(record, movie, genre_records)
                if popular_page is not None:
                    record.popular_page = popular_page

            self.db.commit()
            logger.debug(f"Upserted {len(batch)} movies")
            return len(batch)

        except IntegrityError as e:
            # A genre vanished between the check and the flush
            self.db.rollback()
            logger.error(f"Integrity error upserting movies: {e}")
            raise ReferentialIntegrityException(referenced - set(self._load_genres(referenced)))
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Error upserting movies: {e}")
            raise StoreException("movie upsert", str(e))

    async def get_by_id(self, movie_id: int) -> Movie:
        record = self.db.get(MovieRecord, movie_id)
        if record is None:
            raise MovieNotFoundException(movie_id)
        return self._map_to_entity(record)

    async def query(
        self,
        movie_filter: Optional[MovieFilter] = None,
        page_token: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> MoviePage:
        """Page through movies by popularity desc, id asc."""
        offset = decode_page_token(page_token)
        limit = limit or self.page_size

        query = self._apply_filter(self.db.query(MovieRecord), movie_filter)
        records = (
            query.order_by(MovieRecord.popularity.desc(), MovieRecord.id.asc())
            .offset(offset)
            .limit(limit + 1)
            .all()
        )

        has_more = len(records) > limit
        return MoviePage(
            movies=[self._map_to_entity(record) for record in records[:limit]],
            page_size=limit,
            next_page_token=encode_page_token(offset + limit) if has_more else None,
        )

    async def count(self, movie_filter: Optional[MovieFilter] = None) -> int:
        query = self._apply_filter(self.db.query(func.count(MovieRecord.id)), movie_filter)
        return query.scalar() or 0

    async def set_wishlist_status(self, movie_id: int, status: bool) -> Movie:
        record = self.db.get(MovieRecord, movie_id)
        if record is None:
            raise MovieNotFoundException(movie_id)
        try:
            record.is_in_wishlist = status
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Error updating wishlist for movie {movie_id}: {e}")
            raise StoreException("wishlist update", str(e))
        logger.info(f"Movie {movie_id} wishlist status set to {status}")
        return self._map_to_entity(record)

    async def is_in_wishlist(self, movie_id: int) -> bool:
        found = (
            self.db.query(MovieRecord.id)
            .filter(MovieRecord.id == movie_id, MovieRecord.is_in_wishlist.is_(True))
            .first()
        )
        return found is not None

    def _load_genres(self, genre_ids: set) -> Dict[int, GenreRecord]:
        if not genre_ids:
            return {}
        return {
            record.id: record
            for record in self.db.query(GenreRecord)
            .filter(GenreRecord.id.in_(list(genre_ids)))
            .all()
        }

    def _release_popular_page(self, page: int, keep_ids: list) -> None:
        """Drop movies the catalog no longer lists on a popular page."""
        self.db.query(MovieRecord).filter(
            MovieRecord.popular_page == page, MovieRecord.id.notin_(keep_ids)
        ).update({MovieRecord.popular_page: None}, synchronize_session="fetch")

    @staticmethod
    def _apply_filter(query: Query, movie_filter: Optional[MovieFilter]) -> Query:
        if movie_filter is None or movie_filter.is_empty():
            return query
        if movie_filter.popular_page is not None:
            query = query.filter(MovieRecord.popular_page == movie_filter.popular_page)
        if movie_filter.genre_id is not None:
            query = query.filter(MovieRecord.genres.any(GenreRecord.id == movie_filter.genre_id))
        if movie_filter.title_prefix:
            pattern = f"{_escape_like(movie_filter.title_prefix)}%"
            query = query.filter(MovieRecord.title.ilike(pattern, escape="\\"))
        if movie_filter.title_query:
            pattern = f"%{_escape_like(movie_filter.title_query)}%"
            query = query.filter(MovieRecord.title.ilike(pattern, escape="\\"))
        if movie_filter.wishlist_only:
            query = query.filter(MovieRecord.is_in_wishlist.is_(True))
        return query

    @staticmethod
    def _update_record(
        record: MovieRecord, movie: Movie, genre_records: Dict[int, GenreRecord]
    ) -> None:
        """Copy catalog fields onto a row. The wishlist flag stays untouched."""
        record.title = movie.title
        record.year = movie.year
        record.runtime = movie.runtime
        record.director = movie.director
        record.actors = movie.actors
        record.plot = movie.plot
        record.poster_url = movie.poster_url
        record.popularity = movie.popularity
        record.rating = movie.rating
        record.last_synced_at = _to_db_time(movie.last_synced_at)
        record.genres = [genre_records[genre_id] for genre_id in movie.genre_ids]

    @staticmethod
    def _map_to_entity(record: MovieRecord) -> Movie:
        """Map database model to domain entity."""
        genres = tuple(
            Genre(id=g.id, name=g.name) for g in sorted(record.genres, key=lambda g: g.id)
        )
        return Movie(
            id=record.id,
            title=record.title,
            year=record.year,
            runtime=record.runtime,
            director=record.director,
            actors=record.actors,
            plot=record.plot,
            poster_url=record.poster_url,
            popularity=record.popularity,
            rating=record.rating,
            genre_ids=tuple(genre.id for genre in genres),
            genres=genres,
            is_in_wishlist=bool(record.is_in_wishlist),
            last_synced_at=(
                record.last_synced_at.replace(tzinfo=timezone.utc)
                if record.last_synced_at
                else None
            ),
        )
