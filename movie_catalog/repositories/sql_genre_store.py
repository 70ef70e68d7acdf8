"""
SQLAlchemy implementation of the genre store.
"""

import logging
from typing import Iterable, List, Set

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..domain.entities import Genre
from ..domain.exceptions import GenreNotFoundException, StoreException
from ..models import GenreRecord
from .genre_store import IGenreStore

logger = logging.getLogger(__name__)


class SqlGenreStore(IGenreStore):
    """SQL implementation for genre persistence."""

    def __init__(self, db: Session):
        """
        Initialize store.

        Args:
            db: SQLAlchemy database session
        """
        self.db = db

    async def upsert_all(self, genres: Iterable[Genre]) -> int:
        """Insert new genres and rename changed ones in a single commit."""
        # Last occurrence wins inside one batch
        batch = {genre.id: genre for genre in genres}
        if not batch:
            return 0

        try:
            existing = {
                record.id: record
                for record in self.db.query(GenreRecord)
                .filter(GenreRecord.id.in_(list(batch)))
                .all()
            }

            changed = 0
            for genre_id, genre in batch.items():
                record = existing.get(genre_id)
                if record is None:
                    self.db.add(GenreRecord(id=genre_id, name=genre.name))
                    changed += 1
                elif record.name != genre.name:
                    record.name = genre.name
                    changed += 1

            self.db.commit()
            logger.debug(f"Upserted {len(batch)} genres ({changed} changed)")
            return changed

        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Error upserting genres: {e}")
            raise StoreException("genre upsert", str(e))

    async def get_by_id(self, genre_id: int) -> Genre:
        record = self.db.get(GenreRecord, genre_id)
        if record is None:
            raise GenreNotFoundException(genre_id)
        return self._map_to_entity(record)

    async def get_all(self, order_by_name: bool = False) -> List[Genre]:
        query = self.db.query(GenreRecord)
        if order_by_name:
            query = query.order_by(GenreRecord.name.asc(), GenreRecord.id.asc())
        else:
            query = query.order_by(GenreRecord.id.asc())
        return [self._map_to_entity(record) for record in query.all()]

    async def missing_ids(self, genre_ids: Iterable[int]) -> Set[int]:
        wanted = set(genre_ids)
        if not wanted:
            return set()
        found = {
            row.id
            for row in self.db.query(GenreRecord.id)
            .filter(GenreRecord.id.in_(list(wanted)))
            .all()
        }
        return wanted - found

    async def count(self) -> int:
        return self.db.query(func.count(GenreRecord.id)).scalar() or 0

    @staticmethod
    def _map_to_entity(record: GenreRecord) -> Genre:
        return Genre(id=record.id, name=record.name)
