"""
Database models for the movie catalog cache.

This module defines SQLAlchemy ORM models for the local copy of the catalog:
genres, movies and the association between them.
"""

from typing import Any

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Table,
    Text,
)
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.sql import func

Base: Any = declarative_base()


movie_genres = Table(
    "movie_genres",
    Base.metadata,
    Column(
        "movie_id",
        Integer,
        ForeignKey("movies.id", ondelete="CASCADE"),
        primary_key=True,
    ),
    Column(
        "genre_id",
        Integer,
        ForeignKey("genres.id", ondelete="RESTRICT"),
        primary_key=True,
        index=True,
    ),
)


class GenreRecord(Base):
    """
    Genre row.

    Attributes:
        id: Catalog-assigned identifier (not autoincremented)
        name: Display name
        updated_at: Timestamp of the last change
    """

    __tablename__ = "genres"

    id = Column(Integer, primary_key=True, autoincrement=False)
    name = Column(String(100), nullable=False, index=True)
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now(), nullable=False)


class MovieRecord(Base):
    """
    Movie row with its genre links.

    Attributes:
        id: Catalog-assigned identifier (not autoincremented)
        title: Movie title
        year: Release year as sent by the catalog (e.g. "2023" or "2019-2021")
        runtime: Formatted runtime (e.g. "120 min")
        director: Director name(s)
        actors: Comma separated main cast
        plot: Plot summary
        poster_url: Poster image URL
        popularity: Popularity score, primary sort key of every listing
        rating: Optional rating score
        is_in_wishlist: Local user flag, never overwritten by catalog syncs
        popular_page: Popular page the catalog last listed this movie on
        last_synced_at: When the catalog last delivered this movie
        genres: Linked genre rows
    """

    __tablename__ = "movies"

    id = Column(Integer, primary_key=True, autoincrement=False)
    title = Column(String(255), nullable=False, index=True)
    year = Column(String(20), nullable=False, default="")
    runtime = Column(String(20), nullable=False, default="")
    director = Column(String(255), nullable=False, default="")
    actors = Column(Text, nullable=False, default="")
    plot = Column(Text, nullable=False, default="")
    poster_url = Column(String(512), nullable=False, default="")
    popularity = Column(Float, nullable=False, default=0.0)
    rating = Column(Float, nullable=True)
    is_in_wishlist = Column(Boolean, nullable=False, default=False)
    popular_page = Column(Integer, nullable=True, index=True)
    last_synced_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=func.now(), nullable=False)
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now(), nullable=False)

    genres = relationship(
        GenreRecord,
        secondary=movie_genres,
        lazy="selectin",
        order_by=GenreRecord.id,
    )

    # Listing order is popularity desc, id asc
    __table_args__ = (
        Index("idx_movies_popularity_id", "popularity", "id"),
        Index("idx_movies_wishlist", "is_in_wishlist"),
    )
