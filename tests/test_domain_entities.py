"""
Tests for domain entities.

Covers:
- Query keys
- Movie and genre validation
- Page and result containers
"""

from datetime import datetime, timezone

import pytest

from movie_catalog.domain.entities import (
    DataSource,
    Genre,
    Movie,
    MovieFilter,
    MoviePage,
    QueryKey,
    QueryType,
    RepositoryResult,
    StaleServedWarning,
)


class TestQueryKey:
    """Test query key construction."""

    def test_popular(self):
        key = QueryKey.popular(1)
        assert key == QueryKey(QueryType.POPULAR, "1")
        assert str(key) == "popular:1"

    def test_movie(self):
        assert str(QueryKey.movie(42)) == "movie:42"

    def test_genres(self):
        assert QueryKey.genres().query_type == QueryType.GENRES

    def test_hashable(self):
        markers = {QueryKey.popular(1): "a", QueryKey.popular(1): "b"}
        assert len(markers) == 1
        assert QueryKey.popular(1) != QueryKey.movie(1)


class TestGenre:
    """Test genre value object."""

    def test_valid(self):
        assert Genre(10, "Action").to_dict() == {"id": 10, "name": "Action"}

    def test_blank_name_rejected(self):
        with pytest.raises(ValueError):
            Genre(10, "   ")


class TestMovie:
    """Test movie entity."""

    def test_defaults(self):
        movie = Movie(id=1, title="Die Hard")
        assert movie.genre_ids == ()
        assert movie.genres == ()
        assert movie.is_in_wishlist is False
        assert movie.rating is None

    def test_blank_title_rejected(self):
        with pytest.raises(ValueError):
            Movie(id=1, title="")

    def test_negative_popularity_rejected(self):
        with pytest.raises(ValueError):
            Movie(id=1, title="Die Hard", popularity=-1.0)

    def test_genre_ids_deduplicated_in_order(self):
        movie = Movie(id=1, title="Die Hard", genre_ids=[20, 10, 20])
        assert movie.genre_ids == (20, 10)

    def test_genre_names(self):
        movie = Movie(id=1, title="Die Hard", genres=(Genre(10, "Action"),))
        assert movie.genre_names == ["Action"]

    def test_to_dict(self):
        synced = datetime(2024, 1, 1, tzinfo=timezone.utc)
        movie = Movie(
            id=1,
            title="Die Hard",
            genre_ids=(10,),
            genres=(Genre(10, "Action"),),
            last_synced_at=synced,
        )
        data = movie.to_dict()
        assert data["genre_ids"] == [10]
        assert data["genres"] == [{"id": 10, "name": "Action"}]
        assert data["last_synced_at"] == synced.isoformat()


class TestContainers:
    """Test page, filter and result containers."""

    def test_movie_filter_is_empty(self):
        assert MovieFilter().is_empty()
        assert not MovieFilter(genre_id=10).is_empty()
        assert not MovieFilter(wishlist_only=True).is_empty()
        assert not MovieFilter(popular_page=2).is_empty()

    def test_movie_page(self):
        page = MoviePage(movies=[], page_size=20)
        assert page.is_empty
        assert len(page) == 0
        assert page.to_dict()["movies"] == []

    def test_result_staleness(self):
        fresh = RepositoryResult(value=[], source=DataSource.REMOTE)
        assert not fresh.is_stale

        warning = StaleServedWarning(
            query_key=QueryKey.popular(1),
            reason="down",
            error_type="CatalogUnavailableException",
        )
        stale = RepositoryResult(value=[], source=DataSource.CACHE, warning=warning)
        assert stale.is_stale
        assert warning.to_dict()["code"] == "stale_served"
        assert warning.to_dict()["query"] == "popular:1"
