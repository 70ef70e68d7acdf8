"""
Pydantic models for catalog payloads.

Every response is validated here before anything reaches the stores; a
payload that does not fit is a malformed response.
"""

from typing import Any, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from ..domain.entities import CatalogPage, Genre, Movie


class GenrePayload(BaseModel):
    """Genre as sent by the catalog."""

    model_config = ConfigDict(extra="ignore")

    id: int
    name: str = Field(..., min_length=1, max_length=100)

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Genre name cannot be blank")
        return v

    def to_entity(self) -> Genre:
        return Genre(id=self.id, name=self.name)


class MoviePayload(BaseModel):
    """
    Movie as sent by the catalog.

    Accepts ``genre_ids`` or ``genres``; genre entries may be plain ids or
    ``{"id": ..., "name": ...}`` objects.
    """

    model_config = ConfigDict(extra="ignore")

    id: int
    title: str = Field(..., min_length=1, max_length=255)
    year: str = ""
    runtime: str = ""
    director: str = ""
    actors: str = ""
    plot: str = ""
    poster_url: str = Field(default="", validation_alias=AliasChoices("poster_url", "posterUrl"))
    popularity: float = Field(default=0.0, ge=0)
    rating: Optional[float] = Field(default=None, ge=0)
    genre_ids: List[int] = Field(
        default_factory=list, validation_alias=AliasChoices("genre_ids", "genres")
    )

    @field_validator("year", "runtime", mode="before")
    @classmethod
    def stringify(cls, v: Any) -> Any:
        # Catalogs send 2023 as well as "2023"
        if v is None:
            return ""
        if isinstance(v, (int, float)) and not isinstance(v, bool):
            return str(v)
        return v

    @field_validator("director", "actors", "plot", "poster_url", mode="before")
    @classmethod
    def none_to_empty(cls, v: Any) -> Any:
        return "" if v is None else v

    @field_validator("genre_ids", mode="before")
    @classmethod
    def flatten_genre_objects(cls, v: Any) -> Any:
        if isinstance(v, list):
            return [item.get("id") if isinstance(item, dict) else item for item in v]
        return v

    def to_entity(self) -> Movie:
        return Movie(
            id=self.id,
            title=self.title.strip(),
            year=self.year,
            runtime=self.runtime,
            director=self.director,
            actors=self.actors,
            plot=self.plot,
            poster_url=self.poster_url,
            popularity=self.popularity,
            rating=self.rating,
            genre_ids=tuple(self.genre_ids),
        )


class PopularPayload(BaseModel):
    """Response of the popular listing endpoint."""

    model_config = ConfigDict(extra="ignore")

    page: Optional[int] = None
    movies: List[MoviePayload]
    genres: List[GenrePayload] = Field(default_factory=list)

    def to_entity(self, requested_page: int) -> CatalogPage:
        return CatalogPage(
            page=self.page or requested_page,
            movies=[movie.to_entity() for movie in self.movies],
            genres=[genre.to_entity() for genre in self.genres],
        )


class GenreListPayload(BaseModel):
    """Response of the genre list endpoint."""

    model_config = ConfigDict(extra="ignore")

    genres: List[GenrePayload]
