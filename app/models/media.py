"""Media reference models stored in the Watch Later and Watch History lists."""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Annotated, Any, ClassVar, Generic, List, Mapping, Optional, Type, TypeVar, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    StrictInt,
    ValidationError,
    ValidationInfo,
    field_validator,
)


class MediaType(str, Enum):
    """Catalog media type."""

    MOVIE = "movie"
    TV = "tv"


class MediaReference(BaseModel):
    """A catalog title as handed over by the TMDB layer.

    Only ``id`` and ``media_type`` are interpreted; every other field is
    stored and returned as-is.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    # Name of the timestamp field assigned on insertion, set by subclasses
    recency_field: ClassVar[Optional[str]] = None

    id: Annotated[StrictInt, Field(gt=0)]
    media_type: MediaType
    title: Optional[str] = None
    name: Optional[str] = None
    poster_path: Optional[str] = None
    backdrop_path: Optional[str] = None
    overview: Optional[str] = None
    vote_average: float = 0.0
    release_date: Optional[str] = None
    first_air_date: Optional[str] = None
    genre_ids: Optional[List[int]] = None
    adult: Optional[bool] = None
    original_language: Optional[str] = None
    popularity: Optional[float] = None

    @field_validator(
        "title",
        "name",
        "poster_path",
        "backdrop_path",
        "overview",
        "vote_average",
        "release_date",
        "first_air_date",
        "genre_ids",
        "adult",
        "original_language",
        "popularity",
        mode="wrap",
    )
    @classmethod
    def _default_malformed(cls, value: Any, handler, info: ValidationInfo) -> Any:
        """Replace a malformed descriptive value with the field default."""
        try:
            return handler(value)
        except ValidationError:
            return cls.model_fields[info.field_name].get_default(
                call_default_factory=True
            )

    @property
    def display_title(self) -> str:
        return self.title or self.name or f"{self.media_type.value}#{self.id}"


class WatchLaterItem(MediaReference):
    """A bookmarked title."""

    recency_field: ClassVar[Optional[str]] = "added_at"

    added_at: datetime = Field(alias="addedAt")


class HistoryItem(MediaReference):
    """A watched movie or TV episode."""

    recency_field: ClassVar[Optional[str]] = "watched_at"

    season: Optional[Annotated[int, Field(ge=0)]] = None
    episode: Optional[Annotated[int, Field(ge=0)]] = None
    progress: Optional[float] = None
    watched_at: datetime = Field(alias="watchedAt")


RecordT = TypeVar("RecordT", bound=MediaReference)


@dataclass(frozen=True)
class Valid(Generic[RecordT]):
    """A record that passed validation."""

    record: RecordT


@dataclass(frozen=True)
class Invalid:
    """A rejected record and why."""

    reason: str


ParseResult = Union[Valid[RecordT], Invalid]


def _describe(exc: ValidationError) -> str:
    parts = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error["loc"]) or "record"
        parts.append(f"{location}: {error['msg']}")
    return "; ".join(parts)


def parse_record(data: Any, model: Type[RecordT]) -> ParseResult:
    """Validate loosely-typed data into ``model``.

    This is the only validation path: persisted entries and caller-supplied
    candidates both go through it.

    Returns:
        ``Valid(record)`` or ``Invalid(reason)``. Never raises.
    """
    if not isinstance(data, Mapping):
        return Invalid(f"expected an object, got {type(data).__name__}")
    try:
        return Valid(model.model_validate(data))
    except ValidationError as exc:
        return Invalid(_describe(exc))
