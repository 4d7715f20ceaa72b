from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .errors import InvalidMetadata


def normalize_term(text: Optional[str]) -> str:
    """Lower-case and trim a search string; this is the counter key."""
    if not text:
        return ""
    return text.strip().lower()


class MovieSummary(BaseModel):
    id: Optional[int] = None
    title: Optional[str] = None
    poster_path: Optional[str] = None
    original_language: Optional[str] = None
    release_date: Optional[str] = None
    popularity: Optional[float] = None
    vote_average: Optional[float] = None


class MovieDetail(BaseModel):
    """Canonical metadata used to seed a brand new counter."""

    id: int = Field(..., gt=0)
    title: str = Field(..., min_length=1)
    poster_path: str = Field(..., min_length=1)

    @classmethod
    def from_summary(cls, summary: MovieSummary) -> "MovieDetail":
        try:
            return cls(id=summary.id, title=summary.title, poster_path=summary.poster_path)
        except ValidationError as exc:
            missing = ", ".join(str(err["loc"][0]) for err in exc.errors())
            raise InvalidMetadata(f"Movie details do not include: {missing}") from exc


class CounterRecord(BaseModel):
    """A persisted per-term popularity counter, shaped like an Appwrite document."""

    model_config = ConfigDict(populate_by_name=True)

    id: Optional[str] = Field(None, alias="$id")
    search_term: str = Field(..., alias="searchTerm")
    count: int = 0
    poster_url: Optional[str] = None
    movie_id: Optional[int] = None
    title: Optional[str] = None
    updated_at: Optional[datetime] = Field(None, alias="$updatedAt")

    @field_validator("count", mode="before")
    @classmethod
    def _missing_count_is_zero(cls, value):
        return 0 if value is None else value

    def to_document(self) -> dict:
        return {
            "searchTerm": self.search_term,
            "count": self.count,
            "poster_url": self.poster_url,
            "movie_id": self.movie_id,
            "title": self.title,
        }


class TrendingEntry(BaseModel):
    rank: int
    search_term: str
    count: int
    poster_url: Optional[str] = None
    title: Optional[str] = None
    movie_id: Optional[int] = None

    @classmethod
    def from_records(cls, records: List[CounterRecord]) -> List["TrendingEntry"]:
        return [
            cls(
                rank=position,
                search_term=record.search_term,
                count=record.count,
                poster_url=record.poster_url,
                title=record.title,
                movie_id=record.movie_id,
            )
            for position, record in enumerate(records, start=1)
        ]


class ViewState(BaseModel):
    """Everything the view layer renders for one session."""

    loading: bool = False
    error_message: str = ""
    movies: List[MovieSummary] = Field(default_factory=list)
    trending: List[TrendingEntry] = Field(default_factory=list)


class CycleOutcome(BaseModel):
    seq: int
    query: str
    movies: List[MovieSummary] = Field(default_factory=list)
    error_message: str = ""
    # Set once the background bookkeeping for this cycle has finished
    recorded: bool = False
    # A newer cycle was dispatched before this one finished
    stale: bool = False


class SearchResponse(BaseModel):
    query: str
    count: int
    results: List[MovieSummary]
    error_message: str = ""
    trending: List[TrendingEntry] = Field(default_factory=list)
