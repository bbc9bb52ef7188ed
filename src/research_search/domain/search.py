"""Value objects for search requests and responses.

All models are immutable. JSON field names are camelCase for the web client;
Python attribute names stay snake_case and either form is accepted on input.
"""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from research_search.domain.model import ensure_aware


DEFAULT_LIMIT = 20
MAX_LIMIT = 100


class _CamelModel(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, alias_generator=to_camel)


class DateRange(_CamelModel):
    """Inclusive publication window; either bound may be open."""

    start: datetime | None = None
    end: datetime | None = None

    @field_validator("start", "end")
    @classmethod
    def _aware(cls, value: datetime | None) -> datetime | None:
        return ensure_aware(value)

    @model_validator(mode="after")
    def _ordered(self) -> DateRange:
        if self.start is not None and self.end is not None and self.start > self.end:
            raise ValueError("dateRange.start must not be after dateRange.end")
        return self

    def contains(self, moment: datetime | None) -> bool:
        if moment is None:
            return self.start is None and self.end is None
        if self.start is not None and moment < self.start:
            return False
        return not (self.end is not None and moment > self.end)


class SearchFilters(_CamelModel):
    """Filter dimensions, combined with AND. Empty dimensions are not applied."""

    divisions: frozenset[str] = frozenset()
    authors: frozenset[str] = frozenset()
    tags: frozenset[str] = frozenset()
    date_range: DateRange | None = None

    @field_validator("tags", mode="after")
    @classmethod
    def _normalize_tags(cls, value: frozenset[str]) -> frozenset[str]:
        return frozenset(tag.strip().lower() for tag in value if tag.strip())

    @property
    def is_empty(self) -> bool:
        return not (self.divisions or self.authors or self.tags or self.date_range)


class QueryRequest(_CamelModel):
    """A validated search request."""

    query: str
    limit: int = Field(default=DEFAULT_LIMIT, ge=1, le=MAX_LIMIT)
    offset: int = Field(default=0, ge=0)
    filters: SearchFilters = Field(default_factory=SearchFilters)

    @field_validator("query")
    @classmethod
    def _non_blank(cls, value: str) -> str:
        stripped = value.strip()
        if not stripped:
            raise ValueError("query must not be empty")
        return stripped


class SearchResult(_CamelModel):
    """One ranked article with display fields, score and highlighted snippet."""

    id: str
    slug: str
    title: str
    summary: str
    division_id: str | None = None
    division_name: str | None = None
    author_names: list[str] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)
    published_at: datetime | None = None
    relevance_score: float
    snippet: str | None = None
    matched_field: str | None = None


class SearchResponse(_CamelModel):
    """A page of results plus the pre-pagination total."""

    results: list[SearchResult] = Field(default_factory=list)
    total: int = 0
    has_more: bool = False
    query: str = ""
    warning: str | None = None

    @classmethod
    def empty(cls, query: str = "", warning: str | None = None) -> SearchResponse:
        return cls(results=[], total=0, has_more=False, query=query, warning=warning)


class PopularTerm(_CamelModel):
    term: str
    count: int


class FacetCount(_CamelModel):
    """A filter value and how many indexed articles carry it."""

    id: str | None = None
    name: str
    count: int


class FilterOptions(_CamelModel):
    divisions: list[FacetCount] = Field(default_factory=list)
    authors: list[FacetCount] = Field(default_factory=list)
    tags: list[FacetCount] = Field(default_factory=list)


class IndexStats(_CamelModel):
    """Health snapshot of the in-memory index."""

    total_articles: int
    last_index_update: datetime | None = None
    last_built_at: datetime | None = None
    index_size: int
    vocabulary_size: int = 0
    status: str
    last_error: str | None = None


class IndexBuildResult(_CamelModel):
    """Outcome of a full build or incremental refresh."""

    kind: Literal["full", "incremental"]
    documents_indexed: int
    documents_removed: int = 0
    duration_seconds: float = 0.0
    built_at: datetime

    @property
    def documents_changed(self) -> int:
        return self.documents_indexed + self.documents_removed
