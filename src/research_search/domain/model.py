"""Source article records consumed from the content store.

The content store keeps tags as a loosely typed JSON blob. Records are parsed
once here, at the edge, so the index and query code only ever see a tuple
of clean strings.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

import orjson
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


PUBLISHED_STATUS = "PUBLISHED"


def ensure_aware(value: datetime | None) -> datetime | None:
    """Treat naive timestamps from the store as UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class _SourceModel(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, alias_generator=to_camel, extra="ignore")


class DivisionRef(_SourceModel):
    """Research division an article belongs to."""

    id: str
    name: str = ""


class AuthorRef(_SourceModel):
    """Author credited on an article."""

    id: str
    name: str = ""


class SourceArticle(_SourceModel):
    """Read-only article record with denormalized division, author and tag data.

    ``deleted`` lets change feeds report removed articles so the index can
    drop them.
    """

    id: str = Field(min_length=1)
    slug: str = ""
    title: str = ""
    content: str = ""
    summary: str = ""
    tags: tuple[str, ...] = ()
    status: str = PUBLISHED_STATUS
    published_at: datetime | None = None
    updated_at: datetime | None = None
    division: DivisionRef | None = None
    authors: tuple[AuthorRef, ...] = ()
    deleted: bool = False

    @field_validator("tags", mode="before")
    @classmethod
    def _parse_tags(cls, value: Any) -> tuple[str, ...]:
        if value is None:
            return ()
        if isinstance(value, str):
            stripped = value.strip()
            if not stripped:
                return ()
            try:
                parsed = orjson.loads(stripped)
            except orjson.JSONDecodeError:
                parsed = stripped.split(",")
            value = parsed if isinstance(parsed, list) else [parsed]

        tags: list[str] = []
        seen: set[str] = set()
        for raw in value:
            tag = str(raw).strip()
            if tag and tag.lower() not in seen:
                seen.add(tag.lower())
                tags.append(tag)
        return tuple(tags)

    @field_validator("published_at", "updated_at")
    @classmethod
    def _aware_timestamps(cls, value: datetime | None) -> datetime | None:
        return ensure_aware(value)

    @property
    def author_ids(self) -> tuple[str, ...]:
        return tuple(author.id for author in self.authors)

    @property
    def author_names(self) -> tuple[str, ...]:
        return tuple(author.name for author in self.authors if author.name)

    def is_eligible(self, now: datetime) -> bool:
        """Only published, non-future-dated, non-deleted articles are searchable."""
        if self.deleted or self.status.upper() != PUBLISHED_STATUS:
            return False
        return self.published_at is not None and self.published_at <= now
