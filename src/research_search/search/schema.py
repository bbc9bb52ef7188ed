"""
Schema definition for article indexing.

Each searchable field carries a fixed boost used as its weight at query
time. The relative order is a ranking contract:

    title > tags > summary > content

so a single title match always outranks a single content match. The exact
numbers are tunable; the order is not.
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass


TITLE_WEIGHT = 10.0
TAGS_WEIGHT = 6.0
SUMMARY_WEIGHT = 3.0
CONTENT_WEIGHT = 1.0
PHRASE_BONUS = 5.0


@dataclass(frozen=True)
class TextField:
    """
    Analyzed text field for full-text search.

    Args:
        name: Field name (e.g., "title", "content")
        boost: Field weight in scoring
    """

    name: str
    boost: float = 1.0


@dataclass(frozen=True)
class Schema:
    """Ordered set of searchable fields plus the phrase-adjacency bonus.

    Fields are kept in descending weight order; scoring and snippet
    generation walk them in this order.
    """

    fields: tuple[TextField, ...]
    phrase_bonus: float = PHRASE_BONUS

    def __post_init__(self) -> None:
        if not self.fields:
            raise ValueError("Schema requires at least one field")
        seen: set[str] = set()
        for text_field in self.fields:
            if text_field.name in seen:
                raise ValueError(f"Duplicate schema field: {text_field.name}")
            if text_field.boost <= 0:
                raise ValueError(f"Field '{text_field.name}' must have a positive boost")
            seen.add(text_field.name)
        if self.phrase_bonus < 0:
            raise ValueError("phrase_bonus must not be negative")
        ordered = tuple(sorted(self.fields, key=lambda f: f.boost, reverse=True))
        object.__setattr__(self, "fields", ordered)

    def __iter__(self) -> Iterator[TextField]:
        return iter(self.fields)


def create_article_schema() -> Schema:
    """Return the schema used for research articles."""

    return Schema(
        fields=(
            TextField("title", boost=TITLE_WEIGHT),
            TextField("tags", boost=TAGS_WEIGHT),
            TextField("summary", boost=SUMMARY_WEIGHT),
            TextField("content", boost=CONTENT_WEIGHT),
        ),
        phrase_bonus=PHRASE_BONUS,
    )
