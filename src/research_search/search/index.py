"""In-memory index: documents, immutable snapshots and the swappable handle.

Queries never see a half-built index. Builders construct a complete
``IndexSnapshot`` off to the side and publish it with a single reference
assignment on ``SearchIndex``; incremental refreshes produce a patched copy
and publish it the same way. Readers grab ``SearchIndex.snapshot`` once and
work on that object for the whole request.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from functools import cached_property
import logging
from types import MappingProxyType


logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class DocumentRef:
    """Display fields carried back to the caller for each result."""

    title: str
    summary: str
    slug: str
    division_name: str | None
    authors: tuple[tuple[str, str], ...]
    tags: tuple[str, ...]

    @property
    def author_names(self) -> tuple[str, ...]:
        return tuple(name for _, name in self.authors if name)


@dataclass(frozen=True, slots=True)
class IndexedDocument:
    """Tokenized, denormalized representation of one article.

    ``fields`` keeps token order for phrase detection; ``term_frequencies``
    holds per-field counts so scoring is a dictionary lookup; ``text`` keeps
    the markup-stripped source text used to cut snippets.
    """

    id: str
    fields: Mapping[str, tuple[str, ...]]
    term_frequencies: Mapping[str, Mapping[str, int]]
    text: Mapping[str, str]
    division_id: str | None
    division_name: str | None
    author_ids: frozenset[str]
    tags: frozenset[str]
    published_at: datetime
    updated_at: datetime | None
    raw: DocumentRef

    def tf(self, field_name: str, term: str) -> int:
        frequencies = self.term_frequencies.get(field_name)
        if frequencies is None:
            return 0
        return frequencies.get(term, 0)

    @property
    def token_count(self) -> int:
        return sum(len(tokens) for tokens in self.fields.values())

    def all_terms(self) -> Counter[str]:
        counts: Counter[str] = Counter()
        for frequencies in self.term_frequencies.values():
            counts.update(frequencies)
        return counts


def _subtract(counter: Counter[str], other: Mapping[str, int]) -> None:
    for term, count in other.items():
        remaining = counter.get(term, 0) - count
        if remaining > 0:
            counter[term] = remaining
        else:
            counter.pop(term, None)


class IndexSnapshot:
    """Immutable mapping of article id to ``IndexedDocument`` plus corpus counters.

    ``term_counts`` counts every token occurrence across all fields;
    ``title_term_counts`` counts occurrences in titles only. Both feed the
    suggestion engine.
    """

    def __init__(
        self,
        documents: Mapping[str, IndexedDocument],
        *,
        built_at: datetime,
        updated_at: datetime | None = None,
        term_counts: Counter[str] | None = None,
        title_term_counts: Counter[str] | None = None,
    ) -> None:
        self._documents = MappingProxyType(dict(documents))
        self.built_at = built_at
        self.updated_at = updated_at or built_at
        if term_counts is None or title_term_counts is None:
            term_counts, title_term_counts = self._count_terms(self._documents.values())
        self.term_counts: Mapping[str, int] = MappingProxyType(term_counts)
        self.title_term_counts: Mapping[str, int] = MappingProxyType(title_term_counts)

    @staticmethod
    def _count_terms(documents: Iterable[IndexedDocument]) -> tuple[Counter[str], Counter[str]]:
        term_counts: Counter[str] = Counter()
        title_counts: Counter[str] = Counter()
        for document in documents:
            term_counts.update(document.all_terms())
            title_counts.update(document.term_frequencies.get("title", {}))
        return term_counts, title_counts

    @classmethod
    def build(
        cls,
        documents: Iterable[IndexedDocument],
        *,
        built_at: datetime,
        updated_at: datetime | None = None,
    ) -> IndexSnapshot:
        """Create a snapshot; a later duplicate id replaces an earlier one.

        ``updated_at`` is the change-feed watermark: every edit made before
        it is reflected in the snapshot. It defaults to ``built_at``.
        """
        mapping: dict[str, IndexedDocument] = {}
        for document in documents:
            if document.id in mapping:
                logger.debug("Duplicate article id %s during build; keeping latest", document.id)
            mapping[document.id] = document
        return cls(mapping, built_at=built_at, updated_at=updated_at)

    @classmethod
    def empty(cls, *, built_at: datetime) -> IndexSnapshot:
        return cls({}, built_at=built_at)

    def patch(
        self,
        *,
        upserts: Iterable[IndexedDocument] = (),
        removals: Iterable[str] = (),
        updated_at: datetime,
    ) -> IndexSnapshot:
        """Return a new snapshot with documents inserted, replaced or removed.

        The receiver is left untouched so in-flight readers keep a consistent view.
        """
        documents = dict(self._documents)
        term_counts = Counter(self.term_counts)
        title_counts = Counter(self.title_term_counts)

        def drop(doc_id: str) -> None:
            previous = documents.pop(doc_id, None)
            if previous is not None:
                _subtract(term_counts, previous.all_terms())
                _subtract(title_counts, previous.term_frequencies.get("title", {}))

        for doc_id in removals:
            drop(doc_id)
        for document in upserts:
            drop(document.id)
            documents[document.id] = document
            term_counts.update(document.all_terms())
            title_counts.update(document.term_frequencies.get("title", {}))

        return IndexSnapshot(
            documents,
            built_at=self.built_at,
            updated_at=updated_at,
            term_counts=term_counts,
            title_term_counts=title_counts,
        )

    @property
    def documents(self) -> Mapping[str, IndexedDocument]:
        return self._documents

    def __len__(self) -> int:
        return len(self._documents)

    def __contains__(self, doc_id: object) -> bool:
        return doc_id in self._documents

    def __iter__(self) -> Iterator[IndexedDocument]:
        return iter(self._documents.values())

    def get(self, doc_id: str) -> IndexedDocument | None:
        return self._documents.get(doc_id)

    @cached_property
    def total_tokens(self) -> int:
        return sum(self.term_counts.values())

    @cached_property
    def sorted_terms(self) -> tuple[str, ...]:
        """Vocabulary in lexical order, for prefix lookups with bisect."""
        return tuple(sorted(self.term_counts))


class IndexState(str, Enum):
    """Lifecycle of the index handle."""

    UNINITIALIZED = "uninitialized"
    BUILDING = "building"
    READY = "ready"
    STALE = "stale"


class IndexStateError(RuntimeError):
    """An illegal state transition was attempted."""


class SearchIndex:
    """Injectable handle owning the current snapshot and its lifecycle state.

    State machine::

        UNINITIALIZED --begin_build--> BUILDING --publish--> READY
        READY / STALE --begin_build--> BUILDING
        BUILDING --fail--> STALE (previous snapshot kept) or UNINITIALIZED

    Queries are served whenever a snapshot exists, i.e. in READY, STALE and
    during a rebuild that has a previous snapshot. Transitions happen on the
    event loop thread; readers on any thread only read ``snapshot``.
    """

    def __init__(self) -> None:
        self._snapshot: IndexSnapshot | None = None
        self._state = IndexState.UNINITIALIZED
        self._last_error: str | None = None

    @property
    def snapshot(self) -> IndexSnapshot | None:
        return self._snapshot

    @property
    def state(self) -> IndexState:
        return self._state

    @property
    def last_error(self) -> str | None:
        return self._last_error

    @property
    def is_queryable(self) -> bool:
        return self._snapshot is not None

    def begin_build(self) -> None:
        if self._state is IndexState.BUILDING:
            raise IndexStateError("A build is already in progress")
        self._state = IndexState.BUILDING

    def publish(self, snapshot: IndexSnapshot) -> None:
        if self._state is not IndexState.BUILDING:
            raise IndexStateError(f"Cannot publish a snapshot from state {self._state.value}")
        self._snapshot = snapshot
        self._state = IndexState.READY
        self._last_error = None

    def fail(self, error: str) -> None:
        if self._state is not IndexState.BUILDING:
            raise IndexStateError(f"Cannot fail a build from state {self._state.value}")
        self._last_error = error
        self._state = IndexState.STALE if self._snapshot is not None else IndexState.UNINITIALIZED
