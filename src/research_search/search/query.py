"""Query Engine: weighted term scoring over an index snapshot.

Relevance is, for each field, the number of occurrences of the (distinct)
query tokens times the field weight, summed over fields. Documents where
the whole query appears as a contiguous phrase in some field get a fixed
bonus on top. Ties are broken by publication date, newest first.

Everything here is synchronous and read-only: a search reads one snapshot
reference up front and never mutates it.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
import logging

from research_search.domain.search import QueryRequest, SearchFilters, SearchResponse, SearchResult
from research_search.search.analyzers import Analyzer, analyze_terms, get_analyzer
from research_search.search.index import IndexedDocument, IndexSnapshot, SearchIndex
from research_search.search.phrase import contains_phrase
from research_search.search.schema import Schema, create_article_schema
from research_search.search.snippet import build_smart_snippet


logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ScoredDocument:
    document: IndexedDocument
    score: float
    matched_fields: tuple[str, ...]
    phrase_match: bool = False


def matches_filters(document: IndexedDocument, filters: SearchFilters) -> bool:
    """AND across the provided filter dimensions; empty dimensions always pass."""
    if filters.divisions and document.division_id not in filters.divisions:
        return False
    if filters.authors and document.author_ids.isdisjoint(filters.authors):
        return False
    if filters.tags and document.tags.isdisjoint(filters.tags):
        return False
    return filters.date_range is None or filters.date_range.contains(document.published_at)


def _rank_key(scored: ScoredDocument) -> tuple[float, float, str]:
    return (-scored.score, -scored.document.published_at.timestamp(), scored.document.id)


class QueryEngine:
    """Answer ``QueryRequest`` objects against the current snapshot."""

    def __init__(
        self,
        index: SearchIndex,
        *,
        schema: Schema | None = None,
        analyzer: Analyzer | None = None,
        snippet_max_chars: int = 300,
        snippet_context_chars: int = 100,
    ) -> None:
        self.index = index
        self.schema = schema or create_article_schema()
        self.analyzer = analyzer or get_analyzer("default")
        self.snippet_max_chars = snippet_max_chars
        self.snippet_context_chars = snippet_context_chars

    def analyze_query(self, text: str) -> list[str]:
        """Tokenize query text with the same normalization used at build time."""
        return analyze_terms(self.analyzer, text)

    def score(self, document: IndexedDocument, terms: Sequence[str]) -> ScoredDocument | None:
        """Score one document; None when no query token occurs in any field.

        ``terms`` is the query token sequence in order. Repeated query tokens
        count once for scoring but stay in the sequence for phrase matching.
        """
        unique_terms = list(dict.fromkeys(terms))
        score = 0.0
        matched: list[str] = []
        for text_field in self.schema:
            occurrences = sum(document.tf(text_field.name, term) for term in unique_terms)
            if occurrences:
                score += occurrences * text_field.boost
                matched.append(text_field.name)

        if not matched:
            return None

        phrase_match = len(terms) > 1 and any(contains_phrase(document.fields.get(name, ()), terms) for name in matched)
        if phrase_match:
            score += self.schema.phrase_bonus

        return ScoredDocument(document=document, score=score, matched_fields=tuple(matched), phrase_match=phrase_match)

    def rank(self, snapshot: IndexSnapshot, terms: Sequence[str], filters: SearchFilters) -> list[ScoredDocument]:
        """Return every matching, filter-passing document in ranked order."""
        ranked: list[ScoredDocument] = []
        apply_filters = not filters.is_empty
        for document in snapshot:
            if apply_filters and not matches_filters(document, filters):
                continue
            scored = self.score(document, terms)
            if scored is not None:
                ranked.append(scored)
        ranked.sort(key=_rank_key)
        return ranked

    def search(self, request: QueryRequest) -> SearchResponse:
        snapshot = self.index.snapshot
        if snapshot is None:
            return SearchResponse.empty(request.query)

        terms = self.analyze_query(request.query)
        if not terms:
            logger.debug("Query %r produced no searchable tokens", request.query)
            return SearchResponse.empty(request.query)

        ranked = self.rank(snapshot, terms, request.filters)
        total = len(ranked)
        page = ranked[request.offset : request.offset + request.limit]
        unique_terms = list(dict.fromkeys(terms))

        return SearchResponse(
            results=[self._to_result(scored, unique_terms) for scored in page],
            total=total,
            has_more=request.offset + request.limit < total,
            query=request.query,
        )

    def build_snippet(self, scored: ScoredDocument, terms: Sequence[str]) -> tuple[str | None, str | None]:
        """Cut a highlighted excerpt from the highest-weighted matching field."""
        for name in scored.matched_fields:
            text = scored.document.text.get(name, "")
            if text:
                snippet = build_smart_snippet(
                    text,
                    terms,
                    max_chars=self.snippet_max_chars,
                    surrounding_context=self.snippet_context_chars,
                )
                return snippet, name
        return None, None

    def _to_result(self, scored: ScoredDocument, terms: Sequence[str]) -> SearchResult:
        document = scored.document
        raw = document.raw
        snippet, matched_field = self.build_snippet(scored, terms)
        return SearchResult(
            id=document.id,
            slug=raw.slug,
            title=raw.title,
            summary=raw.summary,
            division_id=document.division_id,
            division_name=raw.division_name,
            author_names=list(raw.author_names),
            tags=list(raw.tags),
            published_at=document.published_at,
            relevance_score=scored.score,
            snippet=snippet,
            matched_field=matched_field,
        )
