"""Suggestion Engine: autocomplete candidates and popular terms.

Candidates come from indexed titles and the corpus token frequency table.
Ranking prefers whole titles, then tokens that occur in titles, then body
tokens; within a tier, more frequent first. Matching is case-insensitive
and anchored at the start of a title or token, never in the middle.
"""

from __future__ import annotations

from bisect import bisect_left
from collections import Counter
from dataclasses import dataclass
import re
from typing import Literal

from research_search.domain.search import PopularTerm
from research_search.search.index import IndexSnapshot, SearchIndex


_TOKEN_PREFIX = re.compile(r"[^\W_]+")
_TIER = {"title": 0, "title_term": 1, "term": 2}


@dataclass(frozen=True, slots=True)
class Suggestion:
    text: str
    source: Literal["title", "title_term", "term"]
    frequency: int


def normalize_prefix(prefix: str) -> str:
    return " ".join(prefix.lower().split())


class SuggestionEngine:
    """Read-only autocomplete over the current snapshot."""

    def __init__(self, index: SearchIndex, *, popular_min_length: int = 4) -> None:
        self.index = index
        self.popular_min_length = popular_min_length

    def suggest(self, prefix: str, limit: int = 5) -> list[str]:
        return [candidate.text for candidate in self.candidates(prefix, limit)]

    def candidates(self, prefix: str, limit: int = 5) -> list[Suggestion]:
        normalized = normalize_prefix(prefix)
        snapshot = self.index.snapshot
        if not normalized or limit <= 0 or snapshot is None:
            return []

        found = self._title_candidates(snapshot, normalized)
        if _TOKEN_PREFIX.fullmatch(normalized):
            found.extend(self._term_candidates(snapshot, normalized))

        found.sort(key=lambda s: (_TIER[s.source], -s.frequency, s.text.lower()))
        results: list[Suggestion] = []
        seen: set[str] = set()
        for candidate in found:
            key = candidate.text.lower()
            if key in seen:
                continue
            seen.add(key)
            results.append(candidate)
            if len(results) >= limit:
                break
        return results

    def _title_candidates(self, snapshot: IndexSnapshot, normalized: str) -> list[Suggestion]:
        titles: Counter[str] = Counter()
        display: dict[str, str] = {}
        for document in snapshot:
            title = document.raw.title
            key = normalize_prefix(title)
            if key.startswith(normalized):
                titles[key] += 1
                display.setdefault(key, title)
        return [Suggestion(text=display[key], source="title", frequency=count) for key, count in titles.items()]

    def _term_candidates(self, snapshot: IndexSnapshot, normalized: str) -> list[Suggestion]:
        terms = snapshot.sorted_terms
        found: list[Suggestion] = []
        for position in range(bisect_left(terms, normalized), len(terms)):
            term = terms[position]
            if not term.startswith(normalized):
                break
            source: Literal["title_term", "term"] = "title_term" if term in snapshot.title_term_counts else "term"
            found.append(Suggestion(text=term, source=source, frequency=snapshot.term_counts[term]))
        return found

    def popular_terms(self, limit: int = 10) -> list[PopularTerm]:
        """Most common tags and significant title words, counted once per article."""
        snapshot = self.index.snapshot
        if snapshot is None or limit <= 0:
            return []

        counts: Counter[str] = Counter()
        for document in snapshot:
            terms = set(document.tags)
            terms.update(
                token for token in document.fields.get("title", ()) if len(token) >= self.popular_min_length
            )
            counts.update(terms)

        ranked = sorted(counts.items(), key=lambda item: (-item[1], item[0]))
        return [PopularTerm(term=term, count=count) for term, count in ranked[:limit]]
