"""Stats Reporter: index health and facet counts for monitoring and filter UIs.

Purely read-only; nothing here ever triggers a build.
"""

from __future__ import annotations

from collections import Counter

from research_search.domain.search import FacetCount, FilterOptions, IndexStats
from research_search.search.index import SearchIndex


class StatsReporter:
    """Summarize the currently published snapshot."""

    def __init__(self, index: SearchIndex) -> None:
        self.index = index

    def get_stats(self) -> IndexStats:
        """Return document count, update times, token volume and lifecycle state.

        ``index_size`` is the number of indexed tokens, an approximation of
        the memory the index holds.
        """
        snapshot = self.index.snapshot
        if snapshot is None:
            return IndexStats(
                total_articles=0,
                index_size=0,
                status=self.index.state.value,
                last_error=self.index.last_error,
            )
        return IndexStats(
            total_articles=len(snapshot),
            last_index_update=snapshot.updated_at,
            last_built_at=snapshot.built_at,
            index_size=snapshot.total_tokens,
            vocabulary_size=len(snapshot.term_counts),
            status=self.index.state.value,
            last_error=self.index.last_error,
        )

    def filter_options(self) -> FilterOptions:
        """Divisions, authors and tags present in the index, most common first."""
        snapshot = self.index.snapshot
        if snapshot is None:
            return FilterOptions()

        divisions: Counter[str] = Counter()
        division_names: dict[str, str] = {}
        authors: Counter[str] = Counter()
        author_names: dict[str, str] = {}
        tags: Counter[str] = Counter()
        tag_names: dict[str, str] = {}

        for document in snapshot:
            if document.division_id is not None:
                divisions[document.division_id] += 1
                division_names.setdefault(document.division_id, document.division_name or document.division_id)
            for author_id, author_name in document.raw.authors:
                authors[author_id] += 1
                author_names.setdefault(author_id, author_name or author_id)
            for raw_tag in document.raw.tags:
                key = raw_tag.lower()
                tags[key] += 1
                tag_names.setdefault(key, raw_tag)

        return FilterOptions(
            divisions=_facets(divisions, division_names),
            authors=_facets(authors, author_names),
            tags=[FacetCount(name=tag_names[key], count=count) for key, count in _ordered(tags, tag_names)],
        )


def _ordered(counts: Counter[str], names: dict[str, str]) -> list[tuple[str, int]]:
    return sorted(counts.items(), key=lambda item: (-item[1], names.get(item[0], item[0]).lower()))


def _facets(counts: Counter[str], names: dict[str, str]) -> list[FacetCount]:
    return [FacetCount(id=key, name=names.get(key, key), count=count) for key, count in _ordered(counts, names)]
