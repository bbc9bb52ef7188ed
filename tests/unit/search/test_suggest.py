"""Unit tests for autocomplete suggestions and popular terms."""

from datetime import datetime, timezone

import pytest

from research_search.adapters.article_provider import InMemoryArticleProvider
from research_search.search.index import SearchIndex
from research_search.search.indexer import IndexBuilder
from research_search.search.suggest import SuggestionEngine, normalize_prefix


NOW = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def engine(make_article):
    index = SearchIndex()
    builder = IndexBuilder(InMemoryArticleProvider(), index)
    articles = [
        make_article("1", title="Trade policy review", tags=["Trade"], content="trade tariffs"),
        make_article("2", title="Tariff schedules", tags=["trade", "Tariffs"], content="tariffs trade tariffs"),
        make_article("3", title="Transport costs"),
        make_article("4", title="Wheat"),
    ]
    index.begin_build()
    index.publish(builder.build_snapshot(articles, NOW))
    return SuggestionEngine(index)


@pytest.mark.unit
class TestSuggest:
    def test_titles_rank_before_title_tokens_before_body_tokens(self, engine):
        assert engine.suggest("tar") == ["Tariff schedules", "tariff", "tariffs"]

    def test_frequency_orders_tokens_within_a_tier(self, engine):
        assert engine.suggest("tra") == ["Trade policy review", "Transport costs", "trade", "transport"]

    def test_case_insensitive(self, engine):
        assert engine.suggest("TRA") == engine.suggest("tra")

    def test_limit(self, engine):
        assert engine.suggest("tra", limit=2) == ["Trade policy review", "Transport costs"]
        assert engine.suggest("tra", limit=0) == []

    def test_token_start_only(self, engine):
        assert engine.suggest("olicy") == []

    def test_empty_prefix_returns_nothing(self, engine):
        assert engine.suggest("") == []
        assert engine.suggest("   ") == []

    def test_unknown_prefix_returns_nothing(self, engine):
        assert engine.suggest("zzz") == []

    def test_multi_word_prefix_matches_titles_only(self, engine):
        assert engine.suggest("trade  PO") == ["Trade policy review"]

    def test_title_and_token_with_same_text_are_deduplicated(self, engine):
        assert engine.suggest("whe") == ["Wheat"]

    def test_candidates_expose_source_and_frequency(self, engine):
        candidates = {c.text: c for c in engine.candidates("tar", limit=10)}

        assert candidates["Tariff schedules"].source == "title"
        assert candidates["tariff"].source == "title_term"
        assert candidates["tariffs"].source == "term"
        assert candidates["tariffs"].frequency == 4

    def test_no_snapshot(self):
        assert SuggestionEngine(SearchIndex()).suggest("tra") == []

    def test_normalize_prefix(self):
        assert normalize_prefix("  Trade   Policy ") == "trade policy"


@pytest.mark.unit
class TestPopularTerms:
    def test_counts_tags_and_long_title_words_once_per_article(self, engine):
        terms = engine.popular_terms(limit=3)

        assert [(t.term, t.count) for t in terms] == [("trade", 2), ("costs", 1), ("policy", 1)]

    def test_short_title_words_are_ignored(self, make_article):
        index = SearchIndex()
        index.begin_build()
        index.publish(IndexBuilder(InMemoryArticleProvider(), index).build_snapshot([make_article("1", title="EU tax")], NOW))

        assert SuggestionEngine(index).popular_terms() == []

    def test_no_snapshot(self):
        assert SuggestionEngine(SearchIndex()).popular_terms() == []
