"""Unit tests for snapshots and the index state machine."""

from datetime import datetime, timedelta, timezone

import pytest

from research_search.adapters.article_provider import InMemoryArticleProvider
from research_search.search.index import IndexSnapshot, IndexState, IndexStateError, SearchIndex
from research_search.search.indexer import IndexBuilder


NOW = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def builder():
    return IndexBuilder(InMemoryArticleProvider(), SearchIndex())


@pytest.mark.unit
class TestIndexSnapshot:
    def test_build_counts_terms(self, builder, make_article):
        docs = [
            builder.build_document(make_article("1", title="Trade policy", content="trade flows"), NOW),
            builder.build_document(make_article("2", title="Food prices"), NOW),
        ]

        snapshot = IndexSnapshot.build(docs, built_at=NOW)

        assert len(snapshot) == 2
        assert snapshot.term_counts["trade"] == 2
        assert snapshot.title_term_counts["trade"] == 1
        assert "flows" not in snapshot.title_term_counts
        assert snapshot.sorted_terms == tuple(sorted(snapshot.term_counts))
        assert snapshot.total_tokens == sum(doc.token_count for doc in snapshot)
        assert snapshot.updated_at == NOW

    def test_later_duplicate_wins(self, builder, make_article):
        first = builder.build_document(make_article("1", title="Old title"), NOW)
        second = builder.build_document(make_article("1", title="New title"), NOW)

        snapshot = IndexSnapshot.build([first, second], built_at=NOW)

        assert len(snapshot) == 1
        assert snapshot.get("1").raw.title == "New title"

    def test_patch_is_copy_on_write(self, builder, make_article):
        base = IndexSnapshot.build(
            [
                builder.build_document(make_article("1", title="Trade policy"), NOW),
                builder.build_document(make_article("2", title="Food prices"), NOW),
            ],
            built_at=NOW,
        )
        later = NOW + timedelta(hours=1)

        patched = base.patch(
            upserts=[builder.build_document(make_article("1", title="Energy policy"), later)],
            removals=["2", "missing"],
            updated_at=later,
        )

        assert set(base.documents) == {"1", "2"}
        assert base.get("1").raw.title == "Trade policy"
        assert set(patched.documents) == {"1"}
        assert "trade" not in patched.term_counts
        assert patched.term_counts["energy"] == 1
        assert patched.title_term_counts["policy"] == 1
        assert patched.built_at == NOW
        assert patched.updated_at == later

    def test_empty_snapshot(self):
        snapshot = IndexSnapshot.empty(built_at=NOW)
        assert len(snapshot) == 0
        assert snapshot.total_tokens == 0
        assert "1" not in snapshot


@pytest.mark.unit
class TestSearchIndexStateMachine:
    def test_first_build_publishes_ready(self):
        index = SearchIndex()
        assert index.state is IndexState.UNINITIALIZED
        assert not index.is_queryable

        index.begin_build()
        assert index.state is IndexState.BUILDING
        index.publish(IndexSnapshot.empty(built_at=NOW))

        assert index.state is IndexState.READY
        assert index.is_queryable

    def test_failed_first_build_returns_to_uninitialized(self):
        index = SearchIndex()
        index.begin_build()
        index.fail("provider down")

        assert index.state is IndexState.UNINITIALIZED
        assert index.last_error == "provider down"
        assert index.snapshot is None

    def test_failed_rebuild_keeps_previous_snapshot(self):
        index = SearchIndex()
        snapshot = IndexSnapshot.empty(built_at=NOW)
        index.begin_build()
        index.publish(snapshot)

        index.begin_build()
        assert index.snapshot is snapshot
        index.fail("provider down")

        assert index.state is IndexState.STALE
        assert index.snapshot is snapshot

        index.begin_build()
        index.publish(IndexSnapshot.empty(built_at=NOW))
        assert index.state is IndexState.READY
        assert index.last_error is None

    def test_illegal_transitions(self):
        index = SearchIndex()
        with pytest.raises(IndexStateError):
            index.publish(IndexSnapshot.empty(built_at=NOW))
        with pytest.raises(IndexStateError):
            index.fail("nope")
        index.begin_build()
        with pytest.raises(IndexStateError, match="already in progress"):
            index.begin_build()
