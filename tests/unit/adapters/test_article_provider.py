"""Unit tests for the article data access providers."""

from datetime import datetime, timedelta, timezone

import httpx
import pytest

from research_search.adapters.article_provider import HttpArticleProvider, InMemoryArticleProvider


NOW = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)


@pytest.mark.unit
class TestInMemoryArticleProvider:
    @pytest.mark.asyncio
    async def test_fetch_eligible_skips_drafts_and_future_articles(self, make_article, clock):
        provider = InMemoryArticleProvider(
            [
                make_article("live"),
                make_article("draft", status="DRAFT"),
                make_article("future", published_at=NOW + timedelta(days=1)),
            ],
            clock=clock,
        )

        assert [a.id for a in await provider.fetch_eligible()] == ["live"]

    @pytest.mark.asyncio
    async def test_change_feed_includes_removed_articles(self, make_article, clock):
        provider = InMemoryArticleProvider([make_article("1"), make_article("2")], clock=clock)
        since = clock()

        provider.remove("1", at=NOW + timedelta(minutes=5))
        provider.upsert(make_article("3", updated_at=NOW + timedelta(minutes=1)))
        provider.remove("missing")

        changed = {a.id: a for a in await provider.fetch_modified_since(since)}
        assert set(changed) == {"1", "3"}
        assert changed["1"].deleted

    @pytest.mark.asyncio
    async def test_remove_defaults_to_clock_time(self, make_article, clock):
        provider = InMemoryArticleProvider([make_article("1")], clock=clock)
        clock.advance(minutes=1)

        provider.remove("1")

        assert [a.updated_at for a in await provider.fetch_modified_since(NOW)] == [NOW + timedelta(minutes=1)]


def _article_payload(article_id: str) -> dict:
    return {
        "id": article_id,
        "title": f"Article {article_id}",
        "status": "PUBLISHED",
        "publishedAt": "2025-05-01T00:00:00Z",
        "updatedAt": "2025-05-02T00:00:00Z",
        "tags": '["trade"]',
    }


@pytest.mark.unit
class TestHttpArticleProvider:
    @pytest.mark.asyncio
    async def test_fetch_eligible_accepts_plain_list(self):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=[_article_payload("1"), _article_payload("2")])

        provider = HttpArticleProvider("https://cms.example.org/api/", transport=httpx.MockTransport(handler))
        try:
            articles = await provider.fetch_eligible()
        finally:
            await provider.aclose()

        assert [a.id for a in articles] == ["1", "2"]
        assert articles[0].tags == ("trade",)
        assert seen[0].url.path == "/api/articles"
        assert "modifiedSince" not in seen[0].url.params

    @pytest.mark.asyncio
    async def test_change_feed_sends_timestamp_and_accepts_envelope(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.params["modifiedSince"] == NOW.isoformat()
            return httpx.Response(200, json={"articles": [_article_payload("9")]})

        provider = HttpArticleProvider("https://cms.example.org", transport=httpx.MockTransport(handler))
        try:
            articles = await provider.fetch_modified_since(NOW)
        finally:
            await provider.aclose()

        assert [a.id for a in articles] == ["9"]

    @pytest.mark.asyncio
    async def test_http_errors_propagate(self):
        provider = HttpArticleProvider(
            "https://cms.example.org",
            transport=httpx.MockTransport(lambda request: httpx.Response(502)),
        )
        try:
            with pytest.raises(httpx.HTTPStatusError):
                await provider.fetch_eligible()
        finally:
            await provider.aclose()

    def test_requires_base_url(self):
        with pytest.raises(ValueError, match="base_url"):
            HttpArticleProvider("")
