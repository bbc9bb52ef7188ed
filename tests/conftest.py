"""Shared test fixtures and configuration."""

from datetime import datetime, timedelta, timezone
import os

import pytest


# Complete test environment that overrides every Settings value read from env
TEST_ENV = {
    "ARTICLE_PROVIDER_URL": "",
    "PROVIDER_TIMEOUT_SECONDS": "2",
    "DEFAULT_LIMIT": "20",
    "MAX_LIMIT": "100",
    "SNIPPET_MAX_CHARS": "300",
    "SNIPPET_CONTEXT_CHARS": "100",
    "SUGGESTION_LIMIT": "5",
    "POPULAR_TERMS_LIMIT": "10",
    "LAZY_INITIALIZE": "true",
    "INDEX_REFRESH_INTERVAL_SECONDS": "0",
    "HOST": "127.0.0.1",
    "PORT": "18080",
    "LOG_LEVEL": "info",
    "LOG_JSON": "false",
    "OBSERVABILITY__ENABLED": "false",
    # Proxy settings - ensure they're cleared for tests
    "http_proxy": "",
    "https_proxy": "",
    "all_proxy": "",
    "no_proxy": "",
}


# Set environment variables immediately when conftest.py is loaded
for key, value in TEST_ENV.items():
    os.environ[key] = value

# Now we can safely import config-dependent modules
from research_search.adapters.article_provider import InMemoryArticleProvider
from research_search.config import Settings
from research_search.domain.model import SourceArticle
from research_search.service_layer.search_service import SearchService


NOW = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)


class FrozenClock:
    """Callable clock that only moves when a test advances it."""

    def __init__(self, now: datetime = NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta: float) -> datetime:
        self.now += timedelta(**delta)
        return self.now


def build_article(article_id: str, **overrides) -> SourceArticle:
    data = {
        "id": article_id,
        "slug": f"article-{article_id}",
        "title": f"Article {article_id}",
        "summary": "",
        "content": "",
        "status": "PUBLISHED",
        "published_at": NOW - timedelta(days=10),
        "updated_at": NOW - timedelta(days=10),
        "division": {"id": "d1", "name": "Economics"},
        "authors": [{"id": "a1", "name": "Ada Lovelace"}],
    }
    data.update(overrides)
    return SourceArticle.model_validate(data)


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    """Pin the test environment for every test."""
    for key, value in TEST_ENV.items():
        monkeypatch.setenv(key, value)


@pytest.fixture
def clock():
    return FrozenClock()


@pytest.fixture
def make_article():
    return build_article


@pytest.fixture
def scenario_articles():
    """A: title and tag match, B: one content mention, C: unrelated."""
    return [
        build_article(
            "A",
            title="Agriculture policy in transition",
            tags=["agriculture"],
            summary="How subsidies shape farm output.",
            content="Subsidies and trade rules are reviewed.",
            published_at=NOW - timedelta(days=3),
        ),
        build_article(
            "B",
            title="Rural labour markets",
            content="Seasonal work depends on agriculture. Wages vary by region.",
            division={"id": "d2", "name": "Labour"},
            authors=[{"id": "a2", "name": "Grace Hopper"}],
            published_at=NOW - timedelta(days=2),
        ),
        build_article(
            "C",
            title="Monetary aggregates",
            summary="Money supply measures compared.",
            content="Central banks publish several measures.",
            published_at=NOW - timedelta(days=1),
        ),
    ]


@pytest.fixture
def provider(scenario_articles, clock):
    return InMemoryArticleProvider(scenario_articles, clock=clock)


@pytest.fixture
def settings():
    return Settings()


@pytest.fixture
def service(provider, settings, clock):
    return SearchService(provider, settings=settings, clock=clock)
