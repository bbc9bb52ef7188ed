"""Article data access providers.

The search engine never talks to the content store directly. It consumes a
provider with two queries: all currently eligible articles, and articles
modified since a timestamp (including ones that became ineligible, so the
index can drop them).
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable, Mapping
from datetime import datetime, timezone
import logging
from typing import Any

import httpx
from pydantic import TypeAdapter

from research_search.domain.model import SourceArticle, ensure_aware


logger = logging.getLogger(__name__)

_ARTICLE_LIST = TypeAdapter(list[SourceArticle])


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AbstractArticleProvider(ABC):
    """Abstract data access provider.

    Implementations can read from an ORM, a CMS API or fixtures.
    """

    @abstractmethod
    async def fetch_eligible(self) -> list[SourceArticle]:
        """Return every published, non-future-dated article."""
        raise NotImplementedError

    @abstractmethod
    async def fetch_modified_since(self, since: datetime) -> list[SourceArticle]:
        """Return articles whose ``updated_at`` is after ``since``, eligible or not."""
        raise NotImplementedError

    async def aclose(self) -> None:
        """Optional hook for releasing connections."""

        return


class InMemoryArticleProvider(AbstractArticleProvider):
    """Provider backed by a dict, used for tests, fixtures and local development."""

    def __init__(
        self,
        articles: Iterable[SourceArticle] = (),
        *,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._clock = clock
        self._articles: dict[str, SourceArticle] = {article.id: article for article in articles}

    def upsert(self, article: SourceArticle) -> None:
        self._articles[article.id] = article

    def remove(self, article_id: str, *, at: datetime | None = None) -> None:
        """Mark an article deleted so change feeds report it."""
        article = self._articles.get(article_id)
        if article is None:
            return
        self._articles[article_id] = article.model_copy(update={"deleted": True, "updated_at": at or self._clock()})

    async def fetch_eligible(self) -> list[SourceArticle]:
        now = self._clock()
        return [article for article in self._articles.values() if article.is_eligible(now)]

    async def fetch_modified_since(self, since: datetime) -> list[SourceArticle]:
        since = ensure_aware(since)
        return [
            article
            for article in self._articles.values()
            if article.updated_at is not None and article.updated_at > since
        ]


class HttpArticleProvider(AbstractArticleProvider):
    """Provider reading the CMS article feed over HTTP.

    Expects ``GET {base_url}/articles`` to return either a JSON list of
    articles or ``{"articles": [...]}``. The change feed is the same endpoint
    with a ``modifiedSince`` ISO-8601 query parameter.
    """

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 10.0,
        headers: Mapping[str, str] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not base_url:
            raise ValueError("HttpArticleProvider requires a base_url")
        self.base_url = base_url.rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=httpx.Timeout(timeout),
            headers=dict(headers or {"Accept": "application/json"}),
            follow_redirects=True,
            transport=transport,
        )

    async def fetch_eligible(self) -> list[SourceArticle]:
        return await self._get_articles({})

    async def fetch_modified_since(self, since: datetime) -> list[SourceArticle]:
        return await self._get_articles({"modifiedSince": ensure_aware(since).isoformat()})

    async def _get_articles(self, params: dict[str, str]) -> list[SourceArticle]:
        response = await self._client.get("/articles", params=params)
        response.raise_for_status()
        payload: Any = response.json()
        if isinstance(payload, dict):
            payload = payload.get("articles", [])
        articles = _ARTICLE_LIST.validate_python(payload)
        logger.debug("Fetched %d articles from %s (params=%s)", len(articles), self.base_url, params)
        return articles

    async def aclose(self) -> None:
        await self._client.aclose()
