"""Search service orchestration layer.

Owns one ``SearchIndex`` and wires the index builder, query engine,
suggestion engine and stats reporter around it. This is the operation set
the HTTP adapter maps its routes onto: search, suggest, popular terms,
initialize, refresh and stats.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Iterator, Mapping
from contextlib import contextmanager, suppress
from datetime import datetime, timezone
import logging
from typing import Any
import warnings

from pydantic import ValidationError as PydanticValidationError

from research_search.adapters.article_provider import (
    AbstractArticleProvider,
    HttpArticleProvider,
    InMemoryArticleProvider,
)
from research_search.config import Settings
from research_search.domain.search import (
    FilterOptions,
    IndexBuildResult,
    IndexStats,
    PopularTerm,
    QueryRequest,
    SearchFilters,
    SearchResponse,
)
from research_search.exceptions import IndexBuildError, IndexUninitializedWarning, ValidationError
from research_search.observability.context import bind_log_fields
from research_search.observability.metrics import (
    INDEX_BUILD_LATENCY,
    INDEX_BUILDS,
    INDEX_DOC_COUNT,
    SEARCH_LATENCY,
    SEARCH_REQUESTS,
    track_latency,
)
from research_search.observability.tracing import create_span
from research_search.search.index import SearchIndex
from research_search.search.indexer import IndexBuilder
from research_search.search.query import QueryEngine
from research_search.search.schema import create_article_schema
from research_search.search.stats import StatsReporter
from research_search.search.suggest import SuggestionEngine


logger = logging.getLogger(__name__)

UNINITIALIZED_MESSAGE = "Search index has not been built yet; returning no results"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@contextmanager
def _observe(operation: str, **attributes: Any) -> Iterator[None]:
    """Count, time and trace one service operation."""
    bind_log_fields(operation=operation)
    with create_span(f"search.{operation}", attributes=attributes), track_latency(SEARCH_LATENCY, operation=operation):
        try:
            yield
        except Exception:
            SEARCH_REQUESTS.labels(operation=operation, status="error").inc()
            raise
    SEARCH_REQUESTS.labels(operation=operation, status="success").inc()


class SearchService:
    """High-level search API over an injectable index handle.

    Each instance is isolated: tests build one per case with an in-memory
    provider instead of sharing process-wide state.
    """

    def __init__(
        self,
        provider: AbstractArticleProvider,
        *,
        settings: Settings | None = None,
        index: SearchIndex | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        """Initialize the service.

        Args:
            provider: Data access provider for eligible and changed articles
            settings: Runtime settings; loaded from the environment when omitted
            index: Index handle to manage; a fresh one is created when omitted
            clock: Source of "now", used for eligibility and refresh age
        """
        self.settings = settings or Settings()
        self.provider = provider
        self.index = index or SearchIndex()
        self._clock = clock

        schema = create_article_schema()
        self.builder = IndexBuilder(
            provider,
            self.index,
            schema=schema,
            fetch_timeout=self.settings.provider_timeout_seconds,
            clock=clock,
        )
        self.query_engine = QueryEngine(
            self.index,
            schema=schema,
            snippet_max_chars=self.settings.snippet_max_chars,
            snippet_context_chars=self.settings.snippet_context_chars,
        )
        self.suggestions = SuggestionEngine(self.index)
        self.stats = StatsReporter(self.index)
        self._refresh_task: asyncio.Task[int] | None = None
        self._last_build_attempt: datetime | None = None

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> SearchService:
        """Build a service whose provider is chosen from configuration."""
        settings = settings or Settings()
        provider: AbstractArticleProvider
        if settings.article_provider_url:
            provider = HttpArticleProvider(
                settings.article_provider_url,
                timeout=settings.provider_timeout_seconds,
            )
        else:
            logger.warning("ARTICLE_PROVIDER_URL is not set; serving an empty in-memory article store")
            provider = InMemoryArticleProvider()
        return cls(provider, settings=settings)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def search(
        self,
        query: str,
        *,
        limit: int | None = None,
        offset: int = 0,
        filters: SearchFilters | Mapping[str, Any] | None = None,
    ) -> SearchResponse:
        """Run a ranked search.

        Raises:
            ValidationError: Blank query, bad pagination or malformed filters.
                Raised before any scoring or index initialization.
        """
        request = self.build_request(query, limit=limit, offset=offset, filters=filters)
        with _observe("search", **{"search.limit": request.limit, "search.offset": request.offset}):
            warning = await self._ensure_queryable()
            if warning is not None:
                return SearchResponse.empty(request.query, warning=warning)
            response = self.query_engine.search(request)

        logger.debug(
            "Search %r matched %d articles (returned %d)",
            request.query,
            response.total,
            len(response.results),
        )
        return response

    def build_request(
        self,
        query: str,
        *,
        limit: int | None = None,
        offset: int = 0,
        filters: SearchFilters | Mapping[str, Any] | None = None,
    ) -> QueryRequest:
        """Validate raw search input into a ``QueryRequest``."""
        if limit is None:
            limit = self.settings.default_limit
        if isinstance(limit, int) and limit > self.settings.max_limit:
            raise ValidationError(
                f"limit must be at most {self.settings.max_limit}",
                [f"limit: must be less than or equal to {self.settings.max_limit}"],
            )
        try:
            return QueryRequest(
                query=query,
                limit=limit,
                offset=offset,
                filters=filters if filters is not None else SearchFilters(),
            )
        except PydanticValidationError as exc:
            raise ValidationError.from_pydantic(exc) from exc

    def suggest(self, prefix: str, limit: int | None = None) -> list[str]:
        """Autocomplete candidates for ``prefix``; ``[]`` for an empty prefix."""
        limit = self._check_limit(limit, self.settings.suggestion_limit, upper=20)
        with _observe("suggest"):
            return self.suggestions.suggest(prefix or "", limit)

    def popular_terms(self, limit: int | None = None) -> list[PopularTerm]:
        limit = self._check_limit(limit, self.settings.popular_terms_limit, upper=50)
        with _observe("popular_terms"):
            return self.suggestions.popular_terms(limit)

    def get_stats(self) -> IndexStats:
        with _observe("stats"):
            return self.stats.get_stats()

    def filter_options(self) -> FilterOptions:
        with _observe("filter_options"):
            return self.stats.filter_options()

    # ------------------------------------------------------------------
    # Index lifecycle
    # ------------------------------------------------------------------

    async def initialize_index(self) -> IndexBuildResult:
        """Full build. Concurrent callers share one build.

        Raises:
            IndexBuildError: The provider failed; the last good index is kept.
        """
        return await self._tracked("full", self.builder.initialize_index())

    async def refresh_index(self, since: datetime) -> int:
        """Apply changes made after ``since`` and return how many documents changed."""
        result = await self._tracked("incremental", self.builder.refresh_since(since))
        return result.documents_changed

    async def aclose(self) -> None:
        """Stop background work, then release the provider."""
        task = self._refresh_task
        if task is not None and not task.done():
            task.cancel()
            with suppress(asyncio.CancelledError):
                await task
        await self.builder.cancel_pending()
        await self.provider.aclose()

    async def _tracked(self, kind: str, operation: Awaitable[IndexBuildResult]) -> IndexBuildResult:
        bind_log_fields(operation=f"index_{kind}")
        self._last_build_attempt = self._clock()
        with create_span(f"index.{kind}"), track_latency(INDEX_BUILD_LATENCY, kind=kind):
            try:
                result = await operation
            except IndexBuildError:
                INDEX_BUILDS.labels(kind=kind, status="error").inc()
                raise
        INDEX_BUILDS.labels(kind=result.kind, status="success").inc()
        snapshot = self.index.snapshot
        INDEX_DOC_COUNT.labels().set(len(snapshot) if snapshot is not None else 0)
        return result

    async def _ensure_queryable(self) -> str | None:
        """Return None when a snapshot can be served, else the warning text.

        Only the first query against a never-built index waits for a lazy
        build (queries arriving while that build runs join it). Once any
        build has been attempted, later queries return at once and a retry
        is left to the background refresh.
        """
        if self.index.snapshot is not None:
            self._schedule_refresh_if_due()
            return None

        first_attempt = self.settings.lazy_initialize and self._last_build_attempt is None
        if first_attempt or self.builder.build_in_progress:
            try:
                await self.initialize_index()
            except IndexBuildError as exc:
                logger.warning("Lazy index initialization failed: %s", exc)
            if self.index.snapshot is not None:
                return None
        else:
            self._schedule_refresh_if_due()

        warnings.warn(UNINITIALIZED_MESSAGE, IndexUninitializedWarning, stacklevel=3)
        logger.warning(UNINITIALIZED_MESSAGE)
        return UNINITIALIZED_MESSAGE

    def _schedule_refresh_if_due(self) -> None:
        """Start a non-blocking refresh once the index (or the last attempt) is old enough.

        With a snapshot this is an incremental refresh from its watermark;
        without one it retries the full build.
        """
        interval = self.settings.index_refresh_interval_seconds
        if not interval or self.builder.build_in_progress:
            return
        if self._refresh_task is not None and not self._refresh_task.done():
            return
        snapshot = self.index.snapshot
        since = snapshot.updated_at if snapshot is not None else None
        marks = [mark for mark in (since, self._last_build_attempt) if mark is not None]
        if not marks or (self._clock() - max(marks)).total_seconds() < interval:
            return
        self._refresh_task = asyncio.create_task(self._background_refresh(since), name="search-index-refresh")

    async def _background_refresh(self, since: datetime | None) -> int:
        try:
            if since is None:
                changed = (await self.initialize_index()).documents_changed
            else:
                changed = await self.refresh_index(since)
        except IndexBuildError as exc:
            logger.warning("Background index refresh failed; serving the previous index: %s", exc)
            return 0
        except Exception:
            logger.error("Background index refresh crashed", exc_info=True)
            return 0
        logger.info("Background index refresh applied %d changes", changed)
        return changed

    def _check_limit(self, limit: int | None, default: int, *, upper: int) -> int:
        if limit is None:
            return default
        if isinstance(limit, bool) or not isinstance(limit, int) or not 1 <= limit <= upper:
            raise ValidationError(
                f"limit must be between 1 and {upper}",
                [f"limit: must be an integer between 1 and {upper}"],
            )
        return limit
