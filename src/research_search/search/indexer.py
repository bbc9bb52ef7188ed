"""Index Builder: turns provider articles into a published ``IndexSnapshot``.

Full builds fetch every eligible article, tokenize them on a worker thread
and publish the finished snapshot in one swap. Incremental refreshes fetch
only articles modified since a timestamp and publish a patched copy. Builds
and refreshes are serialized by a lock, and concurrent full-build requests
join the one already running instead of starting another.
"""

from __future__ import annotations

import asyncio
from collections import Counter
from collections.abc import Awaitable, Callable, Iterable
from contextlib import suppress
from datetime import datetime, timezone
from functools import partial
import logging
import time
from types import MappingProxyType

import anyio

from research_search.adapters.article_provider import AbstractArticleProvider
from research_search.domain.model import SourceArticle
from research_search.domain.search import IndexBuildResult
from research_search.exceptions import IndexBuildError
from research_search.search.analyzers import Analyzer, analyze_terms, get_analyzer, strip_html
from research_search.search.index import DocumentRef, IndexedDocument, IndexSnapshot, SearchIndex
from research_search.search.schema import Schema, create_article_schema


logger = logging.getLogger(__name__)

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _source_texts(article: SourceArticle) -> dict[str, str]:
    return {
        "title": strip_html(article.title),
        "tags": ", ".join(article.tags),
        "summary": strip_html(article.summary),
        "content": strip_html(article.content),
    }


class IndexBuilder:
    """Build and refresh the in-memory index from an article provider."""

    def __init__(
        self,
        provider: AbstractArticleProvider,
        index: SearchIndex,
        *,
        schema: Schema | None = None,
        analyzer: Analyzer | None = None,
        fetch_timeout: float = 10.0,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.provider = provider
        self.index = index
        self.schema = schema or create_article_schema()
        self.analyzer = analyzer or get_analyzer("default")
        self.fetch_timeout = fetch_timeout
        self._clock = clock
        self._write_lock = asyncio.Lock()
        self._build_task: asyncio.Task[IndexBuildResult] | None = None

    @property
    def build_in_progress(self) -> bool:
        return self._build_task is not None and not self._build_task.done()

    def build_document(self, article: SourceArticle, now: datetime) -> IndexedDocument | None:
        """Tokenize one article, or return None when it is not eligible for search."""
        if not article.is_eligible(now):
            return None

        texts = _source_texts(article)
        fields: dict[str, tuple[str, ...]] = {}
        frequencies: dict[str, MappingProxyType[str, int]] = {}
        for text_field in self.schema:
            tokens = tuple(analyze_terms(self.analyzer, texts.get(text_field.name, "")))
            fields[text_field.name] = tokens
            frequencies[text_field.name] = MappingProxyType(Counter(tokens))

        division = article.division
        return IndexedDocument(
            id=article.id,
            fields=MappingProxyType(fields),
            term_frequencies=MappingProxyType(frequencies),
            text=MappingProxyType(texts),
            division_id=division.id if division else None,
            division_name=division.name if division else None,
            author_ids=frozenset(article.author_ids),
            tags=frozenset(tag.lower() for tag in article.tags),
            published_at=article.published_at,  # type: ignore[arg-type]  # eligibility guarantees a value
            updated_at=article.updated_at,
            raw=DocumentRef(
                title=texts["title"],
                summary=texts["summary"],
                slug=article.slug or article.id,
                division_name=division.name if division else None,
                authors=tuple((author.id, author.name) for author in article.authors),
                tags=article.tags,
            ),
        )

    def build_snapshot(
        self,
        articles: Iterable[SourceArticle],
        now: datetime,
        watermark: datetime | None = None,
    ) -> IndexSnapshot:
        documents = (self.build_document(article, now) for article in articles)
        return IndexSnapshot.build(
            (doc for doc in documents if doc is not None),
            built_at=now,
            updated_at=watermark,
        )

    async def initialize_index(self) -> IndexBuildResult:
        """Fetch all eligible articles and atomically replace the index.

        A request arriving while a full build is running joins that build.

        Raises:
            IndexBuildError: The provider failed or timed out. The previous
                snapshot, if any, stays published.
        """
        task = self._build_task
        if task is None or task.done():
            task = asyncio.create_task(self._run_full_build(), name="search-index-build")
            self._build_task = task
        else:
            logger.info("Index build already in progress; joining it")
        return await asyncio.shield(task)

    async def cancel_pending(self) -> None:
        """Cancel a running full build and wait for it to unwind."""
        task = self._build_task
        if task is None or task.done():
            return
        task.cancel()
        with suppress(asyncio.CancelledError, IndexBuildError):
            await task

    async def refresh_since(self, since: datetime) -> IndexBuildResult:
        """Upsert or remove articles modified after ``since``.

        Falls back to a full build when nothing has been indexed yet.
        """
        async with self._write_lock:
            base = self.index.snapshot
            if base is not None:
                return await self._run_refresh(base, since)
        logger.info("Refresh requested before the first build; running a full build instead")
        return await self.initialize_index()

    async def _run_full_build(self) -> IndexBuildResult:
        async with self._write_lock:
            started = time.perf_counter()
            self.index.begin_build()
            try:
                # Edits saved while the fetch is in flight are newer than this
                fetch_started = self._clock()
                articles = await self._fetch(self.provider.fetch_eligible(), "full build")
                now = self._clock()
                snapshot = await anyio.to_thread.run_sync(self.build_snapshot, articles, now, fetch_started)
            except IndexBuildError as exc:
                self._record_failure(exc)
                raise
            except asyncio.CancelledError:
                self.index.fail("Index build cancelled")
                raise
            except Exception as exc:
                error = IndexBuildError(f"Failed to tokenize articles: {exc}")
                self._record_failure(error)
                raise error from exc

            self.index.publish(snapshot)
            duration = time.perf_counter() - started
            logger.info(
                "Search index built with %d articles (%d fetched) in %.3fs",
                len(snapshot),
                len(articles),
                duration,
            )
            return IndexBuildResult(
                kind="full",
                documents_indexed=len(snapshot),
                duration_seconds=duration,
                built_at=now,
            )

    async def _run_refresh(self, base: IndexSnapshot, since: datetime) -> IndexBuildResult:
        started = time.perf_counter()
        self.index.begin_build()
        try:
            fetch_started = self._clock()
            changed = await self._fetch(self.provider.fetch_modified_since(since), "refresh")
            now = self._clock()
            latest: dict[str, SourceArticle] = {}
            for article in sorted(changed, key=lambda a: a.updated_at or _EPOCH):
                latest[article.id] = article

            upserts: list[IndexedDocument] = []
            removals: list[str] = []
            for article in latest.values():
                document = self.build_document(article, now)
                if document is not None:
                    upserts.append(document)
                elif article.id in base:
                    removals.append(article.id)

            patched = await anyio.to_thread.run_sync(
                partial(base.patch, upserts=upserts, removals=removals, updated_at=fetch_started)
            )
        except IndexBuildError as exc:
            self._record_failure(exc)
            raise
        except asyncio.CancelledError:
            self.index.fail("Index refresh cancelled")
            raise
        except Exception as exc:
            error = IndexBuildError(f"Failed to apply index refresh: {exc}")
            self._record_failure(error)
            raise error from exc

        self.index.publish(patched)
        duration = time.perf_counter() - started
        logger.info(
            "Search index refreshed since %s: %d upserted, %d removed in %.3fs",
            since.isoformat(),
            len(upserts),
            len(removals),
            duration,
        )
        return IndexBuildResult(
            kind="incremental",
            documents_indexed=len(upserts),
            documents_removed=len(removals),
            duration_seconds=duration,
            built_at=now,
        )

    async def _fetch(self, operation: Awaitable[list[SourceArticle]], purpose: str) -> list[SourceArticle]:
        try:
            return await asyncio.wait_for(operation, timeout=self.fetch_timeout)
        except asyncio.TimeoutError as exc:
            raise IndexBuildError(
                f"Article provider timed out after {self.fetch_timeout:g}s during {purpose}"
            ) from exc
        except Exception as exc:
            raise IndexBuildError(f"Article provider failed during {purpose}: {exc}") from exc

    def _record_failure(self, exc: IndexBuildError) -> None:
        logger.error("Search index update failed: %s", exc, exc_info=True)
        self.index.fail(str(exc))
