"""Unit tests for the health endpoint."""

from types import SimpleNamespace

import orjson
import pytest
from starlette.requests import Request

from research_search import __version__
from research_search.adapters.article_provider import InMemoryArticleProvider
from research_search.exceptions import IndexBuildError
from research_search.runtime.health import build_health_endpoint
from research_search.service_layer.search_service import SearchService


class UnreachableProvider(InMemoryArticleProvider):
    async def fetch_eligible(self):
        raise ConnectionError("content store unreachable")


def _request() -> Request:
    app = SimpleNamespace(state=SimpleNamespace())
    return Request({"type": "http", "method": "GET", "path": "/health", "headers": [], "app": app})


@pytest.mark.unit
@pytest.mark.asyncio
async def test_health_reports_ready_index(service):
    await service.initialize_index()
    health_check = build_health_endpoint(service)

    response = await health_check(_request())
    payload = orjson.loads(response.body)

    assert response.status_code == 200
    assert payload["status"] == "healthy"
    assert payload["version"] == __version__
    assert payload["index"]["status"] == "ready"
    assert payload["index"]["totalArticles"] == 3
    assert payload["index"]["lastError"] is None


@pytest.mark.unit
@pytest.mark.asyncio
async def test_health_is_degraded_before_first_build(service):
    payload = orjson.loads((await build_health_endpoint(service)(_request())).body)

    assert payload["status"] == "degraded"
    assert payload["index"]["status"] == "uninitialized"
    assert payload["index"]["lastIndexUpdate"] is None


@pytest.mark.unit
@pytest.mark.asyncio
async def test_health_carries_last_build_error(settings, clock):
    service = SearchService(UnreachableProvider(), settings=settings, clock=clock)
    with pytest.raises(IndexBuildError, match="unreachable"):
        await service.initialize_index()

    payload = orjson.loads((await build_health_endpoint(service)(_request())).body)

    assert payload["status"] == "degraded"
    assert "unreachable" in payload["index"]["lastError"]
