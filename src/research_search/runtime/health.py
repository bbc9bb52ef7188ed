"""Health endpoint factory."""

from __future__ import annotations

from typing import TYPE_CHECKING

from starlette.responses import JSONResponse

from research_search import __version__
from research_search.search.index import IndexState


if TYPE_CHECKING:
    from starlette.requests import Request

    from research_search.service_layer.search_service import SearchService


def build_health_endpoint(service: SearchService):
    """Return a coroutine function reporting index lifecycle health.

    The process is "healthy" when the index is READY and "degraded" otherwise.
    A degraded service still answers queries (possibly with no results), so
    the endpoint always responds 200.
    """

    async def health_check(request: Request) -> JSONResponse:
        stats = service.stats.get_stats()
        state = service.index.state
        return JSONResponse(
            {
                "status": "healthy" if state is IndexState.READY else "degraded",
                "version": __version__,
                "index": {
                    "status": state.value,
                    "totalArticles": stats.total_articles,
                    "lastIndexUpdate": stats.last_index_update.isoformat() if stats.last_index_update else None,
                    "lastError": stats.last_error,
                },
            }
        )

    return health_check
