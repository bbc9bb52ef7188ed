"""Main ASGI application entry point.

A thin Starlette adapter over ``SearchService``:

    GET/POST /api/search             ranked search
    GET      /api/search/suggestions autocomplete
    GET      /api/search/popular     popular terms
    GET      /api/search/filters     facet values for the filter UI
    GET      /api/search/stats       index stats
    POST     /api/search/stats       rebuild, then index stats
    POST     /api/search/refresh     incremental refresh
    GET      /health, /metrics

Usage:
    python -m research_search.app
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import datetime
import logging
from typing import Any

import orjson
from pydantic import BaseModel, ConfigDict, field_validator
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel
from starlette.applications import Starlette
from starlette.middleware import Middleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.routing import Route

from research_search.config import Settings
from research_search.domain.model import ensure_aware
from research_search.exceptions import IndexBuildError, ValidationError
from research_search.observability.logging import configure_logging
from research_search.observability.metrics import configure_metrics_exporter, get_metrics, get_metrics_content_type
from research_search.observability.tracing import TraceContextMiddleware, configure_trace_exporter, init_tracing
from research_search.runtime.health import build_health_endpoint
from research_search.service_layer.search_service import SearchService


logger = logging.getLogger(__name__)


class RefreshRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel)

    since: datetime

    @field_validator("since")
    @classmethod
    def _aware(cls, value: datetime) -> datetime:
        return ensure_aware(value)


def _dump(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json", by_alias=True)
    if isinstance(value, list):
        return [_dump(item) for item in value]
    return value


def _int_param(request: Request, name: str) -> int | None:
    raw = request.query_params.get(name)
    if raw is None or raw == "":
        return None
    try:
        return int(raw)
    except ValueError:
        raise ValidationError(f"{name} must be an integer", [f"{name}: must be an integer"]) from None


async def _json_body(request: Request) -> dict[str, Any]:
    body = await request.body()
    if not body:
        return {}
    try:
        payload = orjson.loads(body)
    except orjson.JSONDecodeError:
        raise ValidationError("Request body must be valid JSON") from None
    if not isinstance(payload, dict):
        raise ValidationError("Request body must be a JSON object")
    return payload


def _filters_param(request: Request) -> dict[str, Any] | None:
    raw = request.query_params.get("filters")
    if not raw:
        return None
    try:
        filters = orjson.loads(raw)
    except orjson.JSONDecodeError:
        raise ValidationError("filters must be a JSON object", ["filters: invalid JSON"]) from None
    if not isinstance(filters, dict):
        raise ValidationError("filters must be a JSON object", ["filters: must be an object"])
    return filters


async def _validation_error(request: Request, exc: ValidationError) -> JSONResponse:
    return JSONResponse({"error": str(exc), "details": exc.errors}, status_code=400)


async def _build_error(request: Request, exc: Exception) -> JSONResponse:
    return JSONResponse({"error": "Index build failed", "details": [str(exc)]}, status_code=503)


def create_app(service: SearchService | None = None, settings: Settings | None = None) -> Starlette:
    """Create the Starlette app around ``service`` (built from settings when omitted)."""
    service = service or SearchService.from_settings(settings)

    @asynccontextmanager
    async def lifespan(app: Starlette):
        """Build the index before serving traffic; a failed build still serves."""
        app.state.search_service = service
        try:
            await service.initialize_index()
        except IndexBuildError as exc:
            logger.error("Initial index build failed; serving degraded: %s", exc)
        try:
            yield
        finally:
            await service.aclose()

    async def search_endpoint(request: Request) -> JSONResponse:
        if request.method == "POST":
            body = await _json_body(request)
            response = await service.search(
                body.get("query", ""),
                limit=body.get("limit"),
                offset=body.get("offset", 0),
                filters=body.get("filters"),
            )
        else:
            offset = _int_param(request, "offset")
            response = await service.search(
                request.query_params.get("q", ""),
                limit=_int_param(request, "limit"),
                offset=0 if offset is None else offset,
                filters=_filters_param(request),
            )
        return JSONResponse(_dump(response))

    def suggestions_endpoint(request: Request) -> JSONResponse:
        suggestions = service.suggest(request.query_params.get("q", ""), _int_param(request, "limit"))
        return JSONResponse({"suggestions": suggestions})

    def popular_endpoint(request: Request) -> JSONResponse:
        return JSONResponse({"terms": _dump(service.popular_terms(_int_param(request, "limit")))})

    def filters_endpoint(request: Request) -> JSONResponse:
        return JSONResponse(_dump(service.filter_options()))

    async def stats_endpoint(request: Request) -> JSONResponse:
        if request.method == "POST":
            await service.initialize_index()
        return JSONResponse(_dump(service.get_stats()))

    async def refresh_endpoint(request: Request) -> JSONResponse:
        try:
            body = RefreshRequest.model_validate(await _json_body(request))
        except PydanticValidationError as exc:
            raise ValidationError.from_pydantic(exc) from exc
        changed = await service.refresh_index(body.since)
        return JSONResponse({"documentsUpdated": changed})

    def metrics_endpoint(request: Request) -> Response:
        return Response(get_metrics(), media_type=get_metrics_content_type())

    routes = [
        Route("/health", endpoint=build_health_endpoint(service), methods=["GET"]),
        Route("/metrics", endpoint=metrics_endpoint, methods=["GET"]),
        Route("/api/search", endpoint=search_endpoint, methods=["GET", "POST"]),
        Route("/api/search/suggestions", endpoint=suggestions_endpoint, methods=["GET"]),
        Route("/api/search/popular", endpoint=popular_endpoint, methods=["GET"]),
        Route("/api/search/filters", endpoint=filters_endpoint, methods=["GET"]),
        Route("/api/search/stats", endpoint=stats_endpoint, methods=["GET", "POST"]),
        Route("/api/search/refresh", endpoint=refresh_endpoint, methods=["POST"]),
    ]

    return Starlette(
        debug=service.settings.log_level.lower() == "debug",
        routes=routes,
        middleware=[Middleware(TraceContextMiddleware)],
        exception_handlers={ValidationError: _validation_error, IndexBuildError: _build_error},
        lifespan=lifespan,
    )


def main() -> None:
    """Run the search API under uvicorn."""
    import uvicorn

    try:
        settings = Settings()
    except PydanticValidationError as exc:
        configure_logging()
        logger.error("Configuration is invalid: %s", exc)
        return

    configure_logging(settings.log_level, settings.log_json, logger_levels={"uvicorn.error": settings.log_level})
    init_tracing(resource_attributes=settings.observability.resource_attributes)
    configure_trace_exporter(settings.observability)
    configure_metrics_exporter(settings.observability)

    app = create_app(settings=settings)

    logger.info("Starting research search on %s:%d", settings.host, settings.port)
    logger.info("Health check: http://%s:%d/health", settings.host, settings.port)

    uvicorn.run(
        app,
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
        log_config=None,  # Don't let uvicorn override our logging config
    )


if __name__ == "__main__":
    main()
