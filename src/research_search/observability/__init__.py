"""Structured logging, tracing and metrics for the search service."""

from research_search.observability.context import bind_log_fields, get_trace_context, set_trace_context
from research_search.observability.logging import JsonFormatter, configure_logging
from research_search.observability.metrics import (
    INDEX_BUILD_LATENCY,
    INDEX_BUILDS,
    INDEX_DOC_COUNT,
    SEARCH_LATENCY,
    SEARCH_REQUESTS,
    configure_metrics_exporter,
    get_metrics,
    get_metrics_content_type,
    init_metrics,
    track_latency,
)
from research_search.observability.tracing import (
    TraceContextMiddleware,
    configure_trace_exporter,
    create_span,
    get_tracer,
    init_tracing,
)


__all__ = [
    "INDEX_BUILDS",
    "INDEX_BUILD_LATENCY",
    "INDEX_DOC_COUNT",
    "SEARCH_LATENCY",
    "SEARCH_REQUESTS",
    "JsonFormatter",
    "TraceContextMiddleware",
    "bind_log_fields",
    "configure_logging",
    "configure_metrics_exporter",
    "configure_trace_exporter",
    "create_span",
    "get_metrics",
    "get_metrics_content_type",
    "get_trace_context",
    "get_tracer",
    "init_metrics",
    "init_tracing",
    "set_trace_context",
    "track_latency",
]
