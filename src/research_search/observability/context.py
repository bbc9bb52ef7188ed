"""Per-request log context (trace ids and request fields) carried across awaits."""

from __future__ import annotations

from contextvars import ContextVar
from typing import Any
from uuid import uuid4


log_context: ContextVar[dict[str, Any] | None] = ContextVar("log_context", default=None)


def generate_trace_id() -> str:
    """Generate a 32-char hex trace ID."""
    return uuid4().hex


def generate_span_id() -> str:
    """Generate a 16-char hex span ID."""
    return uuid4().hex[:16]


def get_trace_context() -> dict[str, Any]:
    """Return the current context, creating trace and span ids on first use."""
    ctx = log_context.get()
    if ctx is None or not ctx.get("trace_id"):
        ctx = {"trace_id": generate_trace_id(), "span_id": generate_span_id()}
        log_context.set(ctx)
    return ctx


def set_trace_context(trace_id: str, span_id: str, **extra: Any) -> None:
    """Replace the context for the current task."""
    log_context.set({"trace_id": trace_id, "span_id": span_id, **extra})


def bind_log_fields(**fields: Any) -> None:
    """Add fields (e.g. the search operation) to every log line in this context."""
    log_context.set({**get_trace_context(), **fields})


def update_span_id(span_id: str) -> None:
    """Update span_id while preserving the rest of the context."""
    log_context.set({**(log_context.get() or {}), "span_id": span_id})
