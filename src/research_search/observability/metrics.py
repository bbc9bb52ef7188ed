"""Search and indexing metrics, exposed to Prometheus and mirrored to OpenTelemetry."""

from __future__ import annotations

from contextlib import contextmanager
import time
from typing import TYPE_CHECKING, Any

from opentelemetry import metrics as otel_metrics
from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import (
    OTLPMetricExporter as GrpcOTLPMetricExporter,
)
from opentelemetry.exporter.otlp.proto.http.metric_exporter import (
    OTLPMetricExporter as HttpOTLPMetricExporter,
)
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
from opentelemetry.sdk.resources import Resource
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Gauge, Histogram, generate_latest

from research_search.config import ObservabilityCollectorConfig


if TYPE_CHECKING:
    from collections.abc import Generator


SERVICE_NAME = "research-search"

_meter_state: dict[str, Any] = {"meter": None, "provider": None, "reader": None}


def init_metrics(
    service_name: str = SERVICE_NAME,
    resource_attributes: dict[str, str] | None = None,
    metric_readers: list[PeriodicExportingMetricReader] | None = None,
) -> MeterProvider:
    """Create the process-wide meter provider once and return it."""
    provider = _meter_state.get("provider")
    if isinstance(provider, MeterProvider):
        return provider

    resource = Resource.create({"service.name": service_name, **(resource_attributes or {})})
    provider = MeterProvider(resource=resource, metric_readers=metric_readers or [])
    otel_metrics.set_meter_provider(provider)
    _meter_state["provider"] = provider
    _meter_state["meter"] = otel_metrics.get_meter(__name__)
    return provider


def _metric_exporter(config: ObservabilityCollectorConfig):
    endpoint = config.collector_endpoint
    if config.otlp_protocol == "grpc":
        return GrpcOTLPMetricExporter(
            endpoint=endpoint,
            headers=config.headers,
            timeout=config.timeout_seconds,
            insecure=config.grpc_insecure,
        )
    if endpoint.endswith("/v1/traces"):
        endpoint = endpoint.removesuffix("/v1/traces") + "/v1/metrics"
    return HttpOTLPMetricExporter(endpoint=endpoint, headers=config.headers, timeout=config.timeout_seconds)


def configure_metrics_exporter(
    config: ObservabilityCollectorConfig | None,
    *,
    service_name: str = SERVICE_NAME,
) -> None:
    """Attach a periodic OTLP reader. A no-op unless export is enabled."""
    if not config or not config.enabled or _meter_state.get("reader") is not None:
        return

    reader = PeriodicExportingMetricReader(_metric_exporter(config))
    resource = Resource.create({"service.name": service_name, **config.resource_attributes})
    # MeterProvider readers are fixed at construction, so export needs a fresh provider
    provider = MeterProvider(resource=resource, metric_readers=[reader])
    otel_metrics.set_meter_provider(provider)
    _meter_state.update(provider=provider, reader=reader, meter=otel_metrics.get_meter(__name__))


def _get_meter():
    if _meter_state.get("meter") is None:
        init_metrics()
    return _meter_state["meter"]


class _BoundMetric:
    def __init__(self, bridge: MetricBridge, labels: dict[str, str]) -> None:
        self._bridge = bridge
        self._labels = labels

    def inc(self, amount: float = 1.0) -> None:
        self._bridge.inc(self._labels, amount)

    def observe(self, value: float) -> None:
        self._bridge.observe(self._labels, value)

    def set(self, value: float) -> None:
        self._bridge.set(self._labels, value)


class MetricBridge:
    """Record a value on a Prometheus metric and its OpenTelemetry twin."""

    def __init__(self, prom_metric: Counter | Histogram | Gauge, *, kind: str) -> None:
        if kind not in {"counter", "histogram", "gauge"}:
            raise ValueError(f"Unknown metric kind: {kind}")
        self._prom_metric = prom_metric
        self._kind = kind
        self._otel_instrument = None
        self._instrument_meter = None
        self._last_values: dict[tuple[tuple[str, str], ...], float] = {}

    @property
    def name(self) -> str:
        return self._prom_metric._name

    def labels(self, **labels: str) -> _BoundMetric:
        return _BoundMetric(self, labels)

    def _instrument(self):
        meter = _get_meter()
        if self._otel_instrument is None or self._instrument_meter is not meter:
            description = self._prom_metric._documentation
            if self._kind == "counter":
                self._otel_instrument = meter.create_counter(self.name, description=description)
            elif self._kind == "histogram":
                self._otel_instrument = meter.create_histogram(self.name, description=description)
            else:
                self._otel_instrument = meter.create_up_down_counter(self.name, description=description)
            self._instrument_meter = meter
        return self._otel_instrument

    def _prom(self, labels: dict[str, str]):
        return self._prom_metric.labels(**labels) if labels else self._prom_metric

    def inc(self, labels: dict[str, str], amount: float = 1.0) -> None:
        self._prom(labels).inc(amount)
        self._instrument().add(amount, labels)

    def observe(self, labels: dict[str, str], value: float) -> None:
        self._prom(labels).observe(value)
        self._instrument().record(value, labels)

    def set(self, labels: dict[str, str], value: float) -> None:
        self._prom(labels).set(value)
        key = tuple(sorted(labels.items()))
        delta = value - self._last_values.get(key, 0.0)
        if delta:
            self._instrument().add(delta, labels)
        self._last_values[key] = value


_LATENCY_BUCKETS = (0.001, 0.0025, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0)
_BUILD_BUCKETS = (0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0)

SEARCH_REQUESTS = MetricBridge(
    Counter("search_requests", "Search subsystem requests", ["operation", "status"]),
    kind="counter",
)

SEARCH_LATENCY = MetricBridge(
    Histogram(
        "search_latency_seconds",
        "Latency of search, suggest and stats operations",
        ["operation"],
        buckets=_LATENCY_BUCKETS,
    ),
    kind="histogram",
)

INDEX_DOC_COUNT = MetricBridge(
    Gauge("index_document_count", "Documents in the published index snapshot"),
    kind="gauge",
)

INDEX_BUILDS = MetricBridge(
    Counter("index_builds", "Index builds and refreshes", ["kind", "status"]),
    kind="counter",
)

INDEX_BUILD_LATENCY = MetricBridge(
    Histogram("index_build_latency_seconds", "Index build duration", ["kind"], buckets=_BUILD_BUCKETS),
    kind="histogram",
)

OTLP_EXPORT_ERRORS = MetricBridge(
    Counter("otlp_export_errors", "OTLP exporter configuration errors", ["protocol"]),
    kind="counter",
)

OTLP_EXPORT_STATUS = MetricBridge(
    Gauge("otlp_exporter_enabled", "OTLP exporter enabled status (1=enabled, 0=disabled)", ["protocol"]),
    kind="gauge",
)


@contextmanager
def track_latency(histogram: MetricBridge, **labels: str) -> Generator[None, None, None]:
    """Observe the wall time of the enclosed block on ``histogram``."""
    start = time.perf_counter()
    try:
        yield
    finally:
        histogram.labels(**labels).observe(time.perf_counter() - start)


def get_metrics() -> bytes:
    return generate_latest()


def get_metrics_content_type() -> str:
    return CONTENT_TYPE_LATEST
