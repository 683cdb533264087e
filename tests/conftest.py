"""
Shared pytest fixtures for the spanlinks tests.

This module provides:
- Tracing fixtures (span_exporter, tracer_provider, tracer)
- Span lookup helpers (finished_spans, find_spans, find_span)
- OpenTelemetry metrics fixtures (metric_reader, meter, worker_metrics, collect_metrics)
- Pipeline fixtures (zero_timings, order_queue)

Every test gets its own TracerProvider and MeterProvider. Nothing is
registered globally.
"""

from __future__ import annotations

from collections.abc import Callable, Generator
from typing import Any

import pytest
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import InMemoryMetricReader
from opentelemetry.sdk.trace import ReadableSpan, TracerProvider
from opentelemetry.sdk.trace.export import SimpleSpanProcessor
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter

from spanlinks.config import StepTimings
from spanlinks.observability import OpenTelemetryTracer, WorkerMetrics
from spanlinks.queue import OrderQueue

# ============================================================================
# Tracing Fixtures
# ============================================================================


@pytest.fixture
def span_exporter() -> InMemorySpanExporter:
    """Exporter collecting every span ended during the test."""
    return InMemorySpanExporter()


@pytest.fixture
def tracer_provider(span_exporter: InMemorySpanExporter) -> Generator[TracerProvider, None, None]:
    """SDK TracerProvider exporting synchronously to span_exporter."""
    provider = TracerProvider()
    provider.add_span_processor(SimpleSpanProcessor(span_exporter))
    yield provider
    provider.shutdown()


@pytest.fixture
def tracer(tracer_provider: TracerProvider) -> OpenTelemetryTracer:
    """Tracer bound to the per-test provider."""
    return OpenTelemetryTracer("spanlinks.tests", tracer_provider=tracer_provider)


@pytest.fixture
def finished_spans(span_exporter: InMemorySpanExporter) -> Callable[[], list[ReadableSpan]]:
    """Return a callable listing the spans ended so far."""

    def _finished() -> list[ReadableSpan]:
        return list(span_exporter.get_finished_spans())

    return _finished


@pytest.fixture
def find_spans(span_exporter: InMemorySpanExporter) -> Callable[[str], list[ReadableSpan]]:
    """Return a callable listing the ended spans with a given name."""

    def _find(name: str) -> list[ReadableSpan]:
        return [span for span in span_exporter.get_finished_spans() if span.name == name]

    return _find


@pytest.fixture
def find_span(find_spans: Callable[[str], list[ReadableSpan]]) -> Callable[[str], ReadableSpan]:
    """Return a callable fetching the single ended span with a given name."""

    def _find(name: str) -> ReadableSpan:
        spans = find_spans(name)
        assert len(spans) == 1, f"expected exactly one {name!r} span, found {len(spans)}"
        return spans[0]

    return _find


# ============================================================================
# Metrics Fixtures
# ============================================================================


@pytest.fixture
def metric_reader() -> InMemoryMetricReader:
    """In-memory reader for inspecting collected metrics."""
    return InMemoryMetricReader()


@pytest.fixture
def meter_provider(metric_reader: InMemoryMetricReader) -> Generator[MeterProvider, None, None]:
    provider = MeterProvider(metric_readers=[metric_reader])
    yield provider
    provider.shutdown()


@pytest.fixture
def meter(meter_provider: MeterProvider) -> Any:
    return meter_provider.get_meter("spanlinks.tests")


@pytest.fixture
def worker_metrics(meter: Any) -> WorkerMetrics:
    return WorkerMetrics(meter)


@pytest.fixture
def collect_metrics(metric_reader: InMemoryMetricReader) -> Callable[[], dict[str, list[Any]]]:
    """
    Return a callable collecting data points by metric name.

    Each call triggers a collection, so observable gauges are re-read.
    """

    def _collect() -> dict[str, list[Any]]:
        points: dict[str, list[Any]] = {}
        data = metric_reader.get_metrics_data()
        if data is None:
            return points
        for resource_metrics in data.resource_metrics:
            for scope_metrics in resource_metrics.scope_metrics:
                for metric in scope_metrics.metrics:
                    points.setdefault(metric.name, []).extend(metric.data.data_points)
        return points

    return _collect


# ============================================================================
# Pipeline Fixtures
# ============================================================================


@pytest.fixture
def zero_timings() -> StepTimings:
    """Step timings with no simulated work."""
    return StepTimings.zero()


@pytest.fixture
def order_queue() -> OrderQueue:
    return OrderQueue(capacity=100)
