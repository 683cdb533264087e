"""
Tracer provider bootstrap for the runnable examples.

Exporter endpoints, headers and credentials are left to the deployment.
This module only builds an SDK TracerProvider around a span exporter.
"""

from __future__ import annotations

import logging

from opentelemetry import trace
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import (
    BatchSpanProcessor,
    ConsoleSpanExporter,
    SimpleSpanProcessor,
    SpanExporter,
)
from opentelemetry.sdk.trace.sampling import ALWAYS_ON

from spanlinks import __version__

logger = logging.getLogger(__name__)

DEFAULT_SERVICE_NAME = "span-links-demo"


def configure_tracing(
    service_name: str = DEFAULT_SERVICE_NAME,
    exporter: SpanExporter | None = None,
    *,
    set_global: bool = False,
    batch: bool = False,
) -> TracerProvider:
    """
    Build a TracerProvider that samples every span.

    Args:
        service_name: Value of the ``service.name`` resource attribute
        exporter: Span exporter (default: ConsoleSpanExporter)
        set_global: Also register the provider as the global provider
        batch: Export through a BatchSpanProcessor instead of exporting each
            span as it ends

    Returns:
        The configured provider. Pass it to shutdown_tracing() when done.

    Example:
        >>> provider = configure_tracing("orders", InMemorySpanExporter())
        >>> tracer = OpenTelemetryTracer(__name__, tracer_provider=provider)
    """
    resource = Resource.create(
        {
            "service.name": service_name,
            "service.version": __version__,
            "environment": "demo",
        }
    )
    provider = TracerProvider(resource=resource, sampler=ALWAYS_ON)

    exporter = exporter or ConsoleSpanExporter()
    processor = BatchSpanProcessor(exporter) if batch else SimpleSpanProcessor(exporter)
    provider.add_span_processor(processor)

    if set_global:
        trace.set_tracer_provider(provider)

    logger.info(
        f"Tracing configured for {service_name}",
        extra={"service_name": service_name, "exporter": type(exporter).__name__},
    )
    return provider


def shutdown_tracing(provider: TracerProvider) -> None:
    """Flush pending spans and shut the provider down."""
    if not provider.force_flush():
        logger.warning("Timed out flushing spans before shutdown")
    provider.shutdown()


__all__ = ["DEFAULT_SERVICE_NAME", "configure_tracing", "shutdown_tracing"]
