"""
Tracer protocol and implementations for composition-based tracing.

This module provides a tracer abstraction that is injected into components
as a dependency, so no component reads the process-wide tracer provider on
its own. Every span operation spanlinks needs (start with kind, attributes
and links; record error; add event; set status; add link; end; read own
identity) goes through the span handles returned here.

Example:
    >>> from spanlinks.observability import create_tracer, NullTracer
    >>>
    >>> # Create tracer based on configuration
    >>> tracer = create_tracer(__name__, enable_tracing=True)
    >>>
    >>> # Or explicitly use NullTracer for testing
    >>> tracer = NullTracer()
    >>>
    >>> # Use in component
    >>> class MyQueue:
    ...     def __init__(self, tracer: Tracer | None = None):
    ...         self._tracer = tracer or NullTracer()
    ...
    ...     async def publish(self, order_id: str) -> None:
    ...         with self._tracer.span("queue.publish", {"order.id": order_id}):
    ...             await self._do_publish(order_id)
"""

from __future__ import annotations

import contextlib
from collections.abc import Generator, Iterable, Mapping, Sequence
from contextlib import AbstractContextManager
from enum import Enum
from typing import Any, Protocol, runtime_checkable

from opentelemetry import trace
from opentelemetry.context import Context
from opentelemetry.trace import Link, Span, SpanContext, SpanKind, TracerProvider

Attributes = Mapping[str, Any]


class SpanKindEnum(Enum):
    """
    Span kinds for distributed tracing.

    Used to indicate the role a span plays in a trace. Maps to
    OpenTelemetry's SpanKind.

    Values:
        INTERNAL: Default span kind for internal operations
        PRODUCER: For producer/publisher operations (e.g., publishing to a queue)
        CONSUMER: For consumer/subscriber operations (e.g., receiving from a queue)
        CLIENT: For client operations (e.g., querying a shard)
        SERVER: For server operations (e.g., handling HTTP requests)
    """

    INTERNAL = "internal"
    PRODUCER = "producer"
    CONSUMER = "consumer"
    CLIENT = "client"
    SERVER = "server"

    def to_otel(self) -> SpanKind:
        """Return the matching OpenTelemetry SpanKind."""
        return _KIND_MAPPING[self]


_KIND_MAPPING: dict[SpanKindEnum, SpanKind] = {
    SpanKindEnum.INTERNAL: SpanKind.INTERNAL,
    SpanKindEnum.PRODUCER: SpanKind.PRODUCER,
    SpanKindEnum.CONSUMER: SpanKind.CONSUMER,
    SpanKindEnum.CLIENT: SpanKind.CLIENT,
    SpanKindEnum.SERVER: SpanKind.SERVER,
}


def build_link(
    span_context: SpanContext | None,
    attributes: Attributes | None = None,
) -> Link | None:
    """
    Build a span link, or None when the target cannot be linked.

    A link target must be a valid span context. The invalid sentinel (as
    produced by a failed carrier decode) is dropped here so it never reaches
    a span.

    Args:
        span_context: Link target
        attributes: Link attributes (optional)

    Returns:
        The Link, or None if the target is missing or invalid
    """
    if span_context is None or not span_context.is_valid:
        return None
    return Link(span_context, dict(attributes) if attributes else None)


def collect_links(
    targets: Iterable[tuple[SpanContext | None, Attributes | None]],
) -> list[Link]:
    """
    Build links for every valid target, skipping invalid ones.

    Args:
        targets: Pairs of (span context, link attributes)

    Returns:
        Links for the valid targets, in input order
    """
    links: list[Link] = []
    for span_context, attributes in targets:
        link = build_link(span_context, attributes)
        if link is not None:
            links.append(link)
    return links


@runtime_checkable
class Tracer(Protocol):
    """
    Protocol for tracers that can create tracing spans.

    Tracers are injected into components as dependencies, enabling
    composition-based tracing.

    Implementations:
    - NullTracer: No-op tracer for when tracing is disabled
    - OpenTelemetryTracer: Wrapper around OpenTelemetry tracer
    """

    def span(
        self,
        name: str,
        attributes: Attributes | None = None,
    ) -> AbstractContextManager[Span]:
        """
        Create a span context manager that makes the span current.

        Args:
            name: Span name (e.g., "ValidateOrder")
            attributes: Span attributes (optional)

        Returns:
            Context manager that yields the Span and ends it on exit
        """
        ...

    @property
    def enabled(self) -> bool:
        """
        Check if tracing is enabled.

        Returns:
            True if tracing is active and will create real spans
        """
        ...

    def start_span(
        self,
        name: str,
        kind: SpanKindEnum = SpanKindEnum.INTERNAL,
        attributes: Attributes | None = None,
        context: Context | None = None,
        links: Sequence[Link] | None = None,
    ) -> Span:
        """
        Start a new span that the caller must end.

        Unlike the `span()` context manager, the returned span is not made
        current and must be manually ended by calling `span.end()`. This is
        what the producer uses for item spans that stay open until a forward
        link arrives.

        Args:
            name: Span name (e.g., "PublishOrderBatch")
            kind: The span kind (PRODUCER, CONSUMER, etc.)
            attributes: Span attributes (optional)
            context: Parent context. Pass an empty ``Context()`` to start a
                new trace regardless of the ambient span.
            links: Links attached at creation (optional)

        Returns:
            The started Span. Caller MUST call span.end().

        Example:
            >>> span = tracer.start_span(
            ...     "PublishOrderBatch",
            ...     kind=SpanKindEnum.PRODUCER,
            ...     attributes={"order.batch.size": 10},
            ... )
            >>> try:
            ...     publish_all()
            ... finally:
            ...     span.end()
        """
        ...

    def span_with_kind(
        self,
        name: str,
        kind: SpanKindEnum = SpanKindEnum.INTERNAL,
        attributes: Attributes | None = None,
        context: Context | None = None,
        links: Sequence[Link] | None = None,
    ) -> AbstractContextManager[Span]:
        """
        Create a span context manager with SpanKind, parent and links.

        Like `span()` but allows specifying the span kind, an explicit parent
        context and links. Exceptions escaping the block are recorded on
        the span and set its status to ERROR.

        Args:
            name: Span name
            kind: The span kind (PRODUCER, CONSUMER, etc.)
            attributes: Span attributes (optional)
            context: Parent context (optional)
            links: Links attached at creation (optional)

        Returns:
            Context manager that yields the Span
        """
        ...


class NullTracer:
    """
    No-op tracer implementation for when tracing is disabled.

    Hands out OpenTelemetry's invalid non-recording span, which accepts
    every span operation as a no-op and reports the invalid span context.
    Orders published through a NullTracer therefore carry a carrier that
    decodes to the invalid sentinel, and consumers create no links.

    Example:
        >>> tracer = NullTracer()
        >>> with tracer.span("operation"):  # Does nothing
        ...     do_work()
        >>> tracer.enabled  # False
    """

    @contextlib.contextmanager
    def span(
        self,
        name: str,
        attributes: Attributes | None = None,
    ) -> Generator[Span, None, None]:
        """Create a no-op span context (yields the invalid span)."""
        yield trace.INVALID_SPAN

    @property
    def enabled(self) -> bool:
        """Always returns False for NullTracer."""
        return False

    def start_span(
        self,
        name: str,
        kind: SpanKindEnum = SpanKindEnum.INTERNAL,
        attributes: Attributes | None = None,
        context: Context | None = None,
        links: Sequence[Link] | None = None,
    ) -> Span:
        """Return the invalid span (no-op for disabled tracing)."""
        return trace.INVALID_SPAN

    @contextlib.contextmanager
    def span_with_kind(
        self,
        name: str,
        kind: SpanKindEnum = SpanKindEnum.INTERNAL,
        attributes: Attributes | None = None,
        context: Context | None = None,
        links: Sequence[Link] | None = None,
    ) -> Generator[Span, None, None]:
        """Create a no-op span context with kind (yields the invalid span)."""
        yield trace.INVALID_SPAN


class OpenTelemetryTracer:
    """
    OpenTelemetry tracer implementation.

    Wraps the OpenTelemetry tracer API to conform to our Tracer protocol.

    Args:
        tracer_name: Name for the tracer (typically __name__)
        tracer_provider: Provider to obtain the tracer from. Defaults to the
            globally registered provider.

    Example:
        >>> provider = configure_tracing("orders")
        >>> tracer = OpenTelemetryTracer(__name__, tracer_provider=provider)
        >>> with tracer.span("operation"):
        ...     do_work()
    """

    def __init__(
        self,
        tracer_name: str,
        tracer_provider: TracerProvider | None = None,
    ) -> None:
        self._tracer = trace.get_tracer(tracer_name, tracer_provider=tracer_provider)

    def span(
        self,
        name: str,
        attributes: Attributes | None = None,
    ) -> AbstractContextManager[Span]:
        """
        Create an OpenTelemetry span context.

        Args:
            name: Span name
            attributes: Span attributes (optional)

        Returns:
            Context manager yielding the OpenTelemetry Span
        """
        return self._tracer.start_as_current_span(
            name,
            attributes=dict(attributes or {}),
        )

    @property
    def enabled(self) -> bool:
        """Always returns True for OpenTelemetryTracer."""
        return True

    def start_span(
        self,
        name: str,
        kind: SpanKindEnum = SpanKindEnum.INTERNAL,
        attributes: Attributes | None = None,
        context: Context | None = None,
        links: Sequence[Link] | None = None,
    ) -> Span:
        """
        Start a new span with SpanKind and links.

        Args:
            name: Span name
            kind: The span kind (PRODUCER, CONSUMER, etc.)
            attributes: Span attributes (optional)
            context: Parent context (optional)
            links: Links attached at creation (optional)

        Returns:
            The OpenTelemetry Span. Caller MUST call span.end().
        """
        return self._tracer.start_span(
            name,
            context=context,
            kind=kind.to_otel(),
            attributes=dict(attributes or {}),
            links=list(links or ()),
        )

    def span_with_kind(
        self,
        name: str,
        kind: SpanKindEnum = SpanKindEnum.INTERNAL,
        attributes: Attributes | None = None,
        context: Context | None = None,
        links: Sequence[Link] | None = None,
    ) -> AbstractContextManager[Span]:
        """
        Create an OpenTelemetry span context with SpanKind.

        Args:
            name: Span name
            kind: The span kind (PRODUCER, CONSUMER, etc.)
            attributes: Span attributes (optional)
            context: Parent context (optional)
            links: Links attached at creation (optional)

        Returns:
            Context manager yielding the OpenTelemetry Span
        """
        return self._tracer.start_as_current_span(
            name,
            context=context,
            kind=kind.to_otel(),
            attributes=dict(attributes or {}),
            links=list(links or ()),
        )


def create_tracer(
    name: str,
    enable_tracing: bool = True,
    tracer_provider: TracerProvider | None = None,
) -> Tracer:
    """
    Factory function to create the appropriate tracer.

    Args:
        name: Tracer name (typically __name__)
        enable_tracing: Whether tracing should be enabled (default True)
        tracer_provider: Provider to obtain the tracer from (optional)

    Returns:
        OpenTelemetryTracer if enabled, NullTracer otherwise

    Example:
        >>> # In component constructor
        >>> def __init__(self, tracer: Tracer | None = None, enable_tracing: bool = True):
        ...     self._tracer = tracer or create_tracer(__name__, enable_tracing)
    """
    if enable_tracing:
        return OpenTelemetryTracer(name, tracer_provider=tracer_provider)
    return NullTracer()


__all__ = [
    "Tracer",
    "NullTracer",
    "OpenTelemetryTracer",
    "SpanKindEnum",
    "build_link",
    "collect_links",
    "create_tracer",
]
