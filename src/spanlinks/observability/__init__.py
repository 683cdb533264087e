"""
Observability utilities for spanlinks.

This module provides the injected tracer capability, the trace carrier
codec, worker metrics, and standard attribute definitions for consistent
span links across all spanlinks components.

Example:
    >>> from spanlinks.observability import create_tracer, decode_carrier, build_link
    >>>
    >>> class MyConsumer:
    ...     def __init__(self, enable_tracing: bool = True):
    ...         self._tracer = create_tracer(__name__, enable_tracing)
    ...         self._enable_tracing = self._tracer.enabled
    ...
    ...     def handle(self, order):
    ...         producer_context, ok = decode_carrier(order.trace_parent)
    ...         links = [build_link(producer_context)] if ok else []
    ...         with self._tracer.span_with_kind("ProcessOrder", links=links):
    ...             pass
"""

from spanlinks.observability.attributes import (
    ATTR_BATCH_SIZE,
    ATTR_CUSTOMER_ID,
    ATTR_ERROR_TYPE,
    ATTR_LINK_DIRECTION,
    ATTR_LINK_TRACE_RELATIONSHIP,
    ATTR_LINK_TYPE,
    ATTR_ORDER_AMOUNT,
    ATTR_ORDER_ID,
    ATTR_PROCESSING_STEP,
    ATTR_SOURCE_SERVICE,
    ATTR_WORKER_ID,
    LINK_DIRECTION_BACKWARD,
    LINK_DIRECTION_FORWARD,
)
from spanlinks.observability.carrier import (
    CARRIER_LENGTH,
    MIN_CARRIER_LENGTH,
    decode_carrier,
    encode_carrier,
    encode_trace_state,
    same_span,
)
from spanlinks.observability.metrics import WorkerMetrics
from spanlinks.observability.tracer import (
    NullTracer,
    OpenTelemetryTracer,
    SpanKindEnum,
    Tracer,
    build_link,
    collect_links,
    create_tracer,
)

__all__ = [
    # Tracer (composition-based API)
    "Tracer",
    "NullTracer",
    "OpenTelemetryTracer",
    "SpanKindEnum",
    "create_tracer",
    "build_link",
    "collect_links",
    # Carrier codec
    "CARRIER_LENGTH",
    "MIN_CARRIER_LENGTH",
    "encode_carrier",
    "decode_carrier",
    "encode_trace_state",
    "same_span",
    # Metrics
    "WorkerMetrics",
    # Attributes
    "ATTR_ORDER_ID",
    "ATTR_CUSTOMER_ID",
    "ATTR_ORDER_AMOUNT",
    "ATTR_BATCH_SIZE",
    "ATTR_WORKER_ID",
    "ATTR_PROCESSING_STEP",
    "ATTR_ERROR_TYPE",
    "ATTR_LINK_TYPE",
    "ATTR_LINK_DIRECTION",
    "ATTR_LINK_TRACE_RELATIONSHIP",
    "ATTR_SOURCE_SERVICE",
    "LINK_DIRECTION_BACKWARD",
    "LINK_DIRECTION_FORWARD",
]
