"""
Trace carrier codec.

Encodes a span's identity into a fixed textual token that can ride inside a
message payload, and decodes it back on the consumer side so the consumer
can link to the producer span.

The token follows the W3C ``traceparent`` layout::

    00-<32 lowercase hex trace id>-<16 lowercase hex span id>-<2 hex flags>

Decoding is best-effort: a malformed carrier yields the invalid span
context (all-zero identities) and ``ok=False``. Callers log and continue
without a link rather than failing the message.

Example:
    >>> carrier = encode_carrier(span.get_span_context())
    >>> span_context, ok = decode_carrier(carrier)
    >>> if ok:
    ...     link = build_link(span_context, {"link.type": "queue_consumption"})
"""

from __future__ import annotations

import logging
import re

from opentelemetry.trace import (
    INVALID_SPAN_CONTEXT,
    SpanContext,
    TraceFlags,
    TraceState,
    format_span_id,
    format_trace_id,
)

logger = logging.getLogger(__name__)

CARRIER_VERSION = "00"

CARRIER_LENGTH = 55
"""Length of an encoded carrier including the flags segment."""

MIN_CARRIER_LENGTH = 53
"""Shortest carrier accepted by decode_carrier (flags segment optional)."""

_TRACE_ID_SLICE = slice(3, 35)
_SPAN_ID_SLICE = slice(36, 52)

_TRACE_ID_PATTERN = re.compile(r"[0-9a-f]{32}")
_SPAN_ID_PATTERN = re.compile(r"[0-9a-f]{16}")


def encode_carrier(span_context: SpanContext) -> str:
    """
    Encode a span context as a 55-character carrier token.

    No validation is performed: span context fields are fixed-width by
    construction, so the invalid context encodes to an all-zero token that
    decode_carrier rejects.

    Args:
        span_context: Span identity to encode

    Returns:
        The carrier string
    """
    return (
        f"{CARRIER_VERSION}-{format_trace_id(span_context.trace_id)}"
        f"-{format_span_id(span_context.span_id)}-{span_context.trace_flags:02x}"
    )


def decode_carrier(
    carrier: str | None,
    trace_state: str | None = None,
) -> tuple[SpanContext, bool]:
    """
    Decode a carrier token into a remote span context.

    The decoded context is marked remote and always sampled. Failures are
    logged and reported through the second tuple element; this function
    never raises.

    Args:
        carrier: Carrier token produced by encode_carrier
        trace_state: Optional W3C ``tracestate`` header value

    Returns:
        Tuple of (span context, ok). On failure the context is
        INVALID_SPAN_CONTEXT and ok is False.
    """
    if not carrier or len(carrier) < MIN_CARRIER_LENGTH:
        logger.debug(
            "Trace carrier too short to decode",
            extra={"carrier_length": len(carrier) if carrier else 0},
        )
        return INVALID_SPAN_CONTEXT, False

    trace_id_hex = carrier[_TRACE_ID_SLICE]
    span_id_hex = carrier[_SPAN_ID_SLICE]

    trace_id = _parse_hex_id(trace_id_hex, _TRACE_ID_PATTERN)
    if trace_id is None:
        logger.warning(
            "Failed to parse trace ID from message carrier",
            extra={"trace_id": trace_id_hex},
        )
        return INVALID_SPAN_CONTEXT, False

    span_id = _parse_hex_id(span_id_hex, _SPAN_ID_PATTERN)
    if span_id is None:
        logger.warning(
            "Failed to parse span ID from message carrier",
            extra={"span_id": span_id_hex},
        )
        return INVALID_SPAN_CONTEXT, False

    return (
        SpanContext(
            trace_id=trace_id,
            span_id=span_id,
            is_remote=True,
            trace_flags=TraceFlags(TraceFlags.SAMPLED),
            trace_state=_parse_trace_state(trace_state),
        ),
        True,
    )


def _parse_hex_id(value: str, pattern: re.Pattern[str]) -> int | None:
    # All-zero identities are the invalid sentinel and are rejected too
    if not pattern.fullmatch(value):
        return None
    parsed = int(value, 16)
    return parsed or None


def _parse_trace_state(trace_state: str | None) -> TraceState:
    if not trace_state:
        return TraceState()
    return TraceState.from_header([trace_state])


def encode_trace_state(span_context: SpanContext) -> str:
    """Return the W3C ``tracestate`` header for a span context ('' if empty)."""
    return span_context.trace_state.to_header() if span_context.trace_state else ""


def same_span(a: SpanContext, b: SpanContext) -> bool:
    """
    Compare two span contexts by identity.

    SpanContext equality in OpenTelemetry also compares the remote marker,
    flags and trace state. Span identity is the (trace id, span id) pair.
    """
    return a.trace_id == b.trace_id and a.span_id == b.span_id


__all__ = [
    "CARRIER_LENGTH",
    "MIN_CARRIER_LENGTH",
    "encode_carrier",
    "decode_carrier",
    "encode_trace_state",
    "same_span",
]
