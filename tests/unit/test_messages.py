"""
Unit tests for Order and OrderSpanContext.
"""

import re

import pytest
from opentelemetry.trace import format_span_id
from pydantic import ValidationError

from spanlinks.messages import Order, OrderSpanContext
from spanlinks.observability import encode_carrier, same_span


class TestOrderCreate:
    """Tests for Order.create()."""

    def test_demo_fields(self):
        order = Order.create(2)
        assert re.fullmatch(r"ORDER-[0-9a-f]{8}", order.id)
        assert order.customer_id == "CUST-1002"
        assert order.amount == 120.0

    def test_unbound(self):
        order = Order.create(0)
        assert order.trace_parent == ""
        assert order.trace_state == ""
        assert order.original_span_id == ""

    def test_unique_ids(self):
        ids = {Order.create(i).id for i in range(50)}
        assert len(ids) == 50

    def test_created_at_is_utc(self):
        assert Order.create(0).created_at.utcoffset().total_seconds() == 0


class TestOrderTraceCarrier:
    """Tests for binding and reading the trace carrier."""

    def test_with_trace_carrier_returns_bound_copy(self, tracer):
        order = Order.create(0)
        span = tracer.start_span("PublishOrder")
        span.end()
        span_context = span.get_span_context()

        bound = order.with_trace_carrier(span_context)

        assert bound is not order
        assert order.trace_parent == ""
        assert bound.id == order.id
        assert bound.trace_parent == encode_carrier(span_context)
        assert bound.original_span_id == format_span_id(span_context.span_id)

    def test_span_context_decodes_carrier(self, tracer):
        span = tracer.start_span("PublishOrder")
        span.end()

        decoded, ok = Order.create(0).with_trace_carrier(span.get_span_context()).span_context()

        assert ok is True
        assert decoded.is_remote
        assert same_span(decoded, span.get_span_context())

    def test_unbound_span_context_is_invalid(self):
        decoded, ok = Order.create(0).span_context()
        assert ok is False
        assert not decoded.is_valid

    def test_frozen(self):
        order = Order.create(0)
        with pytest.raises(ValidationError):
            order.amount = 1.0  # type: ignore[misc]


class TestOrderPayload:
    """Tests for JSON payload serialization."""

    def test_payload_preserves_carrier(self, tracer):
        span = tracer.start_span("PublishOrder")
        span.end()
        bound = Order.create(3).with_trace_carrier(span.get_span_context())

        restored = Order.from_payload(bound.to_payload())

        assert restored == bound
        decoded, ok = restored.span_context()
        assert ok
        assert same_span(decoded, span.get_span_context())

    def test_payload_accepts_bytes(self):
        order = Order.create(1)
        assert Order.from_payload(order.to_payload().encode()) == order

    def test_missing_id_rejected(self):
        with pytest.raises(ValidationError):
            Order.from_payload('{"customer_id": "CUST-1"}')


class TestOrderSpanContext:
    def test_fields(self, tracer):
        span = tracer.start_span("ProcessOrder")
        span.end()
        record = OrderSpanContext("ORDER-1", span.get_span_context())
        assert record.order_id == "ORDER-1"
        assert same_span(record.span_context, span.get_span_context())
