"""
Message types carried by the order queue and the forward-link channel.

Orders are immutable records. Binding a trace carrier returns a new copy,
so the order a caller created is never mutated by publishing it.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Self
from uuid import uuid4

from opentelemetry.trace import SpanContext, format_span_id
from pydantic import BaseModel, ConfigDict, Field

from spanlinks.observability.carrier import decode_carrier, encode_carrier, encode_trace_state


class Order(BaseModel):
    """
    An order message flowing from the producer to the workers.

    The trace fields are empty until the order is published. Publishing
    binds the identity of the span that published it, which is what lets a
    worker link back to the producer across the queue boundary.

    Attributes:
        id: Order identifier (non-empty for a well-formed message)
        customer_id: Customer the order belongs to
        amount: Order amount
        created_at: When the order was created (UTC timestamp)
        trace_parent: Carrier token of the publishing span
        trace_state: W3C tracestate of the publishing span
        original_span_id: Hex span id of the publishing span (diagnostic)

    Example:
        >>> order = Order.create(0)
        >>> order.id.startswith("ORDER-")
        True
        >>> order.trace_parent
        ''
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Order identifier")
    customer_id: str = Field(default="", description="Customer identifier")
    amount: float = Field(default=0.0, description="Order amount")
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        description="When the order was created (UTC)",
    )

    # Trace carrier
    trace_parent: str = Field(default="", description="Carrier of the publishing span")
    trace_state: str = Field(default="", description="tracestate of the publishing span")
    original_span_id: str = Field(default="", description="Span id of the publishing span")

    @classmethod
    def create(cls, index: int) -> Self:
        """
        Build the order at position ``index`` of a demo batch.

        Args:
            index: Zero-based position of the order in its batch

        Returns:
            A new unbound order
        """
        return cls(
            id=f"ORDER-{uuid4().hex[:8]}",
            customer_id=f"CUST-{1000 + index}",
            amount=100.0 + float(index) * 10.0,
        )

    def with_trace_carrier(self, span_context: SpanContext) -> Self:
        """Return a copy bound to the given span's identity."""
        return self.model_copy(
            update={
                "trace_parent": encode_carrier(span_context),
                "trace_state": encode_trace_state(span_context),
                "original_span_id": format_span_id(span_context.span_id),
            }
        )

    def span_context(self) -> tuple[SpanContext, bool]:
        """Decode the embedded carrier. See decode_carrier."""
        return decode_carrier(self.trace_parent, self.trace_state)

    def to_payload(self) -> str:
        """Serialize to a JSON payload."""
        return self.model_dump_json()

    @classmethod
    def from_payload(cls, payload: str | bytes) -> Self:
        """Deserialize from a JSON payload produced by to_payload."""
        return cls.model_validate_json(payload)


@dataclass(frozen=True)
class OrderSpanContext:
    """
    Forward-link record sent by a worker after it finished an order.

    Attributes:
        order_id: ID of the processed order
        span_context: Context of the worker's consumer span
    """

    order_id: str
    span_context: SpanContext


__all__ = ["Order", "OrderSpanContext"]
