"""
Unit tests for the remote-parent hand-off pattern.
"""

import pytest
from opentelemetry.trace import SpanKind

from spanlinks.observability import NullTracer, same_span
from spanlinks.patterns import remote_parent_handoff


class TestRemoteParentHandoff:
    """Tests for remote_parent_handoff()."""

    @pytest.mark.asyncio
    async def test_child_is_remote_child_of_parent(self, tracer, find_span):
        result = await remote_parent_handoff(tracer, delay=0)

        parent = find_span("ParentRequest")
        child = find_span("AsyncWorkerChild")

        assert same_span(parent.context, result.parent_span_context)
        assert same_span(child.context, result.child_span_context)
        assert child.context.trace_id == parent.context.trace_id
        assert child.parent.span_id == parent.context.span_id
        assert child.parent.is_remote
        assert child.kind is SpanKind.CONSUMER
        assert len(child.links) == 0

    @pytest.mark.asyncio
    async def test_child_starts_after_parent_ended(self, tracer, find_span):
        await remote_parent_handoff(tracer, delay=0.02)

        parent = find_span("ParentRequest")
        child = find_span("AsyncWorkerChild")
        assert parent.end_time <= child.start_time
        assert child.attributes["demo.gap_delay_ms"] == 20
        assert parent.attributes["note"] == "ends immediately"

    @pytest.mark.asyncio
    async def test_gap_measured_with_clock(self, tracer):
        slept: list[float] = []
        ticks = iter([100.0, 102.5])

        async def fake_sleep(seconds: float) -> None:
            slept.append(seconds)

        result = await remote_parent_handoff(
            tracer,
            delay=2.0,
            sleep=fake_sleep,
            clock=lambda: next(ticks),
        )

        assert slept == [2.0]
        assert result.gap_seconds == pytest.approx(2.5)

    @pytest.mark.asyncio
    async def test_null_tracer(self):
        result = await remote_parent_handoff(NullTracer(), delay=0)
        assert not result.parent_span_context.is_valid
        assert not result.child_span_context.is_valid
