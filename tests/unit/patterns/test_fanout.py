"""
Unit tests for the fan-out pattern.
"""

import asyncio

import pytest

from spanlinks.observability import NullTracer, same_span
from spanlinks.patterns import DEFAULT_ITEMS, fan_out


async def no_sleep(seconds: float) -> None:
    return None


class TestFanOut:
    """Tests for fan_out()."""

    @pytest.mark.asyncio
    async def test_one_child_per_item(self, tracer, find_span, find_spans):
        result = await fan_out(tracer, sleep=no_sleep)

        root = find_span("CreateBatch")
        assert root.attributes["batch.id"] == result.batch_id
        assert root.attributes["batch.size"] == len(DEFAULT_ITEMS)

        children = find_spans("ProcessItem")
        assert len(children) == len(DEFAULT_ITEMS)
        assert len(result.item_span_contexts) == len(DEFAULT_ITEMS)
        assert {span.attributes["item.id"] for span in children} == set(DEFAULT_ITEMS)

    @pytest.mark.asyncio
    async def test_children_link_back_to_root_in_new_traces(self, tracer, find_span, find_spans):
        result = await fan_out(tracer, ["a", "b", "c"], sleep=no_sleep)

        root = find_span("CreateBatch")
        assert same_span(root.context, result.root_span_context)

        trace_ids = set()
        for child in find_spans("ProcessItem"):
            assert child.parent is None
            assert child.context.trace_id != root.context.trace_id
            trace_ids.add(child.context.trace_id)

            (link,) = child.links
            assert same_span(link.context, root.context)
            assert link.attributes["link.type"] == "fan_out"
            assert link.attributes["batch.id"] == result.batch_id
            assert link.attributes["item.index"] == child.attributes["item.index"]

        assert len(trace_ids) == 3

    @pytest.mark.asyncio
    async def test_root_ends_after_children(self, tracer, find_span, find_spans):
        await fan_out(tracer, ["a", "b"], item_delay=0.01)

        root = find_span("CreateBatch")
        assert all(child.end_time <= root.end_time for child in find_spans("ProcessItem"))

    @pytest.mark.asyncio
    async def test_events(self, tracer, find_span, find_spans):
        await fan_out(tracer, ["a", "b"], sleep=no_sleep)

        (event,) = find_span("CreateBatch").events
        assert event.name == "Batch processing completed"
        assert event.attributes["processed.count"] == 2

        for child in find_spans("ProcessItem"):
            assert [e.name for e in child.events] == ["Item processed"]
            assert child.events[0].attributes["item.status"] == "completed"

    @pytest.mark.asyncio
    async def test_items_run_concurrently(self, tracer):
        in_flight = 0
        peak = 0

        async def tracking_sleep(seconds: float) -> None:
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0)
            in_flight -= 1

        await fan_out(tracer, ["a", "b", "c"], sleep=tracking_sleep)
        assert peak == 3

    @pytest.mark.asyncio
    async def test_null_tracer(self):
        result = await fan_out(NullTracer(), ["a"], sleep=no_sleep)
        assert not result.root_span_context.is_valid
        assert len(result.item_span_contexts) == 1
