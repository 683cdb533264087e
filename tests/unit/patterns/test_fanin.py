"""
Unit tests for the fan-in pattern.
"""

import pytest

from spanlinks.exceptions import InvalidArgumentError
from spanlinks.observability import same_span
from spanlinks.patterns import fan_in


async def no_sleep(seconds: float) -> None:
    return None


class TestFanIn:
    """Tests for fan_in()."""

    @pytest.mark.asyncio
    async def test_aggregator_links_to_every_producer(self, tracer, find_span, find_spans):
        result = await fan_in(tracer, producer_count=3, sleep=no_sleep)

        producers = find_spans("ProduceItem")
        assert len(producers) == 3

        aggregator = find_span("AggregateResults")
        assert same_span(aggregator.context, result.aggregator_span_context)
        assert len(aggregator.links) == 3
        for index, (link, producer_context) in enumerate(
            zip(aggregator.links, result.producer_span_contexts, strict=True)
        ):
            assert same_span(link.context, producer_context)
            assert link.attributes["link.type"] == "fan_in"
            assert link.attributes["producer.index"] == index

    @pytest.mark.asyncio
    async def test_producers_are_independent_traces(self, tracer, find_span, find_spans):
        await fan_in(tracer, producer_count=4, sleep=no_sleep)

        producers = find_spans("ProduceItem")
        assert all(span.parent is None for span in producers)
        trace_ids = {span.context.trace_id for span in producers}
        assert len(trace_ids) == 4

        aggregator = find_span("AggregateResults")
        assert aggregator.context.trace_id not in trace_ids

    @pytest.mark.asyncio
    async def test_aggregator_starts_after_producers(self, tracer, find_span, find_spans):
        await fan_in(tracer, producer_count=3, produce_delay=0.01)

        aggregator = find_span("AggregateResults")
        assert all(p.end_time <= aggregator.start_time for p in find_spans("ProduceItem"))

    @pytest.mark.asyncio
    async def test_items_and_attributes(self, tracer, find_span):
        result = await fan_in(tracer, producer_count=2, sleep=no_sleep)

        assert result.items == ("item-from-producer-0", "item-from-producer-1")

        aggregator = find_span("AggregateResults")
        assert aggregator.attributes["aggregation.id"] == result.aggregation_id
        assert aggregator.attributes["items.count"] == 2
        (event,) = aggregator.events
        assert event.name == "Aggregation completed"
        assert event.attributes["aggregated.count"] == 2

    @pytest.mark.asyncio
    async def test_single_producer(self, tracer, find_span):
        await fan_in(tracer, producer_count=1, sleep=no_sleep)
        assert len(find_span("AggregateResults").links) == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize("count", [0, -1])
    async def test_invalid_producer_count(self, tracer, finished_spans, count):
        with pytest.raises(InvalidArgumentError):
            await fan_in(tracer, producer_count=count)
        assert finished_spans() == []
