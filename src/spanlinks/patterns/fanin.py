"""
Fan-in: N independent producer traces, one aggregator linking back to all.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from uuid import uuid4

from opentelemetry.context import Context
from opentelemetry.trace import SpanContext

from spanlinks.config import Sleep
from spanlinks.exceptions import InvalidArgumentError
from spanlinks.observability import Tracer, collect_links
from spanlinks.observability.attributes import (
    ATTR_AGGREGATED_COUNT,
    ATTR_AGGREGATION_ID,
    ATTR_ITEM_VALUE,
    ATTR_ITEMS_COUNT,
    ATTR_LINK_TYPE,
    ATTR_PRODUCER_ID,
    ATTR_PRODUCER_INDEX,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FanInResult:
    """
    Spans and items produced by fan_in().

    Attributes:
        aggregation_id: ID of the aggregation run
        producer_span_contexts: Context of each ProduceItem span, by producer ID
        aggregator_span_context: Context of the AggregateResults span
        items: Aggregated items, by producer ID
    """

    aggregation_id: str
    producer_span_contexts: tuple[SpanContext, ...]
    aggregator_span_context: SpanContext
    items: tuple[str, ...]


async def fan_in(
    tracer: Tracer,
    producer_count: int = 3,
    produce_delay: float = 0.15,
    *,
    sleep: Sleep = asyncio.sleep,
) -> FanInResult:
    """
    Run N producers concurrently, then aggregate their results.

    Each ``ProduceItem`` span starts its own trace. The ``AggregateResults``
    span is started only after every producer has finished and carries one
    backward link per producer.

    Args:
        tracer: Tracer to create spans with
        producer_count: Number of producers (>= 1)
        produce_delay: Simulated work per producer in seconds
        sleep: Coroutine used to simulate work

    Returns:
        FanInResult with the producer and aggregator span contexts

    Raises:
        InvalidArgumentError: If producer_count < 1
    """
    if producer_count < 1:
        raise InvalidArgumentError(f"producer_count must be >= 1, got {producer_count}")

    async def produce(producer_id: int) -> tuple[SpanContext, str]:
        with tracer.span_with_kind(
            "ProduceItem",
            attributes={ATTR_PRODUCER_ID: producer_id, ATTR_ITEM_VALUE: f"value-{producer_id}"},
            context=Context(),
        ) as span:
            logger.debug(
                f"Producer creating item (producer.id={producer_id})",
                extra={"producer_id": producer_id},
            )
            await sleep(produce_delay)
            return span.get_span_context(), f"item-from-producer-{producer_id}"

    results = await asyncio.gather(*(produce(producer_id) for producer_id in range(producer_count)))
    producer_contexts = tuple(span_context for span_context, _ in results)

    links = collect_links(
        (span_context, {ATTR_LINK_TYPE: "fan_in", ATTR_PRODUCER_INDEX: index})
        for index, span_context in enumerate(producer_contexts)
    )

    aggregation_id = str(uuid4())
    with tracer.span_with_kind(
        "AggregateResults",
        attributes={ATTR_AGGREGATION_ID: aggregation_id, ATTR_ITEMS_COUNT: len(results)},
        links=links,
    ) as aggregator:
        aggregated: list[str] = []
        for _, item in results:
            aggregated.append(item)
            logger.debug(f"Aggregated item (item={item})", extra={"item": item})

        aggregator.add_event("Aggregation completed", {ATTR_AGGREGATED_COUNT: len(aggregated)})
        aggregator_context = aggregator.get_span_context()

    logger.info(
        f"Aggregation completed (items.count={len(aggregated)})",
        extra={"aggregation_id": aggregation_id, "items_count": len(aggregated)},
    )
    return FanInResult(
        aggregation_id=aggregation_id,
        producer_span_contexts=producer_contexts,
        aggregator_span_context=aggregator_context,
        items=tuple(aggregated),
    )
