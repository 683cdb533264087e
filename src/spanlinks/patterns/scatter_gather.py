"""
Same-trace scatter/gather: shard queries in one trace, an aggregator linking to all.

All spans share the root's trace. The links express the N:1 relationship
between shard queries and the aggregator explicitly, which parent-child
edges alone cannot (the aggregator is a sibling of the shard queries).
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from uuid import uuid4

from opentelemetry import trace
from opentelemetry.context import Context
from opentelemetry.trace import Link, Span, SpanContext, format_trace_id

from spanlinks.config import Sleep
from spanlinks.observability import SpanKindEnum, Tracer, build_link, collect_links
from spanlinks.observability.attributes import (
    ATTR_AGG_STARTED_BEFORE_WORKERS,
    ATTR_AGGREGATION_MODE,
    ATTR_LINK_DIRECTION,
    ATTR_LINK_TRACE_RELATIONSHIP,
    ATTR_LINK_TYPE,
    ATTR_REQUEST_ID,
    ATTR_SHARD_COMPLETED,
    ATTR_SHARD_COUNT,
    ATTR_SHARD_ID,
    ATTR_SHARD_INDEX,
    LINK_DIRECTION_BACKWARD,
    LINK_DIRECTION_FORWARD,
)

logger = logging.getLogger(__name__)

DEFAULT_SHARDS = ("shard-a", "shard-b", "shard-c", "shard-d")
AGGREGATION_MODE = "same_trace_span_links"
SAME_TRACE = "same_trace"


@dataclass(frozen=True)
class ScatterGatherResult:
    """
    Spans produced by scatter_gather().

    Attributes:
        request_id: ID of the search request
        root_span_context: Context of the SearchRequest span
        shard_span_contexts: Context of each QueryShard span, in shard order
        aggregator_span_context: Context of the AggregateResults span
        forward_links: Whether shard spans also linked forward to the aggregator
    """

    request_id: str
    root_span_context: SpanContext
    shard_span_contexts: tuple[SpanContext, ...]
    aggregator_span_context: SpanContext
    forward_links: bool = False


async def scatter_gather(
    tracer: Tracer,
    shard_ids: Iterable[str] = DEFAULT_SHARDS,
    query_delay: float = 0.12,
    aggregate_delay: float = 0.05,
    forward_links: bool = False,
    *,
    sleep: Sleep = asyncio.sleep,
) -> ScatterGatherResult:
    """
    Query shards concurrently under one root, then aggregate.

    By default the ``AggregateResults`` span starts after every shard query
    has finished, so its duration covers only the aggregation, and it
    carries one backward link per shard query.

    With ``forward_links`` the aggregator is started before the shard
    queries so each query can also link forward to it. The aggregator's
    duration then overlaps the queries.

    Args:
        tracer: Tracer to create spans with
        shard_ids: Shards to query
        query_delay: Simulated work per shard query in seconds
        aggregate_delay: Simulated aggregation work in seconds
        forward_links: Also link every shard query forward to the aggregator
        sleep: Coroutine used to simulate work

    Returns:
        ScatterGatherResult with every span context produced
    """
    shard_ids = tuple(shard_ids)
    request_id = str(uuid4())

    with tracer.span_with_kind(
        "SearchRequest",
        attributes={ATTR_REQUEST_ID: request_id, ATTR_SHARD_COUNT: len(shard_ids)},
    ) as root:
        root_context = trace.set_span_in_context(root)

        aggregator: Span | None = None
        if forward_links:
            aggregator = _start_aggregator(tracer, root_context, started_before_workers=True)
        aggregator_target = aggregator.get_span_context() if aggregator is not None else None

        async def query_shard(index: int, shard_id: str) -> SpanContext:
            with tracer.span_with_kind(
                "QueryShard",
                kind=SpanKindEnum.CLIENT,
                attributes={ATTR_SHARD_ID: shard_id, ATTR_SHARD_INDEX: index},
                context=root_context,
            ) as span:
                await sleep(query_delay)
                span.add_event("Shard query completed")

                forward = build_link(
                    aggregator_target,
                    {
                        ATTR_LINK_TYPE: "forward_to_aggregator",
                        ATTR_LINK_DIRECTION: LINK_DIRECTION_FORWARD,
                        ATTR_LINK_TRACE_RELATIONSHIP: SAME_TRACE,
                    },
                )
                if forward is not None:
                    span.add_link(forward.context, forward.attributes)

                span_context = span.get_span_context()

            logger.debug(
                f"Shard {shard_id} completed (trace={format_trace_id(span_context.trace_id)})",
                extra={"shard_id": shard_id},
            )
            return span_context

        try:
            shard_contexts = tuple(
                await asyncio.gather(
                    *(query_shard(index, shard_id) for index, shard_id in enumerate(shard_ids))
                )
            )
        except BaseException:
            if aggregator is not None:
                aggregator.end()
            raise

        links = collect_links(
            (
                span_context,
                {
                    ATTR_LINK_TYPE: "shard_result",
                    ATTR_SHARD_ID: shard_id,
                    ATTR_LINK_DIRECTION: LINK_DIRECTION_BACKWARD,
                    ATTR_LINK_TRACE_RELATIONSHIP: SAME_TRACE,
                },
            )
            for shard_id, span_context in zip(shard_ids, shard_contexts, strict=True)
        )

        if aggregator is None:
            aggregator = _start_aggregator(
                tracer, root_context, started_before_workers=False, links=links
            )
        else:
            for link in links:
                aggregator.add_link(link.context, link.attributes)

        try:
            aggregator.set_attribute(ATTR_SHARD_COMPLETED, len(links))
            await sleep(aggregate_delay)
            aggregator.add_event("Aggregation completed")
        finally:
            aggregator.end()

        root_span_context = root.get_span_context()

    logger.info(
        f"Aggregation completed (trace={format_trace_id(root_span_context.trace_id)}, "
        f"linked_shards={len(links)})",
        extra={"request_id": request_id, "linked_shards": len(links)},
    )
    return ScatterGatherResult(
        request_id=request_id,
        root_span_context=root_span_context,
        shard_span_contexts=shard_contexts,
        aggregator_span_context=aggregator.get_span_context(),
        forward_links=forward_links,
    )


def _start_aggregator(
    tracer: Tracer,
    root_context: Context,
    started_before_workers: bool,
    links: Sequence[Link] | None = None,
) -> Span:
    return tracer.start_span(
        "AggregateResults",
        kind=SpanKindEnum.INTERNAL,
        attributes={
            ATTR_AGGREGATION_MODE: AGGREGATION_MODE,
            ATTR_AGG_STARTED_BEFORE_WORKERS: started_before_workers,
        },
        context=root_context,
        links=links,
    )
