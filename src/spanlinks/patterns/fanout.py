"""
Fan-out: one root span, N children in their own traces linking back to it.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable
from dataclasses import dataclass
from uuid import uuid4

from opentelemetry.context import Context
from opentelemetry.trace import SpanContext

from spanlinks.config import Sleep
from spanlinks.observability import Tracer, build_link
from spanlinks.observability.attributes import (
    ATTR_BATCH_ID,
    ATTR_BATCH_ITEM_COUNT,
    ATTR_ITEM_ID,
    ATTR_ITEM_INDEX,
    ATTR_ITEM_STATUS,
    ATTR_LINK_TYPE,
    ATTR_PROCESSED_COUNT,
)

logger = logging.getLogger(__name__)

DEFAULT_ITEMS = ("item-1", "item-2", "item-3", "item-4", "item-5")


@dataclass(frozen=True)
class FanOutResult:
    """
    Spans produced by fan_out().

    Attributes:
        batch_id: ID of the batch
        root_span_context: Context of the CreateBatch span
        item_span_contexts: Context of each ProcessItem span, in item order
    """

    batch_id: str
    root_span_context: SpanContext
    item_span_contexts: tuple[SpanContext, ...]


async def fan_out(
    tracer: Tracer,
    items: Iterable[str] = DEFAULT_ITEMS,
    item_delay: float = 0.2,
    *,
    sleep: Sleep = asyncio.sleep,
) -> FanOutResult:
    """
    Process a batch of items concurrently, one new trace per item.

    The root ``CreateBatch`` span stays open until every ``ProcessItem``
    child has finished. Each child starts a new trace and carries exactly
    one backward link to the root.

    Args:
        tracer: Tracer to create spans with
        items: Item IDs to process
        item_delay: Simulated work per item in seconds
        sleep: Coroutine used to simulate work

    Returns:
        FanOutResult with the root and item span contexts
    """
    items = tuple(items)
    batch_id = str(uuid4())

    with tracer.span_with_kind(
        "CreateBatch",
        attributes={ATTR_BATCH_ID: batch_id, ATTR_BATCH_ITEM_COUNT: len(items)},
    ) as root:
        root_context = root.get_span_context()
        logger.info(
            f"Creating batch (batch.id={batch_id} items.count={len(items)})",
            extra={"batch_id": batch_id, "items_count": len(items)},
        )

        async def process_item(index: int, item_id: str) -> SpanContext:
            link = build_link(
                root_context,
                {ATTR_LINK_TYPE: "fan_out", ATTR_BATCH_ID: batch_id, ATTR_ITEM_INDEX: index},
            )
            with tracer.span_with_kind(
                "ProcessItem",
                attributes={ATTR_ITEM_ID: item_id, ATTR_BATCH_ID: batch_id, ATTR_ITEM_INDEX: index},
                context=Context(),
                links=[link] if link is not None else None,
            ) as span:
                logger.debug(
                    f"Processing item (item.id={item_id} batch.id={batch_id})",
                    extra={"item_id": item_id, "batch_id": batch_id},
                )
                await sleep(item_delay)
                span.add_event("Item processed", {ATTR_ITEM_STATUS: "completed"})
                return span.get_span_context()

        item_contexts = await asyncio.gather(
            *(process_item(index, item_id) for index, item_id in enumerate(items))
        )

        root.add_event("Batch processing completed", {ATTR_PROCESSED_COUNT: len(items)})
        logger.info(
            f"Batch processing completed (batch.id={batch_id} processed.count={len(items)})",
            extra={"batch_id": batch_id, "processed_count": len(items)},
        )

    return FanOutResult(
        batch_id=batch_id,
        root_span_context=root_context,
        item_span_contexts=tuple(item_contexts),
    )
