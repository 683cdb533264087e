"""
Order producer with backward and forward link support.

The producer publishes batches of orders. Each batch is one PRODUCER span
(``PublishOrderBatch``) with one INTERNAL child span (``PublishOrder``) per
order. The identity of each item span is bound into its order by
OrderQueue.publish, which is what workers later link back to.

Two exit modes:

- closed mode: every span is ended before the call returns. Workers can
  still link to the ended item spans, since ending a span only forbids
  further mutation.
- open mode: the batch span and the published item spans are returned
  still open, held in an OpenSpanRegistry. The collection phase
  (collect_forward_links) adds a forward link to each item span once the
  worker that processed it reports back, then ends it.

Example:
    >>> producer = OrderProducer(queue, tracer=tracer)
    >>> batch = await producer.publish_order_batch(10)
    >>>
    >>> # Forward-link flow
    >>> open_batch = await producer.publish_order_batch_with_open_spans(10)
    >>> report = await producer.collect_forward_links(open_batch, channel, timeout=5.0)
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterator, Mapping
from dataclasses import dataclass, field

from opentelemetry import trace
from opentelemetry.context import Context
from opentelemetry.trace import Span, SpanContext, Status, StatusCode

from spanlinks.exceptions import (
    BatchPublishError,
    InvalidArgumentError,
    OperationCancelledError,
    PublishError,
)
from spanlinks.messages import Order
from spanlinks.observability import SpanKindEnum, Tracer, build_link, create_tracer
from spanlinks.observability.attributes import (
    ATTR_BATCH_SIZE,
    ATTR_CUSTOMER_ID,
    ATTR_LINK_DIRECTION,
    ATTR_LINK_TYPE,
    ATTR_ORDER_AMOUNT,
    ATTR_ORDER_ID,
    ATTR_PUBLISHED_COUNT,
    ATTR_TOTAL_COUNT,
    LINK_DIRECTION_FORWARD,
)
from spanlinks.queue import ForwardLinkChannel, OrderQueue

logger = logging.getLogger(__name__)

BATCH_SPAN_NAME = "PublishOrderBatch"
ITEM_SPAN_NAME = "PublishOrder"

LINK_TYPE_FORWARD = "forward_from_worker"
FORWARD_LINK_MISSING_EVENT = "Forward link not received"


class OpenSpanRegistry:
    """
    Registry of owned, not-yet-ended spans keyed by order ID.

    Holding a span in the registry means holding responsibility for ending
    it. take() and drain() remove entries the instant that responsibility
    moves to the caller, so a span can never be ended twice through the
    registry and end_all() never misses one.

    Example:
        >>> registry = OpenSpanRegistry()
        >>> registry.adopt("ORDER-1", span)
        >>> span = registry.take("ORDER-1")  # caller must now end it
        >>> registry.take("ORDER-1") is None
        True
    """

    def __init__(self) -> None:
        self._spans: dict[str, Span] = {}

    def adopt(self, order_id: str, span: Span) -> None:
        """
        Take ownership of an open span.

        Raises:
            InvalidArgumentError: If a span is already registered for the order
        """
        if order_id in self._spans:
            raise InvalidArgumentError(f"span already registered for order {order_id}")
        self._spans[order_id] = span

    def take(self, order_id: str) -> Span | None:
        """Remove and return the span for an order, or None if not registered."""
        return self._spans.pop(order_id, None)

    def drain(self) -> list[tuple[str, Span]]:
        """Remove and return every registered (order ID, span) pair."""
        entries = list(self._spans.items())
        self._spans.clear()
        return entries

    def end_all(self, event_name: str | None = None) -> list[str]:
        """
        End every registered span and clear the registry.

        Args:
            event_name: Event recorded on each span before it is ended (optional)

        Returns:
            IDs of the orders whose spans were ended
        """
        ended: list[str] = []
        for order_id, span in self.drain():
            if event_name:
                span.add_event(event_name, {ATTR_ORDER_ID: order_id})
            span.end()
            ended.append(order_id)
        return ended

    def order_ids(self) -> list[str]:
        """IDs of the orders with a registered span."""
        return list(self._spans)

    def __len__(self) -> int:
        return len(self._spans)

    def __contains__(self, order_id: object) -> bool:
        return order_id in self._spans

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._spans))


@dataclass(frozen=True)
class PublishedBatch:
    """
    Result of a closed-mode publish. Every span has already been ended.

    Attributes:
        span_context: Context of the PublishOrderBatch span
        published_count: Number of orders enqueued
        total_count: Number of orders requested
        order_ids: IDs of the enqueued orders, in publish order
        item_span_contexts: Context of each PublishOrder span by order ID
    """

    span_context: SpanContext
    published_count: int
    total_count: int
    order_ids: tuple[str, ...] = ()
    item_span_contexts: Mapping[str, SpanContext] = field(default_factory=dict)


@dataclass
class OpenBatch:
    """
    Result of an open-mode publish. The caller owns ending the spans.

    Use collect_forward_links() to resolve the item spans, or end() to close
    everything without forward links.

    Attributes:
        span: The open PublishOrderBatch span
        order_spans: Registry of the open PublishOrder spans
        published_count: Number of orders enqueued
        total_count: Number of orders requested
        order_ids: IDs of the enqueued orders, in publish order
        item_span_contexts: Context of each PublishOrder span by order ID
    """

    span: Span
    order_spans: OpenSpanRegistry
    published_count: int
    total_count: int
    order_ids: tuple[str, ...] = ()
    item_span_contexts: Mapping[str, SpanContext] = field(default_factory=dict)
    _ended: bool = field(default=False, init=False, repr=False)

    @property
    def span_context(self) -> SpanContext:
        """Context of the batch span."""
        return self.span.get_span_context()

    @property
    def ended(self) -> bool:
        """Whether end() has been called."""
        return self._ended

    def end(self, event_name: str | None = None) -> list[str]:
        """
        End every remaining item span, then the batch span.

        Idempotent: calls after the first do nothing.

        Args:
            event_name: Event recorded on each remaining item span (optional)

        Returns:
            IDs of the orders whose item spans were ended by this call
        """
        if self._ended:
            return []
        self._ended = True
        leftover = self.order_spans.end_all(event_name)
        self.span.end()
        return leftover


@dataclass(frozen=True)
class ForwardLinkReport:
    """
    Outcome of a forward-link collection phase.

    Attributes:
        linked: Orders whose item span received a forward link
        unlinked: Orders whose item span was ended without a forward link
        unmatched: Order IDs of received records with no open item span
        timed_out: Whether the phase ended on its timeout
        cancelled: Whether the phase ended on the cancellation token
    """

    linked: tuple[str, ...] = ()
    unlinked: tuple[str, ...] = ()
    unmatched: tuple[str, ...] = ()
    timed_out: bool = False
    cancelled: bool = False

    @property
    def complete(self) -> bool:
        """True if every item span received a forward link."""
        return not self.unlinked


@dataclass
class _PublishState:
    batch_span: Span
    open_spans: OpenSpanRegistry
    order_ids: list[str]
    item_span_contexts: dict[str, SpanContext]
    total_count: int


class OrderProducer:
    """
    Publishes order batches to an OrderQueue with per-order item spans.

    Args:
        queue: Queue to publish to
        tracer: Optional custom Tracer instance. If not provided, one is
            created based on enable_tracing setting.
        enable_tracing: If True, emit traces. Ignored if tracer is
            explicitly provided.
        order_factory: Builds the order at a batch position
            (default Order.create)
    """

    def __init__(
        self,
        queue: OrderQueue,
        *,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
        order_factory: Callable[[int], Order] = Order.create,
    ) -> None:
        self._queue = queue
        self._order_factory = order_factory
        self._stats = {
            "batches_published": 0,
            "batches_failed": 0,
            "orders_published": 0,
            "publish_failures": 0,
            "forward_links_added": 0,
        }

        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._enable_tracing = self._tracer.enabled

    async def publish_batch(
        self,
        count: int,
        keep_spans_open: bool = False,
        cancel_event: asyncio.Event | None = None,
    ) -> PublishedBatch | OpenBatch:
        """
        Publish ``count`` orders in one batch.

        Args:
            count: Number of orders to publish (> 0)
            keep_spans_open: Return the spans open (forward-link flows)
            cancel_event: Cancellation token passed to every queue publish

        Returns:
            PublishedBatch in closed mode, OpenBatch in open mode

        Raises:
            InvalidArgumentError: If count <= 0. No span is started.
            BatchPublishError: If no order could be published
        """
        if keep_spans_open:
            return await self.publish_order_batch_with_open_spans(count, cancel_event)
        return await self.publish_order_batch(count, cancel_event)

    async def publish_order_batch(
        self,
        count: int,
        cancel_event: asyncio.Event | None = None,
    ) -> PublishedBatch:
        """
        Publish a batch in closed mode. See publish_batch.

        Workers link backward to the item spans through the carriers already
        bound into the orders.
        """
        state = await self._publish(count, cancel_event)
        state.open_spans.end_all()
        state.batch_span.end()
        return PublishedBatch(
            span_context=state.batch_span.get_span_context(),
            published_count=len(state.order_ids),
            total_count=state.total_count,
            order_ids=tuple(state.order_ids),
            item_span_contexts=dict(state.item_span_contexts),
        )

    async def publish_order_batch_with_open_spans(
        self,
        count: int,
        cancel_event: asyncio.Event | None = None,
    ) -> OpenBatch:
        """
        Publish a batch in open mode. See publish_batch.

        The caller must end the returned batch, normally through
        collect_forward_links().
        """
        state = await self._publish(count, cancel_event)
        return OpenBatch(
            span=state.batch_span,
            order_spans=state.open_spans,
            published_count=len(state.order_ids),
            total_count=state.total_count,
            order_ids=tuple(state.order_ids),
            item_span_contexts=dict(state.item_span_contexts),
        )

    async def _publish(self, count: int, cancel_event: asyncio.Event | None) -> _PublishState:
        if count <= 0:
            raise InvalidArgumentError(f"batch size must be greater than zero, got {count}")

        batch_span = self._tracer.start_span(
            BATCH_SPAN_NAME,
            kind=SpanKindEnum.PRODUCER,
            attributes={ATTR_BATCH_SIZE: count},
        )
        batch_context = trace.set_span_in_context(batch_span)
        state = _PublishState(
            batch_span=batch_span,
            open_spans=OpenSpanRegistry(),
            order_ids=[],
            item_span_contexts={},
            total_count=count,
        )
        last_error: PublishError | None = None

        try:
            for index in range(count):
                order = self._order_factory(index)
                try:
                    bound, item_span = await self._publish_item(
                        order, batch_context, cancel_event, state.open_spans
                    )
                except PublishError as e:
                    last_error = e
                    self._stats["publish_failures"] += 1
                    logger.warning(
                        f"Failed to publish order {order.id}: {e.__cause__}",
                        extra={"order_id": order.id, "error": str(e.__cause__)},
                    )
                    if isinstance(e.__cause__, OperationCancelledError):
                        break
                    continue

                state.open_spans.adopt(bound.id, item_span)
                state.order_ids.append(bound.id)
                state.item_span_contexts[bound.id] = item_span.get_span_context()
        except BaseException:
            # The publishing task was interrupted; close what it opened
            state.open_spans.end_all()
            batch_span.end()
            raise

        published_count = len(state.order_ids)
        if published_count == 0:
            self._stats["batches_failed"] += 1
            if last_error is not None:
                batch_span.record_exception(last_error)
            batch_span.set_status(Status(StatusCode.ERROR, "failed to publish any orders"))
            batch_span.end()
            raise BatchPublishError(count, last_error) from last_error

        batch_span.add_event(
            "Batch published",
            {ATTR_PUBLISHED_COUNT: published_count, ATTR_TOTAL_COUNT: count},
        )
        self._stats["batches_published"] += 1
        self._stats["orders_published"] += published_count

        logger.info(
            f"Order batch published successfully (published={published_count})",
            extra={"published_count": published_count, "total_count": count},
        )
        return state

    async def _publish_item(
        self,
        order: Order,
        batch_context: Context,
        cancel_event: asyncio.Event | None,
        registered: OpenSpanRegistry,
    ) -> tuple[Order, Span]:
        """Publish one order under its own item span; the span is ended on failure."""
        item_span = self._tracer.start_span(
            ITEM_SPAN_NAME,
            kind=SpanKindEnum.INTERNAL,
            attributes={
                ATTR_ORDER_ID: order.id,
                ATTR_CUSTOMER_ID: order.customer_id,
                ATTR_ORDER_AMOUNT: order.amount,
            },
            context=batch_context,
        )
        try:
            if order.id in registered:
                raise InvalidArgumentError(f"duplicate order id {order.id} in batch")
            bound = await self._queue.publish(
                order,
                context=trace.set_span_in_context(item_span),
                cancel_event=cancel_event,
            )
        except Exception as e:
            item_span.record_exception(e)
            item_span.set_status(Status(StatusCode.ERROR, str(e)))
            item_span.end()
            raise PublishError(order.id, str(e)) from e
        except BaseException:
            item_span.end()
            raise
        return bound, item_span

    async def collect_forward_links(
        self,
        batch: OpenBatch,
        channel: ForwardLinkChannel,
        timeout: float,
        cancel_event: asyncio.Event | None = None,
    ) -> ForwardLinkReport:
        """
        Attach forward links to the open item spans of a batch, then end them.

        Receives worker records until every item span is resolved, the
        overall timeout elapses, or the token fires. A record whose order has
        an open item span adds one forward link (when its span context is
        valid) and ends that span. Records for unknown orders are dropped.
        When the phase ends, remaining item spans are ended without a link,
        then the batch span is ended. No span is left open on any path.

        Args:
            batch: Open batch from publish_order_batch_with_open_spans()
            channel: Channel the workers report finished spans on
            timeout: Overall time budget in seconds
            cancel_event: Cancellation token (optional)

        Returns:
            ForwardLinkReport describing which item spans were linked
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        linked: list[str] = []
        unlinked: list[str] = []
        unmatched: list[str] = []
        timed_out = False
        cancelled = False

        try:
            while len(batch.order_spans) > 0:
                remaining = deadline - loop.time()
                if remaining <= 0:
                    timed_out = True
                    break
                try:
                    record = await channel.receive(cancel_event, timeout=remaining)
                except TimeoutError:
                    timed_out = True
                    break
                except OperationCancelledError:
                    cancelled = True
                    break

                span = batch.order_spans.take(record.order_id)
                if span is None:
                    unmatched.append(record.order_id)
                    logger.debug(
                        f"Forward link record for unknown order {record.order_id}",
                        extra={"order_id": record.order_id},
                    )
                    continue

                link = build_link(
                    record.span_context,
                    {ATTR_LINK_TYPE: LINK_TYPE_FORWARD, ATTR_LINK_DIRECTION: LINK_DIRECTION_FORWARD},
                )
                if link is not None:
                    span.add_link(link.context, link.attributes)
                    linked.append(record.order_id)
                    self._stats["forward_links_added"] += 1
                else:
                    unlinked.append(record.order_id)
                span.end()
        finally:
            unlinked.extend(batch.end(FORWARD_LINK_MISSING_EVENT))

        report = ForwardLinkReport(
            linked=tuple(linked),
            unlinked=tuple(unlinked),
            unmatched=tuple(unmatched),
            timed_out=timed_out,
            cancelled=cancelled,
        )
        logger.info(
            f"Forward link collection finished (linked={len(linked)}, unlinked={len(unlinked)})",
            extra={
                "linked_count": len(linked),
                "unlinked_count": len(unlinked),
                "unmatched_count": len(unmatched),
                "timed_out": timed_out,
                "cancelled": cancelled,
            },
        )
        return report

    async def run_periodic(
        self,
        batch_size: int,
        interval: float,
        cancel_event: asyncio.Event,
        forward_channel: ForwardLinkChannel | None = None,
        collection_timeout: float = 5.0,
    ) -> int:
        """
        Publish one batch per interval until the token fires.

        The first batch is published after one interval. With a forward
        channel each cycle publishes in open mode and runs the collection
        phase before the next interval starts. A failed cycle is logged and
        the loop continues.

        Args:
            batch_size: Orders per batch
            interval: Seconds between cycles
            cancel_event: Cancellation token that stops the loop
            forward_channel: Channel for forward links (None = closed mode)
            collection_timeout: Collection phase budget in seconds

        Returns:
            Number of cycles run
        """
        if batch_size <= 0:
            raise InvalidArgumentError(f"batch size must be greater than zero, got {batch_size}")

        logger.info(
            "Starting order batch publisher",
            extra={"interval": interval, "batch_size": batch_size},
        )

        cycles = 0
        while not cancel_event.is_set():
            try:
                await asyncio.wait_for(cancel_event.wait(), timeout=interval)
            except TimeoutError:
                pass
            else:
                break

            cycles += 1
            try:
                await self._run_cycle(batch_size, cancel_event, forward_channel, collection_timeout)
            except Exception as e:
                logger.error(
                    f"Failed to publish order batch: {e}",
                    exc_info=not isinstance(e, OperationCancelledError | BatchPublishError),
                    extra={"error": str(e), "cycle": cycles},
                )

        logger.info("Order batch publisher stopped", extra={"cycles": cycles})
        return cycles

    async def _run_cycle(
        self,
        batch_size: int,
        cancel_event: asyncio.Event,
        forward_channel: ForwardLinkChannel | None,
        collection_timeout: float,
    ) -> None:
        if forward_channel is None:
            await self.publish_order_batch(batch_size, cancel_event)
            return

        batch = await self.publish_order_batch_with_open_spans(batch_size, cancel_event)
        await self.collect_forward_links(batch, forward_channel, collection_timeout, cancel_event)

    def get_stats(self) -> dict[str, int]:
        """
        Get producer statistics.

        Returns:
            Dictionary of publish counters
        """
        return dict(self._stats)


__all__ = [
    "OrderProducer",
    "OpenSpanRegistry",
    "PublishedBatch",
    "OpenBatch",
    "ForwardLinkReport",
    "BATCH_SPAN_NAME",
    "ITEM_SPAN_NAME",
]
