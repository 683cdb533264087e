"""
Unit tests for BoundedQueue, OrderQueue and ForwardLinkChannel.

Tests for:
- FIFO delivery and capacity
- Blocking put/get and cancellation without side effects
- Get timeout
- Exactly-once delivery with concurrent consumers
- Span binding on publish
"""

from __future__ import annotations

import asyncio

import pytest
from opentelemetry import trace
from opentelemetry.trace import INVALID_SPAN_CONTEXT

from spanlinks.exceptions import InvalidArgumentError, OperationCancelledError
from spanlinks.messages import Order, OrderSpanContext
from spanlinks.observability import encode_carrier, same_span
from spanlinks.queue import BoundedQueue, ForwardLinkChannel, OrderQueue


class TestBoundedQueueBasics:
    """Tests for construction, FIFO order and try_put."""

    @pytest.mark.parametrize("capacity", [0, -1])
    def test_invalid_capacity(self, capacity):
        with pytest.raises(InvalidArgumentError):
            BoundedQueue(capacity)

    def test_capacity_and_empty_depth(self):
        queue: BoundedQueue[int] = BoundedQueue(5)
        assert queue.capacity == 5
        assert queue.depth() == 0

    @pytest.mark.asyncio
    async def test_fifo_order(self):
        queue: BoundedQueue[int] = BoundedQueue(10)
        for i in range(5):
            await queue.put(i)

        assert queue.depth() == 5
        assert [await queue.get() for _ in range(5)] == [0, 1, 2, 3, 4]
        assert queue.depth() == 0

    def test_try_put_when_full(self):
        queue: BoundedQueue[int] = BoundedQueue(2)
        assert queue.try_put(1) is True
        assert queue.try_put(2) is True
        assert queue.try_put(3) is False
        assert queue.depth() == 2
        assert queue.get_stats()["items_rejected"] == 1


class TestBoundedQueueBlocking:
    """Tests for blocking behavior and cancellation."""

    @pytest.mark.asyncio
    async def test_put_blocks_while_full(self):
        queue: BoundedQueue[int] = BoundedQueue(1)
        await queue.put(1)

        put_task = asyncio.create_task(queue.put(2))
        await asyncio.sleep(0)
        assert not put_task.done()

        assert await queue.get() == 1
        await put_task
        assert queue.depth() == 1
        assert await queue.get() == 2

    @pytest.mark.asyncio
    async def test_cancelled_put_enqueues_nothing(self):
        """A put cancelled while blocked leaves the queue unchanged."""
        queue: BoundedQueue[str] = BoundedQueue(1)
        await queue.put("first")
        cancel = asyncio.Event()

        put_task = asyncio.create_task(queue.put("second", cancel_event=cancel))
        await asyncio.sleep(0)
        cancel.set()

        with pytest.raises(OperationCancelledError) as exc_info:
            await put_task
        assert exc_info.value.operation == "put"

        assert queue.depth() == 1
        assert await queue.get() == "first"
        assert queue.depth() == 0
        assert queue.get_stats()["operations_cancelled"] == 1

    @pytest.mark.asyncio
    async def test_put_with_fired_token_raises_immediately(self):
        queue: BoundedQueue[int] = BoundedQueue(5)
        cancel = asyncio.Event()
        cancel.set()

        with pytest.raises(OperationCancelledError):
            await queue.put(1, cancel_event=cancel)
        assert queue.depth() == 0

    @pytest.mark.asyncio
    async def test_put_with_unfired_token_succeeds(self):
        queue: BoundedQueue[int] = BoundedQueue(5)
        await queue.put(1, cancel_event=asyncio.Event())
        assert queue.depth() == 1

    @pytest.mark.asyncio
    async def test_cancelled_get_removes_nothing(self):
        """An item put after a cancelled get is still delivered."""
        queue: BoundedQueue[str] = BoundedQueue(1)
        cancel = asyncio.Event()

        get_task = asyncio.create_task(queue.get(cancel_event=cancel))
        await asyncio.sleep(0)
        cancel.set()

        with pytest.raises(OperationCancelledError) as exc_info:
            await get_task
        assert exc_info.value.operation == "get"

        await queue.put("item")
        assert await queue.get() == "item"

    @pytest.mark.asyncio
    async def test_get_waits_for_item(self):
        queue: BoundedQueue[str] = BoundedQueue(1)

        get_task = asyncio.create_task(queue.get(cancel_event=asyncio.Event()))
        await asyncio.sleep(0)
        assert not get_task.done()

        await queue.put("item")
        assert await get_task == "item"

    @pytest.mark.asyncio
    async def test_get_timeout(self):
        queue: BoundedQueue[int] = BoundedQueue(1)
        with pytest.raises(TimeoutError):
            await queue.get(timeout=0.01)

        # A timed-out get does not consume a later item
        await queue.put(7)
        assert await queue.get(timeout=0.01) == 7

    @pytest.mark.asyncio
    async def test_outer_task_cancellation_propagates(self):
        """Cancelling the calling task raises CancelledError, not a library error."""
        queue: BoundedQueue[int] = BoundedQueue(1)

        get_task = asyncio.create_task(queue.get(cancel_event=asyncio.Event()))
        await asyncio.sleep(0)
        get_task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await get_task


class TestBoundedQueueDelivery:
    """Tests for exactly-once delivery across consumers."""

    @pytest.mark.asyncio
    async def test_each_item_delivered_once(self):
        queue: BoundedQueue[int] = BoundedQueue(8)
        stop = asyncio.Event()
        received: list[int] = []

        async def consumer() -> None:
            while True:
                try:
                    item = await queue.get(cancel_event=stop)
                except OperationCancelledError:
                    return
                received.append(item)
                queue.task_done()

        consumers = [asyncio.create_task(consumer()) for _ in range(4)]
        for i in range(50):
            await queue.put(i)

        await queue.join()
        stop.set()
        await asyncio.gather(*consumers)

        assert sorted(received) == list(range(50))
        stats = queue.get_stats()
        assert stats["items_put"] == 50
        assert stats["items_got"] == 50
        assert stats["depth"] == 0


class TestOrderQueue:
    """Tests for OrderQueue.publish()."""

    @pytest.mark.asyncio
    async def test_publish_binds_current_span(self, tracer, order_queue):
        order = Order.create(0)

        with tracer.span("PublishOrder") as span:
            bound = await order_queue.publish(order)

        assert bound.trace_parent == encode_carrier(span.get_span_context())
        assert order.trace_parent == ""
        assert order_queue.depth() == 1

        consumed = await order_queue.consume()
        assert consumed == bound
        decoded, ok = consumed.span_context()
        assert ok
        assert same_span(decoded, span.get_span_context())

    @pytest.mark.asyncio
    async def test_publish_binds_span_from_explicit_context(self, tracer, order_queue):
        span = tracer.start_span("PublishOrder")
        try:
            bound = await order_queue.publish(
                Order.create(0), context=trace.set_span_in_context(span)
            )
        finally:
            span.end()

        assert bound.trace_parent == encode_carrier(span.get_span_context())

    @pytest.mark.asyncio
    async def test_publish_without_span_carries_invalid_context(self, order_queue):
        bound = await order_queue.publish(Order.create(0))
        assert bound.trace_parent == encode_carrier(INVALID_SPAN_CONTEXT)
        _, ok = bound.span_context()
        assert ok is False

    @pytest.mark.asyncio
    async def test_cancelled_publish_when_full(self):
        queue = OrderQueue(capacity=1)
        await queue.publish(Order.create(0))
        cancel = asyncio.Event()
        cancel.set()

        with pytest.raises(OperationCancelledError):
            await queue.publish(Order.create(1), cancel_event=cancel)
        assert queue.depth() == 1

    @pytest.mark.asyncio
    async def test_stats(self, order_queue):
        await order_queue.publish(Order.create(0))
        await order_queue.publish(Order.create(1))
        await order_queue.consume()

        stats = order_queue.get_stats()
        assert stats["orders_published"] == 2
        assert stats["orders_consumed"] == 1
        assert stats["depth"] == 1
        assert stats["capacity"] == 100


class TestForwardLinkChannel:
    """Tests for the best-effort forward-link channel."""

    @pytest.mark.asyncio
    async def test_send_and_receive(self, tracer):
        channel = ForwardLinkChannel(capacity=2)
        span = tracer.start_span("ProcessOrder")
        span.end()
        record = OrderSpanContext("ORDER-1", span.get_span_context())

        assert channel.try_send(record) is True
        assert await channel.receive(timeout=0.1) == record

    def test_full_channel_drops(self):
        channel = ForwardLinkChannel(capacity=1)
        assert channel.try_send(OrderSpanContext("ORDER-1", INVALID_SPAN_CONTEXT)) is True
        assert channel.try_send(OrderSpanContext("ORDER-2", INVALID_SPAN_CONTEXT)) is False
        assert channel.depth() == 1

    @pytest.mark.asyncio
    async def test_receive_timeout(self):
        channel = ForwardLinkChannel(capacity=1)
        with pytest.raises(TimeoutError):
            await channel.receive(timeout=0.01)
