"""
Bounded in-memory queues with cancellation.

This module provides:
- BoundedQueue: FIFO with a fixed capacity and cancellable blocking calls
- OrderQueue: Order queue that binds the publishing span into each message
- ForwardLinkChannel: Best-effort side channel from workers to the producer

Blocking calls take an optional cancellation token (an ``asyncio.Event``).
When the token fires before the call completes, the call raises
OperationCancelledError and the queue is left exactly as if the call had
never been made: a cancelled put enqueues nothing and a cancelled get
removes nothing.

Example:
    >>> queue = OrderQueue(capacity=100)
    >>> stop = asyncio.Event()
    >>> bound = await queue.publish(Order.create(0), cancel_event=stop)
    >>> order = await queue.consume(cancel_event=stop)
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Coroutine
from typing import Any, Generic, TypeVar

from opentelemetry import trace
from opentelemetry.context import Context

from spanlinks.exceptions import InvalidArgumentError, OperationCancelledError
from spanlinks.messages import Order, OrderSpanContext

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


async def _await_cancellable(
    operation_coro: Coroutine[Any, Any, R],
    operation: str,
    cancel_event: asyncio.Event | None,
    timeout: float | None = None,
) -> R:
    """
    Await a queue operation, racing it against a token and an optional timeout.

    If the operation completes in the same iteration the token fires, the
    completed result wins, so a finished put or get is never reported as
    cancelled.
    """
    if cancel_event is not None and cancel_event.is_set():
        operation_coro.close()
        raise OperationCancelledError(operation)

    if cancel_event is None and timeout is None:
        return await operation_coro

    operation_task: asyncio.Future[R] = asyncio.ensure_future(operation_coro)
    waiters: set[asyncio.Future[Any]] = {operation_task}
    cancel_task: asyncio.Future[Any] | None = None
    if cancel_event is not None:
        cancel_task = asyncio.ensure_future(cancel_event.wait())
        waiters.add(cancel_task)

    try:
        done, _ = await asyncio.wait(
            waiters,
            timeout=timeout,
            return_when=asyncio.FIRST_COMPLETED,
        )
    finally:
        if cancel_task is not None:
            cancel_task.cancel()
        if not operation_task.done():
            operation_task.cancel()

    if operation_task in done:
        return operation_task.result()

    try:
        return await operation_task
    except asyncio.CancelledError:
        current = asyncio.current_task()
        if current is not None and current.cancelling():
            raise

    if cancel_task is not None and cancel_task in done:
        raise OperationCancelledError(operation)
    raise TimeoutError(f"{operation} timed out after {timeout}s")


class BoundedQueue(Generic[T]):
    """
    FIFO queue with a fixed capacity.

    Backed by ``asyncio.Queue(maxsize=capacity)``. Items are delivered in
    insertion order and each item is delivered to exactly one consumer.
    Any number of tasks may put and get concurrently.

    Args:
        capacity: Maximum number of buffered items (>= 1)

    Raises:
        InvalidArgumentError: If capacity is less than 1
    """

    def __init__(self, capacity: int) -> None:
        if capacity < 1:
            raise InvalidArgumentError(f"capacity must be >= 1, got {capacity}")
        self._capacity = capacity
        self._queue: asyncio.Queue[T] = asyncio.Queue(maxsize=capacity)
        self._stats = {
            "items_put": 0,
            "items_got": 0,
            "items_rejected": 0,
            "operations_cancelled": 0,
        }

    @property
    def capacity(self) -> int:
        """Maximum number of buffered items."""
        return self._capacity

    def depth(self) -> int:
        """
        Current number of buffered items.

        Non-blocking and only suitable for monitoring: the value may be
        stale by the time the caller reads it.
        """
        return self._queue.qsize()

    async def put(self, item: T, cancel_event: asyncio.Event | None = None) -> None:
        """
        Append an item, waiting while the queue is full.

        Args:
            item: Item to enqueue
            cancel_event: Cancellation token (optional)

        Raises:
            OperationCancelledError: If the token fires first. The item is
                not enqueued.
        """
        try:
            await _await_cancellable(self._queue.put(item), "put", cancel_event)
        except OperationCancelledError:
            self._stats["operations_cancelled"] += 1
            raise
        self._stats["items_put"] += 1

    def try_put(self, item: T) -> bool:
        """
        Append an item without waiting.

        Returns:
            True if enqueued, False if the queue was full
        """
        try:
            self._queue.put_nowait(item)
        except asyncio.QueueFull:
            self._stats["items_rejected"] += 1
            return False
        self._stats["items_put"] += 1
        return True

    async def get(
        self,
        cancel_event: asyncio.Event | None = None,
        timeout: float | None = None,
    ) -> T:
        """
        Remove and return the oldest item, waiting until one is available.

        Args:
            cancel_event: Cancellation token (optional)
            timeout: Max seconds to wait (None = wait indefinitely)

        Returns:
            The oldest buffered item

        Raises:
            OperationCancelledError: If the token fires first. Nothing is
                removed.
            TimeoutError: If the timeout elapses first
        """
        try:
            item = await _await_cancellable(self._queue.get(), "get", cancel_event, timeout)
        except OperationCancelledError:
            self._stats["operations_cancelled"] += 1
            raise
        self._stats["items_got"] += 1
        return item

    def task_done(self) -> None:
        """Mark an item returned by get() as fully handled."""
        self._queue.task_done()

    async def join(self) -> None:
        """Wait until every item put so far has been got and marked done."""
        await self._queue.join()

    def get_stats(self) -> dict[str, int]:
        """
        Get queue statistics.

        Returns:
            Dictionary of counters plus current depth and capacity
        """
        return {**self._stats, "depth": self.depth(), "capacity": self._capacity}


class OrderQueue(BoundedQueue[Order]):
    """
    Order queue that carries the publishing span across the queue boundary.

    Example:
        >>> queue = OrderQueue(capacity=100)
        >>> with tracer.span("PublishOrder"):
        ...     bound = await queue.publish(order)
        >>> bound.trace_parent  # carrier of the PublishOrder span
    """

    async def publish(
        self,
        order: Order,
        context: Context | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> Order:
        """
        Bind the current span into the order and enqueue it.

        The span is read from ``context`` when given, otherwise from the
        ambient context. If no span is current the order carries the
        invalid span context and consumers create no link for it.

        Args:
            order: Order to publish
            context: Context whose current span is the publishing span
            cancel_event: Cancellation token (optional)

        Returns:
            The bound order that was enqueued

        Raises:
            OperationCancelledError: If the token fires while the queue is full
        """
        span_context = trace.get_current_span(context).get_span_context()
        bound = order.with_trace_carrier(span_context)
        await self.put(bound, cancel_event)

        logger.debug(
            f"Published order {bound.id}",
            extra={
                "order_id": bound.id,
                "span_id": bound.original_span_id,
                "queue_depth": self.depth(),
            },
        )
        return bound

    async def consume(self, cancel_event: asyncio.Event | None = None) -> Order:
        """Remove and return the oldest order. See BoundedQueue.get."""
        return await self.get(cancel_event)

    def get_stats(self) -> dict[str, int]:
        stats = super().get_stats()
        stats["orders_published"] = stats["items_put"]
        stats["orders_consumed"] = stats["items_got"]
        return stats


class ForwardLinkChannel(BoundedQueue[OrderSpanContext]):
    """
    Side channel carrying worker span contexts back to the producer.

    Delivery is best-effort: workers never block on it, and a record that
    does not fit is dropped. The producer receives records only while a
    collection phase is running.
    """

    def try_send(self, record: OrderSpanContext) -> bool:
        """
        Send a record without waiting.

        Returns:
            True if sent, False if the channel was full and the record dropped
        """
        return self.try_put(record)

    async def receive(
        self,
        cancel_event: asyncio.Event | None = None,
        timeout: float | None = None,
    ) -> OrderSpanContext:
        """Receive the next record. See BoundedQueue.get."""
        return await self.get(cancel_event, timeout)


__all__ = ["BoundedQueue", "OrderQueue", "ForwardLinkChannel"]
