"""
Order workers with backward links to the producer.

Each worker runs a consume-process loop. For every order it decodes the
carrier bound by the producer, starts a CONSUMER span (``ProcessOrder``) in
a new trace with one backward link to the producer's item span, and runs
the processing steps as child spans. When a forward-link channel is
configured, the worker then reports its finished span back to the producer.

Example:
    >>> worker = OrderWorker(queue, tracer=tracer)
    >>> pool = WorkerPool(worker, worker_count=2)
    >>> stop = pool.start()
    >>> ...
    >>> result = await pool.shutdown(timeout=5.0)
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Any, ClassVar, Protocol, runtime_checkable

from opentelemetry import trace
from opentelemetry.context import Context
from opentelemetry.trace import SpanContext, Status, StatusCode

from spanlinks.config import Sleep, StepTimings
from spanlinks.exceptions import (
    InvalidArgumentError,
    MessageValidationError,
    OperationCancelledError,
    OrderValidationError,
    ProcessingStepError,
)
from spanlinks.messages import Order, OrderSpanContext
from spanlinks.observability import SpanKindEnum, Tracer, WorkerMetrics, build_link, create_tracer
from spanlinks.observability.attributes import (
    ATTR_CUSTOMER_ID,
    ATTR_LINK_DIRECTION,
    ATTR_LINK_TYPE,
    ATTR_ORDER_AMOUNT,
    ATTR_ORDER_ID,
    ATTR_PAYMENT_AMOUNT,
    ATTR_SOURCE_SERVICE,
    ATTR_WORKER_ID,
    LINK_DIRECTION_BACKWARD,
)
from spanlinks.queue import ForwardLinkChannel, OrderQueue

logger = logging.getLogger(__name__)

CONSUMER_SPAN_NAME = "ProcessOrder"
LINK_TYPE_QUEUE_CONSUMPTION = "queue_consumption"
SOURCE_SERVICE = "producer-service"


@runtime_checkable
class ProcessingStep(Protocol):
    """
    Protocol for one step of order processing.

    Each step runs as a child span of the consumer span. A step signals
    failure by raising; the worker records it and skips the remaining steps.
    """

    name: str
    span_name: str

    def attributes(self, order: Order) -> dict[str, Any]:
        """Span attributes for this step."""
        ...

    async def run(self, order: Order) -> None:
        """Run the step for an order."""
        ...


class _SimulatedStep:
    """Step that simulates bounded work by sleeping for its duration."""

    name: ClassVar[str]
    span_name: ClassVar[str]

    def __init__(self, duration: float, sleep: Sleep = asyncio.sleep) -> None:
        self.duration = duration
        self._sleep = sleep

    def attributes(self, order: Order) -> dict[str, Any]:
        return {}

    async def run(self, order: Order) -> None:
        await self._sleep(self.duration)


class ValidateOrderStep(_SimulatedStep):
    """Rejects orders with a non-positive amount or no customer."""

    name = "validation"
    span_name = "ValidateOrder"

    async def run(self, order: Order) -> None:
        await super().run(order)
        if order.amount <= 0:
            raise OrderValidationError(order.id, f"amount must be positive, got {order.amount}")
        if not order.customer_id:
            raise OrderValidationError(order.id, "customer ID is required")


class ProcessPaymentStep(_SimulatedStep):
    name = "payment"
    span_name = "ProcessPayment"

    def attributes(self, order: Order) -> dict[str, Any]:
        return {ATTR_PAYMENT_AMOUNT: order.amount}

    async def run(self, order: Order) -> None:
        await super().run(order)
        logger.info(
            "Payment processed successfully",
            extra={"order_id": order.id, "amount": order.amount},
        )


class ShipOrderStep(_SimulatedStep):
    name = "shipping"
    span_name = "ShipOrder"

    def attributes(self, order: Order) -> dict[str, Any]:
        return {ATTR_CUSTOMER_ID: order.customer_id}

    async def run(self, order: Order) -> None:
        await super().run(order)
        logger.info(
            "Order shipped to customer",
            extra={"order_id": order.id, "customer_id": order.customer_id},
        )


def default_steps(
    timings: StepTimings | None = None,
    sleep: Sleep = asyncio.sleep,
) -> list[ProcessingStep]:
    """Build the validate, pay, ship step sequence."""
    timings = timings or StepTimings()
    return [
        ValidateOrderStep(timings.validation, sleep),
        ProcessPaymentStep(timings.payment, sleep),
        ShipOrderStep(timings.shipping, sleep),
    ]


class OrderWorker:
    """
    Processes orders from an OrderQueue with backward links to the producer.

    One OrderWorker instance is shared by all worker loops of a pool; each
    loop passes its own worker ID. Spans are owned by the loop that started
    them.

    Args:
        queue: Queue to consume from
        tracer: Optional custom Tracer instance. If not provided, one is
            created based on enable_tracing setting.
        enable_tracing: If True, emit traces. Ignored if tracer is
            explicitly provided.
        steps: Processing steps (default: default_steps(timings))
        timings: Step durations used for the default steps
        forward_channel: Channel to report finished spans on (optional)
        metrics: Metric instruments (default: WorkerMetrics on the global meter)
        clock: Monotonic clock in seconds, used for processing duration
    """

    def __init__(
        self,
        queue: OrderQueue,
        *,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
        steps: Sequence[ProcessingStep] | None = None,
        timings: StepTimings | None = None,
        forward_channel: ForwardLinkChannel | None = None,
        metrics: WorkerMetrics | None = None,
        clock: Callable[[], float] = time.perf_counter,
    ) -> None:
        self._queue = queue
        self._steps = list(steps) if steps is not None else default_steps(timings)
        self._forward_channel = forward_channel
        self._clock = clock
        self._active_orders = 0
        self._stats = {
            "orders_processed": 0,
            "orders_failed": 0,
            "orders_rejected": 0,
            "unlinked_orders": 0,
            "forward_links_sent": 0,
            "forward_links_dropped": 0,
        }

        self._metrics = metrics or WorkerMetrics()
        self._metrics.register_queue_depth(queue.depth)

        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._enable_tracing = self._tracer.enabled

    @property
    def active_orders(self) -> int:
        """Number of orders currently being processed."""
        return self._active_orders

    async def process_order(self, order: Order, worker_id: str) -> SpanContext:
        """
        Process one order under a CONSUMER span linked to its producer span.

        The consumer span starts a new trace. Its single backward link is
        omitted when the order's carrier does not decode.

        Args:
            order: Order to process
            worker_id: ID of the processing worker

        Returns:
            Context of the finished consumer span

        Raises:
            MessageValidationError: If the order has no ID. No span is started.
            ProcessingStepError: If a step fails. The remaining steps are skipped.
        """
        if not order.id:
            self._stats["orders_rejected"] += 1
            raise MessageValidationError("order ID is required")

        start_time = self._clock()
        producer_context, ok = order.span_context()
        if not ok:
            self._stats["unlinked_orders"] += 1
            logger.warning(
                f"Order {order.id} has no usable trace carrier, processing without link",
                extra={"order_id": order.id, "worker_id": worker_id},
            )

        link = build_link(
            producer_context,
            {
                ATTR_LINK_TYPE: LINK_TYPE_QUEUE_CONSUMPTION,
                ATTR_SOURCE_SERVICE: SOURCE_SERVICE,
                ATTR_LINK_DIRECTION: LINK_DIRECTION_BACKWARD,
            },
        )
        span = self._tracer.start_span(
            CONSUMER_SPAN_NAME,
            kind=SpanKindEnum.CONSUMER,
            attributes={
                ATTR_ORDER_ID: order.id,
                ATTR_CUSTOMER_ID: order.customer_id,
                ATTR_ORDER_AMOUNT: order.amount,
                ATTR_WORKER_ID: worker_id,
            },
            context=Context(),
            links=[link] if link is not None else None,
        )
        span_context = span.get_span_context()
        parent = trace.set_span_in_context(span)

        self._active_orders += 1
        try:
            logger.info(
                "Order processing started",
                extra={"order_id": order.id, "worker_id": worker_id, "amount": order.amount},
            )

            for step in self._steps:
                try:
                    with self._tracer.span_with_kind(
                        step.span_name,
                        attributes=step.attributes(order),
                        context=parent,
                    ):
                        await step.run(order)
                except Exception as e:
                    span.record_exception(e)
                    span.set_status(Status(StatusCode.ERROR, f"{step.name} failed: {e}"))
                    self._stats["orders_failed"] += 1
                    self._metrics.record_order_failed(worker_id, step.name, type(e).__name__)
                    raise ProcessingStepError(step.name, order.id, e) from e

            duration = self._clock() - start_time
            self._metrics.record_order_processed(worker_id, duration)
            span.set_status(Status(StatusCode.OK))
            self._stats["orders_processed"] += 1

            logger.info(
                "Order processing completed successfully",
                extra={"order_id": order.id, "worker_id": worker_id, "duration": duration},
            )
        finally:
            self._active_orders -= 1
            span.end()

        self._send_forward_link(order.id, span_context, worker_id)
        return span_context

    def _send_forward_link(self, order_id: str, span_context: SpanContext, worker_id: str) -> None:
        if self._forward_channel is None:
            return
        if self._forward_channel.try_send(OrderSpanContext(order_id, span_context)):
            self._stats["forward_links_sent"] += 1
            return
        # Forward-link delivery is best-effort
        self._stats["forward_links_dropped"] += 1
        logger.debug(
            f"Forward link channel full, dropped record for order {order_id}",
            extra={"order_id": order_id, "worker_id": worker_id},
        )

    async def process_orders(self, worker_id: str, cancel_event: asyncio.Event) -> int:
        """
        Consume and process orders until the token fires.

        Cancellation only interrupts the wait for the next order; an order
        already taken is processed to completion. A failed order is logged
        and the loop moves on.

        Args:
            worker_id: ID of this worker loop
            cancel_event: Cancellation token

        Returns:
            Number of orders taken from the queue by this loop
        """
        logger.info(f"Worker {worker_id} started", extra={"worker_id": worker_id})
        handled = 0

        while not cancel_event.is_set():
            try:
                order = await self._queue.consume(cancel_event)
            except OperationCancelledError:
                break

            handled += 1
            try:
                await self.process_order(order, worker_id)
            except (MessageValidationError, ProcessingStepError) as e:
                logger.error(
                    f"Failed to process order: {e}",
                    extra={"order_id": order.id, "worker_id": worker_id, "error": str(e)},
                )
            except Exception as e:
                logger.exception(
                    f"Unexpected error processing order: {e}",
                    extra={"order_id": order.id, "worker_id": worker_id, "error": str(e)},
                )
            finally:
                self._queue.task_done()

        logger.info(
            f"Worker {worker_id} stopped",
            extra={"worker_id": worker_id, "orders_handled": handled},
        )
        return handled

    def get_stats(self) -> dict[str, int]:
        """
        Get worker statistics.

        Returns:
            Dictionary of processing counters plus active orders
        """
        return {**self._stats, "active_orders": self._active_orders}


@dataclass(frozen=True)
class PoolShutdownResult:
    """
    Outcome of a worker pool shutdown.

    Attributes:
        stopped: Workers that exited within the grace period
        abandoned: Workers still running when the grace period ran out
    """

    stopped: tuple[str, ...] = ()
    abandoned: tuple[str, ...] = ()

    @property
    def clean(self) -> bool:
        """True if every worker stopped in time."""
        return not self.abandoned


class WorkerPool:
    """
    Runs N worker loops of an OrderWorker as asyncio tasks.

    Shutdown is cooperative: the token is fired, each loop stops at its next
    wait for an order, and the pool waits up to a grace period. Workers
    still busy after that are reported as abandoned and left to finish on
    their own; they are never interrupted mid-step.

    Args:
        worker: Worker whose loops the pool runs
        worker_count: Number of loops (>= 1)

    Raises:
        InvalidArgumentError: If worker_count < 1
    """

    def __init__(self, worker: OrderWorker, worker_count: int) -> None:
        if worker_count < 1:
            raise InvalidArgumentError(f"worker_count must be >= 1, got {worker_count}")
        self._worker = worker
        self._worker_count = worker_count
        self._cancel_event: asyncio.Event | None = None
        self._tasks: dict[str, asyncio.Task[int]] = {}
        self._abandoned: set[asyncio.Task[int]] = set()

    @property
    def worker_count(self) -> int:
        return self._worker_count

    @property
    def is_running(self) -> bool:
        """True if the pool has been started and not shut down."""
        return bool(self._tasks)

    def start(self, cancel_event: asyncio.Event | None = None) -> asyncio.Event:
        """
        Spawn one task per worker (``Worker-1`` .. ``Worker-N``).

        Args:
            cancel_event: Token the loops observe (a new one if omitted)

        Returns:
            The token that stops the loops

        Raises:
            RuntimeError: If the pool is already running
        """
        if self._tasks:
            raise RuntimeError("Worker pool is already running")

        self._cancel_event = cancel_event or asyncio.Event()
        for index in range(1, self._worker_count + 1):
            worker_id = f"Worker-{index}"
            self._tasks[worker_id] = asyncio.create_task(
                self._worker.process_orders(worker_id, self._cancel_event),
                name=worker_id,
            )

        logger.info(
            f"Starting {self._worker_count} workers",
            extra={"worker_count": self._worker_count},
        )
        return self._cancel_event

    async def shutdown(self, timeout: float = 5.0) -> PoolShutdownResult:
        """
        Fire the token and wait up to ``timeout`` seconds for the loops.

        Args:
            timeout: Grace period in seconds

        Returns:
            PoolShutdownResult listing stopped and abandoned workers
        """
        if not self._tasks:
            return PoolShutdownResult()

        assert self._cancel_event is not None
        self._cancel_event.set()

        tasks = self._tasks
        self._tasks = {}
        done, pending = await asyncio.wait(tasks.values(), timeout=timeout)

        stopped = tuple(worker_id for worker_id, task in tasks.items() if task in done)
        abandoned = tuple(worker_id for worker_id, task in tasks.items() if task in pending)

        for worker_id, task in tasks.items():
            if task in done and not task.cancelled() and task.exception() is not None:
                logger.error(
                    f"Worker {worker_id} failed: {task.exception()}",
                    exc_info=task.exception(),
                    extra={"worker_id": worker_id},
                )

        if abandoned:
            self._abandoned.update(pending)
            for task in pending:
                task.add_done_callback(self._abandoned.discard)
            logger.warning(
                "Shutdown timeout reached, some workers may not have stopped",
                extra={"abandoned_workers": list(abandoned), "timeout": timeout},
            )
        else:
            logger.info("All workers stopped successfully", extra={"worker_count": len(stopped)})

        return PoolShutdownResult(stopped=stopped, abandoned=abandoned)


__all__ = [
    "ProcessingStep",
    "ValidateOrderStep",
    "ProcessPaymentStep",
    "ShipOrderStep",
    "default_steps",
    "OrderWorker",
    "WorkerPool",
    "PoolShutdownResult",
    "CONSUMER_SPAN_NAME",
]
