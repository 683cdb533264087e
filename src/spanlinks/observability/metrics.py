"""
OpenTelemetry metrics for order processing.

This module provides metrics instrumentation for workers, tracking orders
processed, failures, processing duration and queue depth.

Metrics are observational only. Nothing in spanlinks reads them back for
flow-control decisions.

Example:
    >>> from spanlinks.observability.metrics import WorkerMetrics
    >>>
    >>> metrics = WorkerMetrics()
    >>> metrics.register_queue_depth(queue.depth)
    >>> metrics.record_order_processed("Worker-1", 0.37)
    >>> metrics.record_order_failed("Worker-1", "payment", "TimeoutError")

Metrics Exposed:
    - orders.processed (Counter): Total orders processed successfully
    - orders.failed (Counter): Total orders that failed a processing step
    - processing.duration (Histogram): Processing time in seconds
    - queue.depth (Gauge): Current number of queued orders, per queue.name
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from weakref import WeakKeyDictionary

from opentelemetry import metrics
from opentelemetry.metrics import CallbackOptions, Meter, Observation

from spanlinks.exceptions import InvalidArgumentError
from spanlinks.observability.attributes import (
    ATTR_ERROR_TYPE,
    ATTR_ORDER_STATUS,
    ATTR_PROCESSING_STEP,
    ATTR_QUEUE_NAME,
    ATTR_WORKER_ID,
)

logger = logging.getLogger(__name__)

METER_NAME = "spanlinks.worker"


class WorkerMetrics:
    """
    Container for worker OpenTelemetry metric instruments.

    Instruments are created once at initialization and reused throughout
    the worker lifecycle. The queue depth gauge is registered separately
    because it needs a callback bound to a specific queue.

    Attributes:
        orders_processed: Counter for successfully processed orders.
            Attributes: order.status, worker.id
        orders_failed: Counter for orders that failed a processing step.
            Attributes: worker.id, processing.step, error.type
        processing_duration: Histogram for processing time in seconds.
            Attributes: worker.id
    """

    def __init__(self, meter: Meter | None = None) -> None:
        """
        Initialize metric instruments.

        Args:
            meter: OpenTelemetry meter instance for creating instruments.
                Defaults to the global meter named ``spanlinks.worker``.
        """
        self._meter = meter or metrics.get_meter(METER_NAME)
        self._queue_depth_registered = False

        self.orders_processed = self._meter.create_counter(
            name="orders.processed",
            description="Total orders processed",
            unit="orders",
        )
        self.orders_failed = self._meter.create_counter(
            name="orders.failed",
            description="Total orders that failed processing",
            unit="orders",
        )
        self.processing_duration = self._meter.create_histogram(
            name="processing.duration",
            description="Order processing duration in seconds",
            unit="s",
        )

    def record_order_processed(self, worker_id: str, duration_seconds: float) -> None:
        """Record a successfully processed order and its duration."""
        self.orders_processed.add(
            1,
            {ATTR_ORDER_STATUS: "success", ATTR_WORKER_ID: worker_id},
        )
        self.processing_duration.record(duration_seconds, {ATTR_WORKER_ID: worker_id})

    def record_order_failed(self, worker_id: str, step: str, error_type: str) -> None:
        """Record an order that failed the given processing step."""
        self.orders_failed.add(
            1,
            {
                ATTR_WORKER_ID: worker_id,
                ATTR_PROCESSING_STEP: step,
                ATTR_ERROR_TYPE: error_type,
            },
        )

    def register_queue_depth(
        self,
        depth: Callable[[], int],
        queue_name: str | None = None,
    ) -> None:
        """
        Register a queue with the queue depth observable gauge.

        The callback is invoked by the OpenTelemetry SDK at its collection
        interval. One ``queue.depth`` gauge exists per meter; every queue
        registered on that meter is reported as its own observation, told
        apart by the ``queue.name`` attribute. Each instance registers at
        most one queue.

        Args:
            depth: Non-blocking callable returning the current queue depth
            queue_name: Value of the ``queue.name`` attribute
                (default: ``queue-<n>`` in registration order)
        """
        if self._queue_depth_registered:
            return

        gauge = _QUEUE_DEPTH_GAUGES.get(self._meter)
        if gauge is None:
            gauge = _QueueDepthGauge(self._meter)
            _QUEUE_DEPTH_GAUGES[self._meter] = gauge
        name = gauge.add(depth, queue_name)
        self._queue_depth_registered = True
        logger.debug(f"Queue depth gauge registered for {name}", extra={"queue_name": name})


class _QueueDepthGauge:
    """The single ``queue.depth`` gauge of a meter and the queues it reports."""

    def __init__(self, meter: Meter) -> None:
        self._sources: dict[str, Callable[[], int]] = {}
        meter.create_observable_gauge(
            name="queue.depth",
            callbacks=[self._observe],
            description="Current queue depth",
            unit="1",
        )

    def add(self, depth: Callable[[], int], queue_name: str | None) -> str:
        name = queue_name or f"queue-{len(self._sources) + 1}"
        if name in self._sources:
            raise InvalidArgumentError(f"queue depth already registered for {name}")
        self._sources[name] = depth
        return name

    def _observe(self, options: CallbackOptions) -> Iterable[Observation]:
        for name, depth in self._sources.items():
            yield Observation(depth(), attributes={"metric.type": "gauge", ATTR_QUEUE_NAME: name})


_QUEUE_DEPTH_GAUGES: WeakKeyDictionary[Meter, _QueueDepthGauge] = WeakKeyDictionary()


__all__ = ["METER_NAME", "WorkerMetrics"]
