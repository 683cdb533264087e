"""
Order pipeline orchestration.

Wires a queue, a producer, a worker and a worker pool (plus the forward-link
channel in forward mode) from a PipelineConfig, and runs them either
continuously until cancelled or for a single batch.

Example:
    >>> pipeline = OrderPipeline(PipelineConfig(batch_size=3), tracer=tracer)
    >>> result = await pipeline.run_single_batch()
    >>> result.drained
    True
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

from opentelemetry.metrics import Meter

from spanlinks.config import PipelineConfig
from spanlinks.observability import Tracer, WorkerMetrics
from spanlinks.producer import ForwardLinkReport, OpenBatch, OrderProducer, PublishedBatch
from spanlinks.queue import ForwardLinkChannel, OrderQueue
from spanlinks.worker import OrderWorker, PoolShutdownResult, WorkerPool

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PipelineRunResult:
    """
    Outcome of a continuous run.

    Attributes:
        cycles: Number of publish cycles run
        shutdown: Worker pool shutdown outcome
    """

    cycles: int
    shutdown: PoolShutdownResult


@dataclass(frozen=True)
class SingleBatchResult:
    """
    Outcome of a single-batch run.

    Attributes:
        batch: The published batch (already ended in both modes)
        forward_report: Collection phase outcome (forward mode only)
        drained: Whether every published order was handled before the
            drain timeout
        shutdown: Worker pool shutdown outcome
    """

    batch: PublishedBatch | OpenBatch
    forward_report: ForwardLinkReport | None
    drained: bool
    shutdown: PoolShutdownResult


class OrderPipeline:
    """
    Producer, queue and worker pool built from one configuration.

    Args:
        config: Pipeline configuration (default PipelineConfig())
        tracer: Tracer shared by producer and workers. If not provided,
            each component creates its own based on enable_tracing.
        enable_tracing: If True, emit traces. Ignored if tracer is
            explicitly provided.
        meter: Meter for the worker metrics (default: global meter)
    """

    def __init__(
        self,
        config: PipelineConfig | None = None,
        *,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
        meter: Meter | None = None,
    ) -> None:
        self._config = config or PipelineConfig()

        self._queue = OrderQueue(self._config.queue_capacity)
        self._forward_channel: ForwardLinkChannel | None = None
        if self._config.forward_links:
            self._forward_channel = ForwardLinkChannel(
                self._config.effective_forward_channel_capacity
            )

        self._producer = OrderProducer(
            self._queue,
            tracer=tracer,
            enable_tracing=enable_tracing,
        )
        self._worker = OrderWorker(
            self._queue,
            tracer=tracer,
            enable_tracing=enable_tracing,
            timings=self._config.step_timings,
            forward_channel=self._forward_channel,
            metrics=WorkerMetrics(meter),
        )
        self._pool = WorkerPool(self._worker, self._config.worker_count)

    @property
    def config(self) -> PipelineConfig:
        return self._config

    @property
    def queue(self) -> OrderQueue:
        return self._queue

    @property
    def forward_channel(self) -> ForwardLinkChannel | None:
        return self._forward_channel

    @property
    def producer(self) -> OrderProducer:
        return self._producer

    @property
    def worker(self) -> OrderWorker:
        return self._worker

    @property
    def pool(self) -> WorkerPool:
        return self._pool

    async def run(self, cancel_event: asyncio.Event) -> PipelineRunResult:
        """
        Run workers and the periodic publisher until the token fires.

        The workers are then given ``shutdown_timeout`` seconds to stop.

        Args:
            cancel_event: Token that stops the publisher and the workers

        Returns:
            PipelineRunResult with the cycle count and shutdown outcome
        """
        self._pool.start(cancel_event)
        try:
            cycles = await self._producer.run_periodic(
                self._config.batch_size,
                self._config.publish_interval,
                cancel_event,
                forward_channel=self._forward_channel,
                collection_timeout=self._config.collection_timeout,
            )
        finally:
            logger.info("Shutdown signal received, initiating graceful shutdown")
            shutdown = await self._pool.shutdown(self._config.shutdown_timeout)

        logger.info("Application shutdown complete", extra={"cycles": cycles})
        return PipelineRunResult(cycles=cycles, shutdown=shutdown)

    async def run_single_batch(
        self,
        batch_size: int | None = None,
        drain_timeout: float = 30.0,
    ) -> SingleBatchResult:
        """
        Publish one batch and run the workers until it has been handled.

        In forward mode the batch is published with open spans and the
        collection phase runs while the workers process it.

        Args:
            batch_size: Orders to publish (default: config batch_size)
            drain_timeout: Max seconds to wait for the workers to handle
                every published order

        Returns:
            SingleBatchResult for the batch
        """
        size = batch_size if batch_size is not None else self._config.batch_size
        forward_report: ForwardLinkReport | None = None
        drained = False

        self._pool.start()
        try:
            batch: PublishedBatch | OpenBatch
            if self._forward_channel is None:
                batch = await self._producer.publish_order_batch(size)
            else:
                batch = await self._producer.publish_order_batch_with_open_spans(size)
                forward_report = await self._producer.collect_forward_links(
                    batch,
                    self._forward_channel,
                    self._config.collection_timeout,
                )

            try:
                await asyncio.wait_for(self._queue.join(), timeout=drain_timeout)
                drained = True
            except TimeoutError:
                logger.warning(
                    f"Queue not drained within {drain_timeout}s",
                    extra={"queue_depth": self._queue.depth(), "timeout": drain_timeout},
                )
        finally:
            shutdown = await self._pool.shutdown(self._config.shutdown_timeout)

        return SingleBatchResult(
            batch=batch,
            forward_report=forward_report,
            drained=drained,
            shutdown=shutdown,
        )


__all__ = ["OrderPipeline", "PipelineRunResult", "SingleBatchResult"]
