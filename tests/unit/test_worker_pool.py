"""
Unit tests for WorkerPool.
"""

from __future__ import annotations

import asyncio

import pytest

from spanlinks.exceptions import InvalidArgumentError
from spanlinks.messages import Order
from spanlinks.worker import CONSUMER_SPAN_NAME, OrderWorker, PoolShutdownResult, WorkerPool


class GatedStep:
    """Step that waits until the test opens its gate."""

    name = "validation"
    span_name = "ValidateOrder"

    def __init__(self) -> None:
        self.gate = asyncio.Event()
        self.entered = asyncio.Event()

    def attributes(self, order):
        return {}

    async def run(self, order):
        self.entered.set()
        await self.gate.wait()


@pytest.fixture
def worker(tracer, order_queue, zero_timings, worker_metrics) -> OrderWorker:
    return OrderWorker(order_queue, tracer=tracer, timings=zero_timings, metrics=worker_metrics)


class TestWorkerPoolLifecycle:
    """Tests for start() and shutdown()."""

    @pytest.mark.parametrize("count", [0, -2])
    def test_invalid_worker_count(self, worker, count):
        with pytest.raises(InvalidArgumentError):
            WorkerPool(worker, worker_count=count)

    @pytest.mark.asyncio
    async def test_start_spawns_named_workers(self, worker):
        pool = WorkerPool(worker, worker_count=3)
        pool.start()

        names = {task.get_name() for task in asyncio.all_tasks()}
        assert {"Worker-1", "Worker-2", "Worker-3"} <= names
        assert pool.is_running

        result = await pool.shutdown(timeout=1.0)
        assert result.clean
        assert sorted(result.stopped) == ["Worker-1", "Worker-2", "Worker-3"]
        assert not pool.is_running

    @pytest.mark.asyncio
    async def test_start_twice_rejected(self, worker):
        pool = WorkerPool(worker, worker_count=1)
        pool.start()
        with pytest.raises(RuntimeError):
            pool.start()
        await pool.shutdown(timeout=1.0)

    @pytest.mark.asyncio
    async def test_shutdown_without_start(self, worker):
        result = await WorkerPool(worker, worker_count=2).shutdown(timeout=0.1)
        assert result == PoolShutdownResult()
        assert result.clean

    @pytest.mark.asyncio
    async def test_external_token_stops_workers(self, worker):
        pool = WorkerPool(worker, worker_count=2)
        cancel = asyncio.Event()
        assert pool.start(cancel) is cancel

        result = await pool.shutdown(timeout=1.0)
        assert cancel.is_set()
        assert result.clean

    @pytest.mark.asyncio
    async def test_workers_share_the_queue(self, worker, order_queue, find_spans):
        pool = WorkerPool(worker, worker_count=4)
        pool.start()

        orders = [Order.create(i) for i in range(20)]
        for order in orders:
            await order_queue.put(order)
        await order_queue.join()
        await pool.shutdown(timeout=1.0)

        processed = [span.attributes["order.id"] for span in find_spans(CONSUMER_SPAN_NAME)]
        assert sorted(processed) == sorted(order.id for order in orders)


class TestWorkerPoolShutdownTimeout:
    """Tests for workers that outlive the grace period."""

    @pytest.mark.asyncio
    async def test_busy_worker_is_abandoned_not_interrupted(
        self, tracer, order_queue, worker_metrics, find_spans
    ):
        step = GatedStep()
        worker = OrderWorker(order_queue, tracer=tracer, steps=[step], metrics=worker_metrics)
        pool = WorkerPool(worker, worker_count=1)
        pool.start()

        await order_queue.put(Order.create(0))
        await step.entered.wait()

        result = await pool.shutdown(timeout=0.05)
        assert result.abandoned == ("Worker-1",)
        assert not result.clean
        assert worker.active_orders == 1

        # The abandoned worker still finishes its order
        step.gate.set()
        await order_queue.join()
        assert len(find_spans(CONSUMER_SPAN_NAME)) == 1
        assert worker.get_stats()["orders_processed"] == 1
        await asyncio.sleep(0)
