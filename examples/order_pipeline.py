"""
Order Pipeline Example

This example demonstrates span links across a queue boundary:
- A producer publishing a batch of orders, one item span per order
- Workers consuming the orders in new traces, linking back to the item spans
- Forward mode, where the producer keeps its item spans open and links them
  forward to the consumer spans once the workers report back
- A continuous run stopped by a cancellation token

The single-batch runs collect spans in memory and print their links. The
continuous run prints each span through the console exporter.

Run with: python -m examples.order_pipeline
"""

import asyncio
import logging

from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter

from spanlinks import (
    OpenTelemetryTracer,
    OrderPipeline,
    PipelineConfig,
    StepTimings,
    configure_tracing,
    shutdown_tracing,
)
from spanlinks.producer import ITEM_SPAN_NAME
from spanlinks.worker import CONSUMER_SPAN_NAME

# =============================================================================
# Configure Logging
# =============================================================================
# Enable INFO level to see producer, worker and shutdown messages

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

# Short step timings keep the demo quick
DEMO_TIMINGS = StepTimings(validation=0.01, payment=0.015, shipping=0.012)


def print_links(exporter: InMemorySpanExporter) -> None:
    """Print the links recorded on item and consumer spans."""
    for span in exporter.get_finished_spans():
        if span.name not in (ITEM_SPAN_NAME, CONSUMER_SPAN_NAME):
            continue
        order_id = span.attributes.get("order.id")
        for link in span.links:
            print(
                f"   {span.name:<13} {order_id} -> span {link.context.span_id:016x} "
                f"({link.attributes.get('link.direction')})"
            )


async def run_mode(forward_links: bool) -> None:
    exporter = InMemorySpanExporter()
    provider = configure_tracing("span-links-demo", exporter)
    tracer = OpenTelemetryTracer(__name__, tracer_provider=provider)

    config = PipelineConfig(
        batch_size=3,
        worker_count=2,
        step_timings=DEMO_TIMINGS,
        forward_links=forward_links,
    )
    pipeline = OrderPipeline(config, tracer=tracer)
    result = await pipeline.run_single_batch()

    print(f"   Published: {result.batch.published_count}/{result.batch.total_count}")
    print(f"   Drained: {result.drained}, clean shutdown: {result.shutdown.clean}")
    if result.forward_report is not None:
        report = result.forward_report
        print(f"   Forward links: {len(report.linked)} linked, {len(report.unlinked)} unlinked")
    print_links(exporter)

    shutdown_tracing(provider)


async def run_continuously(duration: float) -> None:
    provider = configure_tracing("span-links-demo")
    tracer = OpenTelemetryTracer(__name__, tracer_provider=provider)

    config = PipelineConfig(
        batch_size=2,
        worker_count=2,
        publish_interval=0.5,
        step_timings=DEMO_TIMINGS,
    )
    pipeline = OrderPipeline(config, tracer=tracer)
    stop = asyncio.Event()

    run_task = asyncio.create_task(pipeline.run(stop))
    await asyncio.sleep(duration)
    stop.set()
    result = await run_task

    print(f"   Cycles: {result.cycles}, clean shutdown: {result.shutdown.clean}")
    print(f"   Worker stats: {pipeline.worker.get_stats()}")
    shutdown_tracing(provider)


async def main() -> None:
    print("=" * 60)
    print("Span Links Order Pipeline")
    print("=" * 60)

    print("\n1. Closed mode: consumers link back to the producer")
    await run_mode(forward_links=False)

    print("\n2. Forward mode: producer item spans also link to the consumers")
    await run_mode(forward_links=True)

    print("\n3. Continuous run for 1.2 seconds (spans printed by the console exporter)")
    await run_continuously(1.2)

    print("\n" + "=" * 60)
    print("Example completed successfully!")
    print("=" * 60)


if __name__ == "__main__":
    asyncio.run(main())
