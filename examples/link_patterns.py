"""
Link Patterns Example

This example runs each span link topology once:
- Fan-out: one batch span, one new trace per item linking back to it
- Fan-in: independent producer traces, one aggregator linking to all
- Retry chain: every retry in a new trace linking to the original attempt
- Scatter/gather: shard queries and an aggregator in one trace
- Remote parent hand-off: the parent-child alternative, for comparison

Run with: python -m examples.link_patterns
"""

import asyncio
import logging
import random

from opentelemetry.trace import format_span_id, format_trace_id

from spanlinks import OpenTelemetryTracer, configure_tracing, shutdown_tracing
from spanlinks.patterns import (
    RetryChainConfig,
    fan_in,
    fan_out,
    remote_parent_handoff,
    retry_chain,
    scatter_gather,
    simulated_operation,
)

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


async def main() -> None:
    provider = configure_tracing("span-links-patterns", set_global=False)
    tracer = OpenTelemetryTracer(__name__, tracer_provider=provider)

    print("=" * 60)
    print("Span Link Patterns")
    print("=" * 60)

    print("\n1. Fan-out (1 -> N)")
    fan_out_result = await fan_out(tracer, item_delay=0.05)
    print(f"   Batch {fan_out_result.batch_id}")
    print(f"   Root trace: {format_trace_id(fan_out_result.root_span_context.trace_id)}")
    for item_context in fan_out_result.item_span_contexts:
        print(f"   Item trace: {format_trace_id(item_context.trace_id)}")

    print("\n2. Fan-in (N -> 1)")
    fan_in_result = await fan_in(tracer, producer_count=3, produce_delay=0.05)
    print(f"   Aggregated items: {', '.join(fan_in_result.items)}")
    print(f"   Aggregator links: {len(fan_in_result.producer_span_contexts)}")

    print("\n3. Retry chain")
    operation = simulated_operation(success_rate=0.7, rng=random.Random(42))  # nosec B311
    retry_result = await retry_chain(
        tracer,
        operation,
        request_id="req-123",
        config=RetryChainConfig(max_attempts=3, initial_delay=0.05),
    )
    for record in retry_result.attempts:
        outcome = "ok" if record.succeeded else f"failed ({record.error})"
        print(f"   Attempt {record.attempt}: {outcome}")
    print(f"   Succeeded: {retry_result.succeeded}")

    print("\n4. Scatter/gather in one trace")
    gather_result = await scatter_gather(tracer, query_delay=0.03, aggregate_delay=0.01)
    print(f"   Trace: {format_trace_id(gather_result.root_span_context.trace_id)}")
    print(f"   Aggregator: {format_span_id(gather_result.aggregator_span_context.span_id)}")
    print(f"   Shards linked: {len(gather_result.shard_span_contexts)}")

    print("\n5. Scatter/gather with forward links")
    forward_result = await scatter_gather(
        tracer, query_delay=0.03, aggregate_delay=0.01, forward_links=True
    )
    print(f"   Shards linked both ways: {len(forward_result.shard_span_contexts)}")

    print("\n6. Remote parent hand-off (no links)")
    handoff = await remote_parent_handoff(tracer, delay=0.2)
    print(f"   Child started {handoff.gap_seconds:.3f}s after its parent ended")

    shutdown_tracing(provider)

    print("\n" + "=" * 60)
    print("Example completed successfully!")
    print("=" * 60)


if __name__ == "__main__":
    asyncio.run(main())
