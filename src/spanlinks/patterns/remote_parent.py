"""
Remote-parent hand-off: the parent-child alternative to span links.

A parent span ends immediately and hands its context to an async worker
through a propagated carrier. The worker starts a child under the remote
parent after a delay. The trace then shows a child starting long after its
parent ended, which inflates the apparent end-to-end duration. Span links
avoid this by keeping the two sides in separate traces.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass

from opentelemetry import trace
from opentelemetry.context import Context
from opentelemetry.propagators.textmap import TextMapPropagator
from opentelemetry.trace import SpanContext
from opentelemetry.trace.propagation.tracecontext import TraceContextTextMapPropagator

from spanlinks.config import Sleep
from spanlinks.observability import SpanKindEnum, Tracer
from spanlinks.observability.attributes import ATTR_GAP_DELAY_MS, ATTR_NOTE

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RemoteParentHandoffResult:
    """
    Spans produced by remote_parent_handoff().

    Attributes:
        parent_span_context: Context of the ParentRequest span
        child_span_context: Context of the AsyncWorkerChild span
        gap_seconds: Time between the parent ending and the child starting
    """

    parent_span_context: SpanContext
    child_span_context: SpanContext
    gap_seconds: float


async def remote_parent_handoff(
    tracer: Tracer,
    delay: float = 2.0,
    *,
    propagator: TextMapPropagator | None = None,
    sleep: Sleep = asyncio.sleep,
    clock: Callable[[], float] = time.perf_counter,
) -> RemoteParentHandoffResult:
    """
    Hand a finished parent's context to an async worker and start a child under it.

    Args:
        tracer: Tracer to create spans with
        delay: Hand-off delay in seconds before the child starts
        propagator: Propagator for the carrier (default W3C TraceContext)
        sleep: Coroutine used to simulate the hand-off delay
        clock: Monotonic clock in seconds, used to measure the gap

    Returns:
        RemoteParentHandoffResult with both span contexts and the gap
    """
    propagator = propagator or TraceContextTextMapPropagator()
    delay_ms = int(delay * 1000)
    handoff: asyncio.Queue[dict[str, str]] = asyncio.Queue(maxsize=1)

    parent = tracer.start_span(
        "ParentRequest",
        attributes={ATTR_NOTE: "ends immediately", ATTR_GAP_DELAY_MS: delay_ms},
    )
    parent.end()
    parent_ended_at = clock()

    carrier: dict[str, str] = {}
    propagator.inject(carrier, context=trace.set_span_in_context(parent))
    handoff.put_nowait(carrier)

    async def async_worker() -> tuple[SpanContext, float]:
        received = await handoff.get()
        if delay > 0:
            await sleep(delay)
        remote_context = propagator.extract(received, context=Context())

        with tracer.span_with_kind(
            "AsyncWorkerChild",
            kind=SpanKindEnum.CONSUMER,
            attributes={ATTR_NOTE: "remote-parent-handshake", ATTR_GAP_DELAY_MS: delay_ms},
            context=remote_context,
        ) as child:
            return child.get_span_context(), clock()

    child_context, child_started_at = await asyncio.create_task(async_worker())
    gap = child_started_at - parent_ended_at

    logger.info(
        f"Child started {gap:.3f}s after its remote parent ended",
        extra={"gap_seconds": gap, "delay_ms": delay_ms},
    )
    return RemoteParentHandoffResult(
        parent_span_context=parent.get_span_context(),
        child_span_context=child_context,
        gap_seconds=gap,
    )
