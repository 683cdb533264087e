"""
Retry chain: every retry starts a new trace and links back to an earlier attempt.

This module provides:
- LinkPolicy: Which earlier attempt a retry links to
- RetryChainConfig: Attempt budget, backoff and link policy
- calculate_backoff: Delay before a retry
- retry_chain: Run an operation with linked retry attempts
- simulated_operation: Operation whose first attempt always fails
"""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum

from opentelemetry.context import Context
from opentelemetry.trace import SpanContext, Status, StatusCode

from spanlinks.config import Sleep
from spanlinks.exceptions import AttemptFailedError
from spanlinks.observability import Tracer, build_link
from spanlinks.observability.attributes import (
    ATTR_ATTEMPT,
    ATTR_IS_RETRY,
    ATTR_LINK_TYPE,
    ATTR_ORIGINAL_REQUEST_ID,
    ATTR_REQUEST_ID,
    ATTR_RETRY_ATTEMPT,
)

logger = logging.getLogger(__name__)

Operation = Callable[[int], Awaitable[None]]
"""Async operation taking the 1-based attempt number; raises on failure."""


class LinkPolicy(Enum):
    """
    Which earlier attempt a retry attempt links back to.

    Attributes:
        ORIGINAL: Every retry links to attempt 1 (default)
        PREVIOUS: Every retry links to the attempt immediately before it
    """

    ORIGINAL = "original"
    PREVIOUS = "previous"


@dataclass(frozen=True)
class RetryChainConfig:
    """
    Configuration for a retry chain.

    Attributes:
        max_attempts: Total attempts including the original (>= 1)
        initial_delay: Delay in seconds before the first retry
        max_delay: Maximum delay in seconds between attempts
        exponential_base: Base for exponential backoff calculation
        jitter: Fraction of delay to add as random jitter (0-1)
        link_policy: Which earlier attempt each retry links to

    Example:
        >>> config = RetryChainConfig(max_attempts=5, initial_delay=0.1)
    """

    max_attempts: int = 3
    initial_delay: float = 0.2
    max_delay: float = 5.0
    exponential_base: float = 2.0
    jitter: float = 0.0
    link_policy: LinkPolicy = LinkPolicy.ORIGINAL

    def __post_init__(self) -> None:
        """Validate configuration values."""
        if self.max_attempts < 1:
            raise ValueError(
                f"max_attempts must be >= 1, got {self.max_attempts}. Use 1 for no retries."
            )

        if self.initial_delay < 0:
            raise ValueError(f"initial_delay must be >= 0, got {self.initial_delay}.")

        if self.max_delay < self.initial_delay:
            raise ValueError(
                f"max_delay ({self.max_delay}) must be >= initial_delay ({self.initial_delay})."
            )

        if self.exponential_base < 1.0:
            raise ValueError(f"exponential_base must be >= 1.0, got {self.exponential_base}.")

        if not 0.0 <= self.jitter <= 1.0:
            raise ValueError(f"jitter must be between 0.0 and 1.0, got {self.jitter}.")


def calculate_backoff(retry_index: int, config: RetryChainConfig) -> float:
    """
    Calculate the delay before a retry.

    Args:
        retry_index: 0 for the first retry, 1 for the second, ...
        config: Retry chain configuration

    Returns:
        Delay in seconds

    Example:
        >>> config = RetryChainConfig(initial_delay=0.2, max_delay=5.0)
        >>> calculate_backoff(0, config)
        0.2
        >>> calculate_backoff(2, config)
        0.8
    """
    delay = config.initial_delay * (config.exponential_base**retry_index)
    delay = min(delay, config.max_delay)

    if config.jitter:
        jitter_range = delay * config.jitter
        delay += random.uniform(-jitter_range, jitter_range)  # nosec B311 - not crypto

    return max(0.0, delay)


@dataclass(frozen=True)
class AttemptRecord:
    """
    One attempt of a retry chain.

    Attributes:
        attempt: 1-based attempt number
        span_context: Context of the attempt's ProcessRequest span
        succeeded: Whether the operation succeeded
        linked_to: Context of the attempt this one links to (None for attempt 1)
        error: Error message if the attempt failed
    """

    attempt: int
    span_context: SpanContext
    succeeded: bool
    linked_to: SpanContext | None = None
    error: str | None = None


@dataclass(frozen=True)
class RetryChainResult:
    """
    Outcome of retry_chain().

    Attributes:
        request_id: ID of the retried request
        succeeded: Whether any attempt succeeded
        attempts: Every attempt made, in order
    """

    request_id: str
    succeeded: bool
    attempts: tuple[AttemptRecord, ...]

    @property
    def original_span_context(self) -> SpanContext:
        """Context of the original attempt."""
        return self.attempts[0].span_context


async def retry_chain(
    tracer: Tracer,
    operation: Operation,
    request_id: str = "req-123",
    config: RetryChainConfig | None = None,
    *,
    sleep: Sleep = asyncio.sleep,
) -> RetryChainResult:
    """
    Run an operation, retrying failed attempts in new linked traces.

    The original attempt runs in the current context. Each retry starts a
    new trace and carries exactly one backward link to an earlier attempt,
    chosen by ``config.link_policy``. The chain stops at the first success
    or once ``config.max_attempts`` attempts have been made.

    Args:
        tracer: Tracer to create spans with
        operation: Operation to run; raises to signal failure
        request_id: ID of the request being retried
        config: Retry chain configuration (default RetryChainConfig())
        sleep: Coroutine used to wait between attempts

    Returns:
        RetryChainResult describing every attempt
    """
    config = config or RetryChainConfig()
    records: list[AttemptRecord] = []

    for attempt in range(1, config.max_attempts + 1):
        attributes: dict[str, object] = {ATTR_REQUEST_ID: request_id, ATTR_ATTEMPT: attempt}
        context: Context | None = None
        link_target: SpanContext | None = None
        links = None

        if attempt > 1:
            delay = calculate_backoff(attempt - 2, config)
            logger.info(
                f"Retrying request (request.id={request_id} attempt={attempt} "
                f"max_attempts={config.max_attempts})",
                extra={"request_id": request_id, "attempt": attempt, "delay": delay},
            )
            await sleep(delay)

            if config.link_policy is LinkPolicy.ORIGINAL:
                link_target = records[0].span_context
            else:
                link_target = records[-1].span_context
            link = build_link(
                link_target,
                {
                    ATTR_LINK_TYPE: "retry",
                    ATTR_RETRY_ATTEMPT: attempt,
                    ATTR_ORIGINAL_REQUEST_ID: request_id,
                },
            )
            links = [link] if link is not None else None
            attributes[ATTR_IS_RETRY] = True
            context = Context()

        with tracer.span_with_kind(
            "ProcessRequest",
            attributes=attributes,
            context=context,
            links=links,
        ) as span:
            error: str | None = None
            try:
                await operation(attempt)
            except Exception as e:
                error = str(e)
                span.record_exception(e)
                span.set_status(Status(StatusCode.ERROR, "Processing failed"))
            else:
                span.add_event("Processing succeeded", {"status": "success"})
                span.set_status(Status(StatusCode.OK))

        records.append(
            AttemptRecord(
                attempt=attempt,
                span_context=span.get_span_context(),
                succeeded=error is None,
                linked_to=link_target,
                error=error,
            )
        )

        if error is None:
            logger.info(
                f"Request processed successfully (request.id={request_id} attempt={attempt})",
                extra={"request_id": request_id, "attempt": attempt},
            )
            return RetryChainResult(request_id=request_id, succeeded=True, attempts=tuple(records))

    logger.warning(
        f"Request failed after all attempts (request.id={request_id} "
        f"max_attempts={config.max_attempts})",
        extra={"request_id": request_id, "max_attempts": config.max_attempts},
    )
    return RetryChainResult(request_id=request_id, succeeded=False, attempts=tuple(records))


def simulated_operation(
    success_rate: float = 0.7,
    rng: random.Random | None = None,
    work_delay: float = 0.05,
    *,
    sleep: Sleep = asyncio.sleep,
) -> Operation:
    """
    Build an operation whose first attempt always fails.

    Later attempts succeed with probability ``success_rate``.

    Args:
        success_rate: Success probability of attempts after the first (0-1)
        rng: Random source (default: a new unseeded Random)
        work_delay: Simulated work per attempt in seconds
        sleep: Coroutine used to simulate work
    """
    rng = rng or random.Random()  # nosec B311 - not crypto

    async def operation(attempt: int) -> None:
        await sleep(work_delay)
        if attempt == 1 or rng.random() >= success_rate:
            raise AttemptFailedError(attempt)

    return operation
