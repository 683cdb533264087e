"""
Configuration classes for the order pipeline.

This module provides:
- StepTimings: Simulated durations of the worker processing steps
- PipelineConfig: Queue, producer, worker pool and forward-link settings
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

from spanlinks.exceptions import InvalidArgumentError

Sleep = Callable[[float], Awaitable[Any]]
"""Coroutine function used to simulate work (``asyncio.sleep`` by default)."""


@dataclass(frozen=True)
class StepTimings:
    """
    Simulated work duration of each processing step, in seconds.

    Attributes:
        validation: Duration of the ValidateOrder step
        payment: Duration of the ProcessPayment step
        shipping: Duration of the ShipOrder step

    Example:
        >>> # No simulated work, e.g. in tests
        >>> timings = StepTimings(validation=0, payment=0, shipping=0)
    """

    validation: float = 0.100
    payment: float = 0.150
    shipping: float = 0.120

    def __post_init__(self) -> None:
        """Validate configuration values."""
        for name in ("validation", "payment", "shipping"):
            value = getattr(self, name)
            if value < 0:
                raise InvalidArgumentError(f"{name} duration must be >= 0, got {value}.")

    @classmethod
    def zero(cls) -> StepTimings:
        """Timings with no simulated work."""
        return cls(validation=0.0, payment=0.0, shipping=0.0)


@dataclass(frozen=True)
class PipelineConfig:
    """
    Configuration for an order pipeline.

    Attributes:
        queue_capacity: Maximum number of orders buffered in the queue
        batch_size: Number of orders published per cycle
        worker_count: Number of concurrent workers
        publish_interval: Seconds between publish cycles
        forward_links: Keep item spans open until workers report back
            and add forward links to them
        forward_channel_capacity: Capacity of the forward-link side channel
            (None = same as queue_capacity)
        collection_timeout: Max seconds to wait for forward links per cycle
        shutdown_timeout: Max seconds to wait for workers during shutdown
        step_timings: Simulated durations of the processing steps

    Example:
        >>> config = PipelineConfig(batch_size=3, worker_count=2, forward_links=True)
    """

    # Queue settings
    queue_capacity: int = 100

    # Producer settings
    batch_size: int = 10
    publish_interval: float = 2.0

    # Worker settings
    worker_count: int = 2
    step_timings: StepTimings = field(default_factory=StepTimings)

    # Forward links
    forward_links: bool = False
    forward_channel_capacity: int | None = None
    collection_timeout: float = 5.0

    # Timeouts
    shutdown_timeout: float = 5.0

    def __post_init__(self) -> None:
        """Validate configuration values."""
        if self.queue_capacity < 1:
            raise InvalidArgumentError(
                f"queue_capacity must be positive, got {self.queue_capacity}. "
                "Use a value like 100 (default)."
            )

        if self.batch_size < 1:
            raise InvalidArgumentError(
                f"batch_size must be positive, got {self.batch_size}. "
                "Use a value like 10 (default)."
            )

        if self.worker_count < 1:
            raise InvalidArgumentError(
                f"worker_count must be positive, got {self.worker_count}. "
                "Use a value like 2 (default)."
            )

        if self.forward_channel_capacity is not None and self.forward_channel_capacity < 1:
            raise InvalidArgumentError(
                f"forward_channel_capacity must be positive, got {self.forward_channel_capacity}."
            )

        if self.publish_interval <= 0:
            raise InvalidArgumentError(f"publish_interval must be positive, got {self.publish_interval}.")

        if self.collection_timeout <= 0:
            raise InvalidArgumentError(
                f"collection_timeout must be positive, got {self.collection_timeout}."
            )

        if self.shutdown_timeout <= 0:
            raise InvalidArgumentError(
                f"shutdown_timeout must be positive, got {self.shutdown_timeout}. "
                "Use a value like 5.0 (default) seconds."
            )

    @property
    def effective_forward_channel_capacity(self) -> int:
        """Forward channel capacity, falling back to the queue capacity."""
        if self.forward_channel_capacity is None:
            return self.queue_capacity
        return self.forward_channel_capacity


__all__ = ["Sleep", "StepTimings", "PipelineConfig"]
