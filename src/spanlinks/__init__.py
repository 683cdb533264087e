"""
spanlinks - Span link topologies for asynchronous work with OpenTelemetry.

This library provides:
- A trace carrier codec that survives a queue payload
- A bounded order queue with cancellable blocking calls
- An order producer with backward and forward link modes
- A worker pool that links consumer spans back to their producers
- Link-topology patterns (fan-out, fan-in, retry chain, scatter/gather)
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("spanlinks-py")
except PackageNotFoundError:
    # Package not installed (running from source without install)
    __version__ = "0.0.0.dev0"

from spanlinks.config import PipelineConfig, StepTimings
from spanlinks.exceptions import (
    AttemptFailedError,
    BatchPublishError,
    InvalidArgumentError,
    MessageValidationError,
    OperationCancelledError,
    OrderValidationError,
    ProcessingStepError,
    PublishError,
    SpanLinksError,
)
from spanlinks.messages import Order, OrderSpanContext
from spanlinks.observability import (
    NullTracer,
    OpenTelemetryTracer,
    SpanKindEnum,
    Tracer,
    WorkerMetrics,
    build_link,
    create_tracer,
    decode_carrier,
    encode_carrier,
    same_span,
)
from spanlinks.pipeline import OrderPipeline, PipelineRunResult, SingleBatchResult
from spanlinks.producer import (
    ForwardLinkReport,
    OpenBatch,
    OpenSpanRegistry,
    OrderProducer,
    PublishedBatch,
)
from spanlinks.queue import BoundedQueue, ForwardLinkChannel, OrderQueue
from spanlinks.telemetry import configure_tracing, shutdown_tracing
from spanlinks.worker import (
    OrderWorker,
    PoolShutdownResult,
    ProcessingStep,
    ProcessPaymentStep,
    ShipOrderStep,
    ValidateOrderStep,
    WorkerPool,
    default_steps,
)

__all__ = [
    "__version__",
    # Configuration
    "PipelineConfig",
    "StepTimings",
    # Exceptions
    "SpanLinksError",
    "InvalidArgumentError",
    "OperationCancelledError",
    "PublishError",
    "BatchPublishError",
    "MessageValidationError",
    "OrderValidationError",
    "ProcessingStepError",
    "AttemptFailedError",
    # Messages
    "Order",
    "OrderSpanContext",
    # Observability
    "Tracer",
    "NullTracer",
    "OpenTelemetryTracer",
    "SpanKindEnum",
    "WorkerMetrics",
    "build_link",
    "create_tracer",
    "encode_carrier",
    "decode_carrier",
    "same_span",
    # Queue
    "BoundedQueue",
    "OrderQueue",
    "ForwardLinkChannel",
    # Producer
    "OrderProducer",
    "OpenSpanRegistry",
    "PublishedBatch",
    "OpenBatch",
    "ForwardLinkReport",
    # Worker
    "ProcessingStep",
    "ValidateOrderStep",
    "ProcessPaymentStep",
    "ShipOrderStep",
    "default_steps",
    "OrderWorker",
    "WorkerPool",
    "PoolShutdownResult",
    # Pipeline
    "OrderPipeline",
    "PipelineRunResult",
    "SingleBatchResult",
    # Telemetry
    "configure_tracing",
    "shutdown_tracing",
]
