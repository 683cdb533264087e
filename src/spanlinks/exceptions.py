"""Library exceptions for the spanlinks package."""


class SpanLinksError(Exception):
    """Base exception for spanlinks library."""

    pass


class InvalidArgumentError(SpanLinksError, ValueError):
    """Raised when an operation is called with an invalid argument.

    Argument errors are raised before any state is mutated or any span is
    started.
    """

    pass


class OperationCancelledError(SpanLinksError):
    """Raised when a blocking operation observes its cancellation token."""

    def __init__(self, operation: str) -> None:
        self.operation = operation
        super().__init__(f"{operation} cancelled")


class PublishError(SpanLinksError):
    """Raised when a single order could not be published to the queue."""

    def __init__(self, order_id: str, message: str) -> None:
        self.order_id = order_id
        super().__init__(f"failed to publish order {order_id}: {message}")


class BatchPublishError(SpanLinksError):
    """Raised when no order of a batch could be published."""

    def __init__(self, total_count: int, last_error: Exception | None) -> None:
        self.total_count = total_count
        self.last_error = last_error
        super().__init__(f"failed to publish any orders (batch size {total_count}): {last_error}")


class MessageValidationError(SpanLinksError):
    """Raised when a consumed message is malformed."""

    pass


class OrderValidationError(SpanLinksError):
    """Raised when the validation step rejects an order."""

    def __init__(self, order_id: str, reason: str) -> None:
        self.order_id = order_id
        self.reason = reason
        super().__init__(f"order {order_id} is invalid: {reason}")


class ProcessingStepError(SpanLinksError):
    """
    Raised when a processing step fails for an order.

    The original exception is chained as ``__cause__``.

    Attributes:
        step: Name of the failing step (e.g. "validation", "payment")
        order_id: ID of the order being processed
    """

    def __init__(self, step: str, order_id: str, cause: Exception) -> None:
        self.step = step
        self.order_id = order_id
        super().__init__(f"{step} failed for order {order_id}: {cause}")


class AttemptFailedError(SpanLinksError):
    """Raised by a simulated operation when an attempt fails."""

    def __init__(self, attempt: int) -> None:
        self.attempt = attempt
        super().__init__(f"processing failed on attempt {attempt}")


__all__ = [
    "SpanLinksError",
    "InvalidArgumentError",
    "OperationCancelledError",
    "PublishError",
    "BatchPublishError",
    "MessageValidationError",
    "OrderValidationError",
    "ProcessingStepError",
    "AttemptFailedError",
]
