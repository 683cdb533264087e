"""
Standard span and metric attributes for spanlinks.

This module defines attribute constants used across all spanlinks components
for consistent span naming and metrics labeling. Keys are plain dotted names
without a package prefix.

Example:
    >>> from spanlinks.observability.attributes import ATTR_ORDER_ID, ATTR_WORKER_ID
    >>>
    >>> span = tracer.start_span(
    ...     "ProcessOrder",
    ...     attributes={ATTR_ORDER_ID: order.id, ATTR_WORKER_ID: "Worker-1"},
    ... )
"""

# =============================================================================
# Order Attributes
# =============================================================================

ATTR_ORDER_ID = "order.id"
"""Unique identifier of the order being published or processed (string)."""

ATTR_CUSTOMER_ID = "customer.id"
"""Customer the order belongs to (string)."""

ATTR_ORDER_AMOUNT = "order.amount"
"""Order amount (float)."""

ATTR_ORDER_STATUS = "order.status"
"""Processing outcome of an order, used as a metric label (string)."""

ATTR_BATCH_SIZE = "order.batch.size"
"""Number of orders requested in a publish batch (integer)."""

ATTR_PUBLISHED_COUNT = "published.count"
"""Number of orders actually published in a batch (integer)."""

ATTR_TOTAL_COUNT = "total.count"
"""Number of orders requested in a batch (integer)."""

ATTR_PAYMENT_AMOUNT = "payment.amount"
"""Amount charged by the payment step (float)."""

# =============================================================================
# Worker Attributes
# =============================================================================

ATTR_WORKER_ID = "worker.id"
"""Identifier of the worker processing a message (string)."""

ATTR_PROCESSING_STEP = "processing.step"
"""Name of the processing step (string)."""

ATTR_ERROR_TYPE = "error.type"
"""Exception class name for failed operations (string)."""

ATTR_QUEUE_NAME = "queue.name"
"""Name of the queue a depth observation belongs to (string)."""

# =============================================================================
# Link Attributes
# =============================================================================

ATTR_LINK_TYPE = "link.type"
"""Kind of relationship a link expresses (e.g. 'queue_consumption', 'retry')."""

ATTR_LINK_DIRECTION = "link.direction"
"""Whether the link points 'backward' or 'forward' in time."""

ATTR_LINK_TRACE_RELATIONSHIP = "link.trace_relationship"
"""Whether the link target is in the 'same_trace' or a 'cross_trace'."""

ATTR_SOURCE_SERVICE = "source.service"
"""Service that created the link target (string)."""

LINK_DIRECTION_BACKWARD = "backward"
LINK_DIRECTION_FORWARD = "forward"

# =============================================================================
# Pattern Attributes
# =============================================================================

ATTR_BATCH_ID = "batch.id"
"""Identifier of a fan-out batch (string)."""

ATTR_BATCH_ITEM_COUNT = "batch.size"
"""Number of items in a fan-out batch (integer)."""

ATTR_PROCESSED_COUNT = "processed.count"
"""Number of fan-out items processed (integer)."""

ATTR_ITEM_ID = "item.id"
"""Identifier of a fan-out item (string)."""

ATTR_ITEM_INDEX = "item.index"
"""Position of an item in its batch (integer)."""

ATTR_ITEM_STATUS = "item.status"
"""Outcome of a fan-out item (string)."""

ATTR_ITEM_VALUE = "item.value"
"""Value produced by a fan-in producer (string)."""

ATTR_PRODUCER_ID = "producer.id"
"""Identifier of a fan-in producer (integer)."""

ATTR_PRODUCER_INDEX = "producer.index"
"""Position of a producer link on the aggregator (integer)."""

ATTR_AGGREGATION_ID = "aggregation.id"
"""Identifier of an aggregation run (string)."""

ATTR_ITEMS_COUNT = "items.count"
"""Number of items aggregated (integer)."""

ATTR_AGGREGATED_COUNT = "aggregated.count"
"""Number of items an aggregator combined (integer)."""

ATTR_REQUEST_ID = "request.id"
"""Identifier of a retried request (string)."""

ATTR_ATTEMPT = "attempt"
"""1-based attempt number (integer)."""

ATTR_IS_RETRY = "is_retry"
"""Whether the attempt is a retry (boolean)."""

ATTR_RETRY_ATTEMPT = "retry.attempt"
"""Attempt number recorded on a retry link (integer)."""

ATTR_ORIGINAL_REQUEST_ID = "original.request.id"
"""Request ID recorded on a retry link (string)."""

ATTR_SHARD_ID = "shard.id"
"""Identifier of a queried shard (string)."""

ATTR_SHARD_INDEX = "shard.index"
"""Position of a shard in the request (integer)."""

ATTR_SHARD_COUNT = "shard.count"
"""Number of shards in the request (integer)."""

ATTR_SHARD_COMPLETED = "shard.completed"
"""Number of shard results linked by the aggregator (integer)."""

ATTR_AGGREGATION_MODE = "aggregation.mode"
"""Aggregation strategy name (string)."""

ATTR_AGG_STARTED_BEFORE_WORKERS = "demo.agg_started_before_workers"
"""Whether the aggregator span was opened before its workers (boolean)."""

ATTR_GAP_DELAY_MS = "demo.gap_delay_ms"
"""Artificial hand-off delay in the remote-parent demo (integer)."""

ATTR_NOTE = "note"
"""Free-form note on a demonstration span (string)."""


__all__ = [
    "ATTR_ORDER_ID",
    "ATTR_CUSTOMER_ID",
    "ATTR_ORDER_AMOUNT",
    "ATTR_ORDER_STATUS",
    "ATTR_BATCH_SIZE",
    "ATTR_PUBLISHED_COUNT",
    "ATTR_TOTAL_COUNT",
    "ATTR_PAYMENT_AMOUNT",
    "ATTR_WORKER_ID",
    "ATTR_PROCESSING_STEP",
    "ATTR_ERROR_TYPE",
    "ATTR_QUEUE_NAME",
    "ATTR_LINK_TYPE",
    "ATTR_LINK_DIRECTION",
    "ATTR_LINK_TRACE_RELATIONSHIP",
    "ATTR_SOURCE_SERVICE",
    "LINK_DIRECTION_BACKWARD",
    "LINK_DIRECTION_FORWARD",
    "ATTR_BATCH_ID",
    "ATTR_BATCH_ITEM_COUNT",
    "ATTR_PROCESSED_COUNT",
    "ATTR_ITEM_ID",
    "ATTR_ITEM_INDEX",
    "ATTR_ITEM_STATUS",
    "ATTR_ITEM_VALUE",
    "ATTR_PRODUCER_ID",
    "ATTR_PRODUCER_INDEX",
    "ATTR_AGGREGATION_ID",
    "ATTR_ITEMS_COUNT",
    "ATTR_AGGREGATED_COUNT",
    "ATTR_REQUEST_ID",
    "ATTR_ATTEMPT",
    "ATTR_IS_RETRY",
    "ATTR_RETRY_ATTEMPT",
    "ATTR_ORIGINAL_REQUEST_ID",
    "ATTR_SHARD_ID",
    "ATTR_SHARD_INDEX",
    "ATTR_SHARD_COUNT",
    "ATTR_SHARD_COMPLETED",
    "ATTR_AGGREGATION_MODE",
    "ATTR_AGG_STARTED_BEFORE_WORKERS",
    "ATTR_GAP_DELAY_MS",
    "ATTR_NOTE",
]
