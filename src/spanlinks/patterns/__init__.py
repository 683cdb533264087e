"""
Link-topology patterns.

Standalone demonstrations of span link cardinality and direction, sharing
the tracer and link primitives of the order pipeline but not its queue:

- fan_out: 1 root, N children in new traces, N backward links
- fan_in: N producers in new traces, 1 aggregator with N backward links
- retry_chain: attempts in new traces, each linking to an earlier attempt
- scatter_gather: K shard queries and an aggregator, all in one trace
- remote_parent_handoff: the parent-child alternative links replace
"""

from spanlinks.patterns.fanin import FanInResult, fan_in
from spanlinks.patterns.fanout import DEFAULT_ITEMS, FanOutResult, fan_out
from spanlinks.patterns.remote_parent import RemoteParentHandoffResult, remote_parent_handoff
from spanlinks.patterns.retry import (
    AttemptRecord,
    LinkPolicy,
    RetryChainConfig,
    RetryChainResult,
    calculate_backoff,
    retry_chain,
    simulated_operation,
)
from spanlinks.patterns.scatter_gather import DEFAULT_SHARDS, ScatterGatherResult, scatter_gather

__all__ = [
    # Fan-out
    "DEFAULT_ITEMS",
    "FanOutResult",
    "fan_out",
    # Fan-in
    "FanInResult",
    "fan_in",
    # Retry chain
    "AttemptRecord",
    "LinkPolicy",
    "RetryChainConfig",
    "RetryChainResult",
    "calculate_backoff",
    "retry_chain",
    "simulated_operation",
    # Scatter/gather
    "DEFAULT_SHARDS",
    "ScatterGatherResult",
    "scatter_gather",
    # Remote parent
    "RemoteParentHandoffResult",
    "remote_parent_handoff",
]
