"""Inbound queueing: per-session debounce, queue modes and drop policy.

- **resolver**: Settings resolution (per-channel -> global -> built-in default)
- **state**: Per-session buffer, timer and in-flight bookkeeping
- **controller**: Submission decisions, debounce timers and batch flushing
"""

from chatgate.inbound.queue.controller import (
    ControllerClosedError,
    InboundQueueController,
    LoopNotBoundError,
    placeholder_summary,
)
from chatgate.inbound.queue.resolver import ResolvedQueueSettings, resolve_queue_settings
from chatgate.inbound.queue.state import SessionQueueState, SessionSnapshot

__all__ = [
    "ControllerClosedError",
    "InboundQueueController",
    "LoopNotBoundError",
    "ResolvedQueueSettings",
    "SessionQueueState",
    "SessionSnapshot",
    "placeholder_summary",
    "resolve_queue_settings",
]
