"""Shared enumerations used across the inbound subsystem."""

from __future__ import annotations

from enum import StrEnum

# -- Queue -------------------------------------------------------------------


class QueueMode(StrEnum):
    """How a new inbound message interacts with buffered and in-flight work."""

    STEER = "steer"
    FOLLOWUP = "followup"
    COLLECT = "collect"
    STEER_BACKLOG = "steer-backlog"
    STEER_PLUS_BACKLOG = "steer+backlog"
    QUEUE = "queue"
    INTERRUPT = "interrupt"


class DropPolicy(StrEnum):
    """Behaviour when the pending buffer would exceed its cap."""

    OLD = "old"
    NEW = "new"
    SUMMARIZE = "summarize"


class FlushTrigger(StrEnum):
    DEBOUNCE = "debounce"
    INTERRUPT = "interrupt"
    MANUAL = "manual"


# -- Decisions ---------------------------------------------------------------


class DecisionKind(StrEnum):
    """Outcome of a single ``submit`` call, reported back to the adapter."""

    QUEUED = "queued"
    FLUSHED = "flushed"
    DROPPED = "dropped"
    STEERED = "steered"
    SUMMARIZED = "summarized"


class DropReason(StrEnum):
    CAPACITY = "capacity"
    ZERO_CAPACITY = "zero_capacity"


# -- Hooks -------------------------------------------------------------------


class HookEventType(StrEnum):
    """Lifecycle event families.  ``type:action`` forms the specific key."""

    COMMAND = "command"
    SESSION = "session"
    AGENT = "agent"
    GATEWAY = "gateway"
