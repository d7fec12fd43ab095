"""Data models for the inbound subsystem."""

from chatgate.inbound.models.config import (
    ConfigLoadError,
    InboundDebounceConfig,
    MessagesConfig,
    QueueConfig,
    load_messages_config,
)
from chatgate.inbound.models.enums import (
    DecisionKind,
    DropPolicy,
    DropReason,
    FlushTrigger,
    HookEventType,
    QueueMode,
)
from chatgate.inbound.models.hooks import HookEvent, create_hook_event
from chatgate.inbound.models.messages import (
    Batch,
    CancelToken,
    Decision,
    InboundMessage,
    build_session_key,
)

__all__ = [
    # Messages
    "Batch",
    "CancelToken",
    # Config
    "ConfigLoadError",
    "Decision",
    # Enums
    "DecisionKind",
    "DropPolicy",
    "DropReason",
    "FlushTrigger",
    # Hooks
    "HookEvent",
    "HookEventType",
    "InboundDebounceConfig",
    "InboundMessage",
    "MessagesConfig",
    "QueueConfig",
    "QueueMode",
    "build_session_key",
    "create_hook_event",
    "load_messages_config",
]
