"""Inbound messages, flushed batches and per-submission decisions."""

from __future__ import annotations

import asyncio
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from chatgate.inbound.models.enums import DecisionKind, DropReason, FlushTrigger

# -- Messages ----------------------------------------------------------------


class InboundMessage(BaseModel):
    """A raw inbound chat message as reported by a channel adapter."""

    model_config = ConfigDict(frozen=True)

    message_id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    channel: str = ""
    sender_id: str = ""
    text: str = ""
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
    metadata: dict[str, Any] = Field(default_factory=dict)

    summary_of: int = 0
    """Number of messages collapsed into this entry (0 for real messages)."""

    @property
    def is_summary(self) -> bool:
        return self.summary_of > 0


def build_session_key(
    agent_id: str,
    channel: str,
    *,
    group_id: str | None = None,
    thread_id: str | None = None,
    peer_id: str | None = None,
) -> str:
    """Compose the session key scoping one independent message queue.

    Group chats key on the group (and thread, when present); direct chats key
    on the peer.  Without either the channel has a single main session.

    >>> build_session_key("main", "Telegram", group_id="g1", thread_id="t9")
    'agent:main:telegram:group:g1:thread:t9'
    """
    parts = ["agent", agent_id, channel.strip().lower()]
    if group_id:
        parts += ["group", group_id]
        if thread_id:
            parts += ["thread", thread_id]
    elif peer_id:
        parts += ["dm", peer_id]
    else:
        parts.append("main")
    return ":".join(parts)


# -- Batches -----------------------------------------------------------------


class CancelToken:
    """Cancellation request for an in-flight batch.

    The controller only *requests* cancellation; the processor decides when
    to honour it by polling ``cancelled`` or awaiting ``wait()``.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    async def wait(self) -> None:
        await self._event.wait()


@dataclass(frozen=True)
class Batch:
    """Messages released together to the downstream processor."""

    session_key: str
    channel: str
    messages: tuple[InboundMessage, ...]
    trigger: FlushTrigger
    batch_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    cancel: CancelToken = field(default_factory=CancelToken, compare=False, repr=False)

    def __len__(self) -> int:
        return len(self.messages)

    @property
    def texts(self) -> list[str]:
        return [m.text for m in self.messages]


# -- Decisions ---------------------------------------------------------------


@dataclass(frozen=True)
class Decision:
    """What happened to one submitted message."""

    kind: DecisionKind
    session_key: str
    message: InboundMessage
    batch: Batch | None = None
    """Set for ``flushed``."""

    reason: DropReason | None = None
    """Set for ``dropped``."""

    evicted: tuple[InboundMessage, ...] = ()
    """Oldest entries evicted to make room (``old`` drop policy)."""

    collapsed: int = 0
    """Entries folded into the summary (``summarized``)."""

    preempted: bool = False
    """An interrupt cancelled a batch that was still in flight."""

    @property
    def accepted(self) -> bool:
        return self.kind is not DecisionKind.DROPPED
