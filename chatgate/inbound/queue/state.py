"""Per-session queue state.

One ``SessionQueueState`` exists per session key while the session has
something going on (pending messages, an armed timer, a batch in flight or a
submission holding its lock).  It is created lazily by the controller on the
first inbound event and released once idle; a later event simply creates a
fresh one.

All mutation goes through the owning ``InboundQueueController``.  Every
change to ``pending`` bumps ``revision`` so that code which awaited an
external collaborator can detect that the buffer moved underneath it.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict

from chatgate.inbound.models.enums import DropPolicy, QueueMode
from chatgate.inbound.models.messages import InboundMessage  # noqa: TC001

if TYPE_CHECKING:
    from chatgate.inbound.models.messages import CancelToken
    from chatgate.inbound.queue.resolver import ResolvedQueueSettings


@dataclass
class SessionQueueState:
    # -- Identity --------------------------------------------------------------
    session_key: str
    channel: str = ""

    # -- Resolved settings (refreshed once per event) --------------------------
    mode: QueueMode = QueueMode.QUEUE
    debounce_ms: int = 0
    cap: int = 0
    drop_policy: DropPolicy = DropPolicy.SUMMARIZE

    # -- Buffer ----------------------------------------------------------------
    pending: list[InboundMessage] = field(default_factory=list)
    revision: int = 0
    debounce_timer: asyncio.TimerHandle | None = None

    # -- In-flight tracking ----------------------------------------------------
    flight_seq: int = 0
    active_flight: int | None = None
    """Token of the batch currently being processed, ``None`` when idle."""

    active_cancel: CancelToken | None = None

    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    """Serializes submissions for this session (FIFO)."""

    users: int = 0
    """Submissions holding or waiting for ``lock``."""

    @property
    def in_flight(self) -> bool:
        return self.active_flight is not None

    @property
    def is_idle(self) -> bool:
        return (
            not self.pending
            and not self.in_flight
            and self.debounce_timer is None
            and self.users == 0
        )

    def apply(self, settings: ResolvedQueueSettings, channel: str) -> None:
        self.channel = channel
        self.mode = settings.mode
        self.debounce_ms = settings.debounce_ms
        self.cap = settings.cap
        self.drop_policy = settings.drop_policy

    # -- Buffer mutation -------------------------------------------------------

    def push(self, message: InboundMessage) -> None:
        self.pending.append(message)
        self.revision += 1

    def evict_oldest(self, count: int) -> list[InboundMessage]:
        evicted = self.pending[:count]
        del self.pending[:count]
        self.revision += 1
        return evicted

    def replace(self, messages: list[InboundMessage]) -> None:
        self.pending[:] = messages
        self.revision += 1

    def take_pending(self) -> tuple[InboundMessage, ...]:
        taken = tuple(self.pending)
        self.pending.clear()
        self.revision += 1
        return taken

    def cancel_timer(self) -> None:
        if self.debounce_timer is not None:
            self.debounce_timer.cancel()
            self.debounce_timer = None


class SessionSnapshot(BaseModel):
    """Read-only view of a session's queue, for adapters and diagnostics."""

    model_config = ConfigDict(frozen=True)

    session_key: str
    channel: str
    mode: QueueMode
    pending: tuple[InboundMessage, ...]
    in_flight: bool
    timer_armed: bool
    debounce_ms: int
    cap: int
    drop_policy: DropPolicy

    @classmethod
    def of(cls, state: SessionQueueState) -> SessionSnapshot:
        return cls(
            session_key=state.session_key,
            channel=state.channel,
            mode=state.mode,
            pending=tuple(state.pending),
            in_flight=state.in_flight,
            timer_armed=state.debounce_timer is not None,
            debounce_ms=state.debounce_ms,
            cap=state.cap,
            drop_policy=state.drop_policy,
        )
