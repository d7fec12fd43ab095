"""Test doubles and builders shared across test modules."""

from __future__ import annotations

import asyncio
from typing import Any

from chatgate.inbound.models.config import MessagesConfig
from chatgate.inbound.models.messages import Batch, InboundMessage

# Long enough that timers never fire unless a test waits for them.
SLOW_DEBOUNCE_MS = 60_000


class BatchRecorder:
    """Downstream processor double that records batches.

    Clear ``release`` to hold batches in flight until the test sets it again.
    """

    def __init__(self) -> None:
        self.batches: list[Batch] = []
        self.release = asyncio.Event()
        self.release.set()
        self.completed = 0

    async def __call__(self, batch: Batch) -> None:
        self.batches.append(batch)
        await self.release.wait()
        self.completed += 1

    @property
    def texts(self) -> list[list[str]]:
        return [b.texts for b in self.batches]


def msg(text: str, *, channel: str = "telegram", sender: str = "alice", **metadata: Any) -> InboundMessage:
    return InboundMessage(channel=channel, sender_id=sender, text=text, metadata=metadata)


def queue_config(**queue: Any) -> MessagesConfig:
    queue.setdefault("debounce_ms", SLOW_DEBOUNCE_MS)
    return MessagesConfig.model_validate({"queue": queue})


async def settle(rounds: int = 5) -> None:
    """Let scheduled tasks and zero-delay callbacks run."""
    for _ in range(rounds):
        await asyncio.sleep(0)
