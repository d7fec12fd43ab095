"""Hook event models."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from chatgate.inbound.models.enums import HookEventType


class HookEvent(BaseModel):
    """One lifecycle event instance, shared by every handler of a dispatch.

    Frozen: handlers observe the same event and cannot reassign its fields.
    """

    model_config = ConfigDict(frozen=True)

    type: HookEventType
    action: str
    session_key: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
    messages: tuple[str, ...] = ()
    context: dict[str, Any] = Field(default_factory=dict)

    @property
    def general_key(self) -> str:
        return str(self.type)

    @property
    def specific_key(self) -> str:
        return f"{self.type}:{self.action}"


def create_hook_event(
    type: HookEventType | str,  # noqa: A002
    action: str,
    session_key: str,
    context: dict[str, Any] | None = None,
) -> HookEvent:
    return HookEvent(
        type=HookEventType(type),
        action=action,
        session_key=session_key,
        context=context or {},
    )
