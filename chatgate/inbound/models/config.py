"""Message queue and inbound debounce configuration.

Config values arrive already parsed (JSON file or caller-built dicts).  Keys
may use either snake_case or the camelCase spelling of the config file.

Invalid modes, drop policies and negative numbers are discarded with a
warning instead of failing validation: the affected field becomes unset and
resolution falls back to the next level (global value, then built-in
default).  A bad config file must never break the submission path.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Literal

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from chatgate.inbound.models.enums import DropPolicy, QueueMode


class ConfigLoadError(ValueError):
    """The config file exists but could not be parsed or validated."""

    def __init__(self, path: Path, detail: str) -> None:
        super().__init__(f"Invalid config file '{path}': {detail}")
        self.path = path


# ---------------------------------------------------------------------------
# Lenient coercion helpers
# ---------------------------------------------------------------------------


def _coerce_enum[E: (QueueMode, DropPolicy)](enum_cls: type[E], value: Any, field: str) -> E | None:
    if value is None:
        return None
    try:
        return enum_cls(str(value).strip().lower())
    except ValueError:
        logger.warning("Config: ignoring invalid {} value {!r}", field, value)
        return None


def _coerce_non_negative(value: Any, field: str) -> int | None:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int | float):
        logger.warning("Config: ignoring non-numeric {} value {!r}", field, value)
        return None
    if value < 0:
        logger.warning("Config: ignoring negative {} value {!r}", field, value)
        return None
    return int(value)


def _normalize_channel(channel: str) -> str:
    return channel.strip().lower()


# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------


class _ConfigModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class QueueConfig(_ConfigModel):
    """Queue-mode policy for inbound messages (global + per-channel)."""

    mode: QueueMode | None = None
    by_channel: dict[str, QueueMode] = Field(default_factory=dict)
    debounce_ms: int | None = None
    debounce_ms_by_channel: dict[str, int] = Field(
        default_factory=dict, description="Per-channel debounce overrides (ms)"
    )
    cap: int | None = None
    cap_by_channel: dict[str, int] = Field(default_factory=dict)
    drop: DropPolicy | None = None
    drop_by_channel: dict[str, DropPolicy] = Field(default_factory=dict)

    @field_validator("mode", mode="before")
    @classmethod
    def _lenient_mode(cls, value: Any) -> QueueMode | None:
        return _coerce_enum(QueueMode, value, "queue.mode")

    @field_validator("drop", mode="before")
    @classmethod
    def _lenient_drop(cls, value: Any) -> DropPolicy | None:
        return _coerce_enum(DropPolicy, value, "queue.drop")

    @field_validator("debounce_ms", "cap", mode="before")
    @classmethod
    def _lenient_number(cls, value: Any) -> int | None:
        return _coerce_non_negative(value, "queue number")

    @field_validator("by_channel", mode="before")
    @classmethod
    def _lenient_by_channel(cls, value: Any) -> dict[str, QueueMode]:
        return _lenient_enum_map(QueueMode, value, "queue.byChannel")

    @field_validator("drop_by_channel", mode="before")
    @classmethod
    def _lenient_drop_by_channel(cls, value: Any) -> dict[str, DropPolicy]:
        return _lenient_enum_map(DropPolicy, value, "queue.dropByChannel")

    @field_validator("debounce_ms_by_channel", mode="before")
    @classmethod
    def _lenient_debounce_by_channel(cls, value: Any) -> dict[str, int]:
        return _lenient_number_map(value, "queue.debounceMsByChannel")

    @field_validator("cap_by_channel", mode="before")
    @classmethod
    def _lenient_cap_by_channel(cls, value: Any) -> dict[str, int]:
        return _lenient_number_map(value, "queue.capByChannel")


class InboundDebounceConfig(_ConfigModel):
    """Debounce rapid inbound messages per sender (global + per-channel)."""

    debounce_ms: int | None = None
    by_channel: dict[str, int] = Field(default_factory=dict)

    @field_validator("debounce_ms", mode="before")
    @classmethod
    def _lenient_number(cls, value: Any) -> int | None:
        return _coerce_non_negative(value, "inbound.debounceMs")

    @field_validator("by_channel", mode="before")
    @classmethod
    def _lenient_by_channel(cls, value: Any) -> dict[str, int]:
        return _lenient_number_map(value, "inbound.byChannel")


class MessagesConfig(_ConfigModel):
    """The ``messages`` section of the gateway config file."""

    queue: QueueConfig = Field(default_factory=QueueConfig)
    inbound: InboundDebounceConfig = Field(default_factory=InboundDebounceConfig)

    ack_reaction: str = ""
    """Emoji reaction used to acknowledge inbound messages (empty disables)."""

    ack_reaction_scope: Literal["group-mentions", "group-all", "direct", "all"] = "group-mentions"
    remove_ack_after_reply: bool = False


def _lenient_number_map(value: Any, field: str) -> dict[str, int]:
    if not isinstance(value, dict):
        return {}
    result: dict[str, int] = {}
    for channel, raw in value.items():
        number = _coerce_non_negative(raw, f"{field}.{channel}")
        if number is not None:
            result[_normalize_channel(channel)] = number
    return result


def _lenient_enum_map[E: (QueueMode, DropPolicy)](enum_cls: type[E], value: Any, field: str) -> dict[str, E]:
    if not isinstance(value, dict):
        return {}
    result: dict[str, E] = {}
    for channel, raw in value.items():
        member = _coerce_enum(enum_cls, raw, f"{field}.{channel}")
        if member is not None:
            result[_normalize_channel(channel)] = member
    return result


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------


def load_messages_config(path: str | Path) -> MessagesConfig:
    """Load the ``messages`` section from a JSON config file.

    A missing file yields an empty config (built-in defaults apply).
    Malformed JSON or a structurally invalid section raises ``ConfigLoadError``.
    """
    path = Path(path)
    if not path.exists():
        logger.debug("Config file {} not found, using defaults", path)
        return MessagesConfig()

    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ConfigLoadError(path, str(exc)) from exc

    if not isinstance(raw, dict):
        raise ConfigLoadError(path, "top-level value must be an object")

    try:
        config = MessagesConfig.model_validate(raw.get("messages") or {})
    except ValidationError as exc:
        raise ConfigLoadError(path, str(exc)) from exc

    logger.info("Loaded messages config from {}", path)
    return config
