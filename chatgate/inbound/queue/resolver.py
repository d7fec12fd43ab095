"""Queue settings resolver -- merges per-channel overrides, global config and
built-in defaults into a single ResolvedQueueSettings for one event.

Resolution order (per field, first non-None wins):

- mode: ``queue.by_channel[channel]`` -> ``queue.mode`` -> ``queue``
- debounce_ms: ``queue.debounce_ms_by_channel[channel]`` ->
  ``inbound.by_channel[channel]`` -> ``queue.debounce_ms`` ->
  ``inbound.debounce_ms`` -> 1000
- cap: ``queue.cap_by_channel[channel]`` -> ``queue.cap`` -> 20
- drop_policy: ``queue.drop_by_channel[channel]`` -> ``queue.drop`` ->
  ``summarize``

Resolution is pure: the config is never mutated, and invalid values were
already discarded when the config was validated, so resolving never raises.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict

from chatgate.inbound.models.config import MessagesConfig
from chatgate.inbound.models.enums import DropPolicy, QueueMode

DEFAULT_QUEUE_MODE = QueueMode.QUEUE
DEFAULT_DEBOUNCE_MS = 1000
DEFAULT_CAP = 20
DEFAULT_DROP_POLICY = DropPolicy.SUMMARIZE


class ResolvedQueueSettings(BaseModel):
    """Effective queue behaviour for one channel."""

    model_config = ConfigDict(frozen=True)

    mode: QueueMode = DEFAULT_QUEUE_MODE
    debounce_ms: int = DEFAULT_DEBOUNCE_MS
    cap: int = DEFAULT_CAP
    drop_policy: DropPolicy = DEFAULT_DROP_POLICY


def resolve_queue_settings(config: MessagesConfig | None, channel: str | None) -> ResolvedQueueSettings:
    """Resolve the effective queue settings for *channel*.

    Parameters
    ----------
    config:
        Parsed ``messages`` config section.  ``None`` means built-in defaults.
    channel:
        Channel the event arrived on (matched case-insensitively).  ``None``
        skips the per-channel level.
    """
    if config is None:
        return ResolvedQueueSettings()

    key = channel.strip().lower() if channel else None
    queue = config.queue
    inbound = config.inbound

    mode = _first(
        _lookup(queue.by_channel, key),
        queue.mode,
        DEFAULT_QUEUE_MODE,
    )
    debounce_ms = _first(
        _lookup(queue.debounce_ms_by_channel, key),
        _lookup(inbound.by_channel, key),
        queue.debounce_ms,
        inbound.debounce_ms,
        DEFAULT_DEBOUNCE_MS,
    )
    return ResolvedQueueSettings(
        mode=mode,
        debounce_ms=debounce_ms,
        cap=_first(_lookup(queue.cap_by_channel, key), queue.cap, DEFAULT_CAP),
        drop_policy=_first(_lookup(queue.drop_by_channel, key), queue.drop, DEFAULT_DROP_POLICY),
    )


def _lookup[T](mapping: dict[str, T], key: str | None) -> T | None:
    if key is None:
        return None
    return mapping.get(key)


def _first[T](*candidates: T | None) -> T:
    """Return the first candidate that is not None (the last one is the default)."""
    for candidate in candidates:
        if candidate is not None:
            return candidate
    msg = "resolution chain ended without a default"
    raise AssertionError(msg)
