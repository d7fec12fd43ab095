"""Lifecycle hook registry.

Maps event keys to ordered handler lists.  ``"command"`` matches every
command event, ``"command:new"`` only ``/new``.  Dispatch runs the specific
handlers first, then the general ones, each awaited in turn.

Hooks are best-effort side channels (audit logging, telemetry, greetings):
a failing handler is logged and recorded, and dispatch moves on.  Nothing a
handler raises reaches the caller of ``trigger``.
"""

from __future__ import annotations

import inspect
from collections import deque
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from loguru import logger

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from chatgate.inbound.models.hooks import HookEvent

    HookHandler = Callable[[HookEvent], Awaitable[None] | None]
    FailureSink = Callable[["HookFailure"], Any]

RECENT_FAILURES_LIMIT = 100


@dataclass(frozen=True)
class HookFailure:
    """One handler failure captured during dispatch."""

    event_key: str
    event: HookEvent
    error: Exception


@dataclass
class DispatchReport:
    """What happened during one ``trigger`` call."""

    event: HookEvent
    invoked: int = 0
    failures: list[HookFailure] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures


class HookRegistry:
    """Event key -> handler registry with isolated sequential dispatch.

    Append-only during normal operation; ``clear`` exists for test isolation
    and reconfiguration.  A dispatch resolves its handler list up front, so
    registering or clearing while it runs does not affect it.
    """

    def __init__(self, on_failure: FailureSink | None = None) -> None:
        self._handlers: dict[str, list[HookHandler]] = {}
        self._on_failure = on_failure
        self.recent_failures: deque[HookFailure] = deque(maxlen=RECENT_FAILURES_LIMIT)

    # -- Mutation --------------------------------------------------------------

    def register(self, event_key: str, handler: HookHandler) -> None:
        """Append *handler* for *event_key*.  Duplicates fire once per registration."""
        self._handlers.setdefault(event_key, []).append(handler)
        logger.debug("Hooks: registered handler for {!r}", event_key)

    def clear(self) -> None:
        self._handlers.clear()
        self.recent_failures.clear()

    # -- Query -----------------------------------------------------------------

    def handlers(self, event_key: str) -> list[HookHandler]:
        return list(self._handlers.get(event_key, ()))

    @property
    def event_keys(self) -> list[str]:
        return list(self._handlers)

    # -- Dispatch --------------------------------------------------------------

    def resolve(self, event: HookEvent) -> list[tuple[str, HookHandler]]:
        """Return ``(key, handler)`` pairs for *event*, specific before general."""
        specific_key = event.specific_key
        general_key = event.general_key
        resolved = [(specific_key, h) for h in self._handlers.get(specific_key, ())]
        resolved += [(general_key, h) for h in self._handlers.get(general_key, ())]
        return resolved

    async def trigger(self, event: HookEvent) -> DispatchReport:
        """Run every matching handler in order.  Never raises."""
        report = DispatchReport(event=event)
        handlers = self.resolve(event)
        if not handlers:
            return report

        for key, handler in handlers:
            report.invoked += 1
            try:
                result = handler(event)
                if inspect.isawaitable(result):
                    await result
            except Exception as exc:
                logger.opt(exception=exc).error("Hooks: handler error for {!r}: {}", key, exc)
                failure = HookFailure(event_key=key, event=event, error=exc)
                report.failures.append(failure)
                self._record(failure)
        return report

    def _record(self, failure: HookFailure) -> None:
        self.recent_failures.append(failure)
        if self._on_failure is None:
            return
        try:
            self._on_failure(failure)
        except Exception:
            logger.exception("Hooks: failure sink raised for {!r}", failure.event_key)


# ---------------------------------------------------------------------------
# Process-wide default registry
# ---------------------------------------------------------------------------

_default_registry = HookRegistry()


def get_hook_registry() -> HookRegistry:
    """Return the process-wide registry used by the module-level helpers."""
    return _default_registry


def register_hook(event_key: str, handler: HookHandler) -> None:
    _default_registry.register(event_key, handler)


async def trigger_hook(event: HookEvent) -> DispatchReport:
    return await _default_registry.trigger(event)


def clear_hooks() -> None:
    _default_registry.clear()
