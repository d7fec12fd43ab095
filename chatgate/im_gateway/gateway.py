from __future__ import annotations

import logging
from collections import OrderedDict
from typing import TYPE_CHECKING

from chatgate.inbound.models.config import MessagesConfig
from chatgate.inbound.models.enums import HookEventType
from chatgate.inbound.models.hooks import create_hook_event
from chatgate.inbound.models.messages import build_session_key

if TYPE_CHECKING:
    from chatgate.inbound.hooks import HookRegistry
    from chatgate.inbound.models.messages import Decision, InboundMessage
    from chatgate.inbound.queue.controller import InboundQueueController

logger = logging.getLogger(__name__)

COMMAND_PREFIX = "/"
SEEN_SESSIONS_LIMIT = 10_000


def parse_command(text: str) -> tuple[str, str] | None:
    """Split a chat command into ``(name, args)``.

    ``/new@mybot hello`` -> ``("new", "hello")``.  Returns ``None`` for
    ordinary text.
    """
    stripped = text.strip()
    if not stripped.startswith(COMMAND_PREFIX) or len(stripped) == 1:
        return None
    head, _, args = stripped[1:].partition(" ")
    name = head.split("@", 1)[0].lower()
    if not name:
        return None
    return name, args.strip()


class IMGateway:
    """Gateway that connects IM channel adapters to the inbound queue.

    Chat commands are raised as ``command:<name>`` hooks and never queued;
    everything else is submitted to the queue controller.
    """

    def __init__(
        self,
        controller: InboundQueueController,
        hooks: HookRegistry,
        *,
        agent_id: str = "main",
        seen_sessions_limit: int = SEEN_SESSIONS_LIMIT,
    ) -> None:
        self.controller = controller
        self.hooks = hooks
        self.agent_id = agent_id
        # Recently active session keys, least recently seen first.
        self._seen_sessions: OrderedDict[str, None] = OrderedDict()
        self._seen_sessions_limit = seen_sessions_limit

    @property
    def config(self) -> MessagesConfig:
        return self.controller.config or MessagesConfig()

    async def start(self) -> None:
        logger.info("Starting IM Gateway for agent %s", self.agent_id)
        await self.hooks.trigger(create_hook_event(HookEventType.GATEWAY, "startup", self._agent_key))

    async def stop(self, timeout: float | None = None) -> bool:
        """Drain the queue, then raise ``gateway:shutdown``."""
        logger.info("Stopping IM Gateway")
        drained = await self.controller.wait_until_drained(timeout)
        await self.hooks.trigger(
            create_hook_event(HookEventType.GATEWAY, "shutdown", self._agent_key, {"drained": drained})
        )
        return drained

    async def receive(
        self,
        message: InboundMessage,
        *,
        group_id: str | None = None,
        thread_id: str | None = None,
    ) -> Decision | None:
        """Route one inbound message.  Returns ``None`` for chat commands."""
        session_key = build_session_key(
            self.agent_id,
            message.channel,
            group_id=group_id,
            thread_id=thread_id,
            peer_id=message.sender_id or None,
        )

        if self._mark_seen(session_key):
            await self.hooks.trigger(
                create_hook_event(HookEventType.SESSION, "start", session_key, {"channel": message.channel})
            )

        command = parse_command(message.text)
        if command is not None:
            name, args = command
            logger.debug("Command /%s from %s in %s", name, message.sender_id, session_key)
            await self.hooks.trigger(
                create_hook_event(
                    HookEventType.COMMAND,
                    name,
                    session_key,
                    {"args": args, "sender_id": message.sender_id, "channel": message.channel},
                )
            )
            return None

        return await self.controller.submit(session_key, message)

    def ack_for(self, decision: Decision | None) -> str | None:
        """Reaction to put on the inbound message, or ``None`` for no reaction."""
        config = self.config
        if decision is None or not decision.accepted or not config.ack_reaction:
            return None

        is_group = ":group:" in decision.session_key
        mentioned = bool(decision.message.metadata.get("mentioned", False))
        match config.ack_reaction_scope:
            case "all":
                allowed = True
            case "direct":
                allowed = not is_group
            case "group-all":
                allowed = is_group
            case "group-mentions":
                allowed = is_group and mentioned
            case _:
                logger.warning("Unknown ack reaction scope %r, not acknowledging", config.ack_reaction_scope)
                allowed = False
        return config.ack_reaction if allowed else None

    def _mark_seen(self, session_key: str) -> bool:
        """Record activity on *session_key*.  True the first time it is seen.

        Only the most recent ``seen_sessions_limit`` keys are remembered; a
        session evicted from that window counts as new when it returns.
        """
        if session_key in self._seen_sessions:
            self._seen_sessions.move_to_end(session_key)
            return False
        self._seen_sessions[session_key] = None
        if len(self._seen_sessions) > self._seen_sessions_limit:
            self._seen_sessions.popitem(last=False)
        return True

    @property
    def _agent_key(self) -> str:
        return f"agent:{self.agent_id}"
