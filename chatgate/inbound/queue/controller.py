"""Inbound queue controller -- debounce, queue modes, drop policy and flush.

The controller sits between a channel adapter and the agent runtime:

1. **Submit**: the adapter reports each inbound message with its session key
   and channel.  The controller resolves the channel's queue settings and
   returns a ``Decision`` (queued, flushed, dropped, steered, summarized).
2. **Debounce**: buffered messages are held until the session has been quiet
   for ``debounce_ms``.  Every accepted message re-arms the timer.
3. **Flush**: the whole buffer is released as one ``Batch`` to the
   downstream processor, which runs in a tracked task.  The session stays
   in flight until the processor returns (or raises).

Collaborators are plain async callables:

- ``processor(batch)``: required, processes a flushed batch.
- ``steerer(session_key, message) -> bool``: redirects a message into the
  in-flight run (steer modes).  ``False`` means it could not be delivered.
- ``interrupter(session_key, cancel_token)``: asks the runtime to abort the
  in-flight run (interrupt mode).  The batch's token is cancelled first.
- ``summarizer(messages) -> InboundMessage``: collapses buffered messages
  under the ``summarize`` drop policy.  A placeholder summary is used when
  none is configured or it fails.

Concurrency model: the controller lives on one asyncio event loop.
Submissions for a session are serialized by a per-session FIFO lock, and no
``await`` happens between reading the buffer and writing it.  Threaded
hosts must go through ``submit_threadsafe``, which marshals onto that loop.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any, assert_never

from loguru import logger

from chatgate.inbound.models.enums import DecisionKind, DropPolicy, DropReason, FlushTrigger, QueueMode
from chatgate.inbound.models.messages import Batch, Decision, InboundMessage
from chatgate.inbound.queue.resolver import resolve_queue_settings
from chatgate.inbound.queue.state import SessionQueueState, SessionSnapshot

if TYPE_CHECKING:
    import concurrent.futures
    from collections.abc import Awaitable, Callable, Sequence

    from chatgate.inbound.models.config import MessagesConfig
    from chatgate.inbound.models.messages import CancelToken

    BatchProcessor = Callable[[Batch], Awaitable[Any]]
    Steerer = Callable[[str, InboundMessage], Awaitable[bool]]
    Interrupter = Callable[[str, CancelToken], Awaitable[None]]
    Summarizer = Callable[[Sequence[InboundMessage]], Awaitable[InboundMessage]]

SUMMARY_LINE_LIMIT = 140


class ControllerClosedError(RuntimeError):
    """Raised when submitting to a controller after ``aclose``."""


class LoopNotBoundError(RuntimeError):
    """Raised by ``submit_threadsafe`` before the controller knows its event loop."""


# ---------------------------------------------------------------------------
# Placeholder summary
# ---------------------------------------------------------------------------


def placeholder_summary(messages: Sequence[InboundMessage]) -> InboundMessage:
    """Collapse *messages* into one synthetic entry listing what was folded."""
    count = sum(m.summary_of or 1 for m in messages)
    lines = [f"[Queue overflow] {count} earlier messages collapsed:"]
    for message in messages:
        text = message.text.strip().splitlines()[0] if message.text.strip() else ""
        if len(text) > SUMMARY_LINE_LIMIT:
            text = text[: SUMMARY_LINE_LIMIT - 1] + "…"
        prefix = f"{message.sender_id}: " if message.sender_id else ""
        lines.append(f"- {prefix}{text}")
    return InboundMessage(
        channel=messages[0].channel if messages else "",
        text="\n".join(lines),
        summary_of=count,
    )


# ---------------------------------------------------------------------------
# Controller
# ---------------------------------------------------------------------------


class InboundQueueController:
    """Owns every session's inbound buffer and decides when to flush it."""

    def __init__(
        self,
        processor: BatchProcessor,
        *,
        config: MessagesConfig | None = None,
        steerer: Steerer | None = None,
        interrupter: Interrupter | None = None,
        summarizer: Summarizer | None = None,
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> None:
        self._processor = processor
        self._steerer = steerer
        self._interrupter = interrupter
        self._summarizer = summarizer
        self.config = config

        self._sessions: dict[str, SessionQueueState] = {}
        self._tasks: set[asyncio.Task[None]] = set()
        self._loop = loop
        self._closed = False

    # -- Submission ------------------------------------------------------------

    async def submit(
        self,
        session_key: str,
        message: InboundMessage,
        channel: str | None = None,
    ) -> Decision:
        """Apply queue-mode and drop-policy rules to one inbound message.

        ``channel`` defaults to ``message.channel``.  Never raises for
        capacity problems: those are reported as ``dropped`` decisions.
        Raises ``ControllerClosedError`` once ``aclose`` has run, including
        for submissions that were waiting on the session lock at the time.
        """
        self._ensure_open()
        self._loop = asyncio.get_running_loop()
        channel = channel if channel is not None else message.channel

        state = self._sessions.get(session_key)
        if state is None:
            state = SessionQueueState(session_key=session_key, channel=channel)
            self._sessions[session_key] = state
            logger.debug("Queue: new session {}", session_key)

        state.users += 1
        try:
            async with state.lock:
                # aclose() may have run while this submission waited for the lock.
                self._ensure_open()
                state.apply(resolve_queue_settings(self.config, channel), channel)
                decision = await self._dispatch(state, message)
        finally:
            state.users -= 1
            self._release_if_idle(state)

        logger.debug(
            "Queue: {} message {} -> {} (mode={}, pending={})",
            session_key,
            message.message_id,
            decision.kind,
            state.mode,
            len(state.pending),
        )
        return decision

    def submit_threadsafe(
        self,
        session_key: str,
        message: InboundMessage,
        channel: str | None = None,
    ) -> concurrent.futures.Future[Decision]:
        """Submit from a thread other than the controller's event loop thread."""
        if self._loop is None:
            raise LoopNotBoundError
        return asyncio.run_coroutine_threadsafe(self.submit(session_key, message, channel), self._loop)

    def _ensure_open(self) -> None:
        if self._closed:
            raise ControllerClosedError

    async def _dispatch(self, state: SessionQueueState, message: InboundMessage) -> Decision:
        match state.mode:
            case QueueMode.INTERRUPT:
                return await self._interrupt(state, message)
            case QueueMode.STEER | QueueMode.STEER_BACKLOG | QueueMode.STEER_PLUS_BACKLOG:
                if state.in_flight:
                    steered = await self._try_steer(state, message)
                    if steered is not None:
                        return steered
                    self._ensure_open()
                return await self._buffer(state, message)
            case QueueMode.COLLECT | QueueMode.FOLLOWUP | QueueMode.QUEUE:
                return await self._buffer(state, message)
            case _:
                assert_never(state.mode)

    # -- Buffering and drop policy ---------------------------------------------

    async def _buffer(self, state: SessionQueueState, message: InboundMessage) -> Decision:
        if state.cap == 0:
            return self._drop(state, message, DropReason.ZERO_CAPACITY)

        if len(state.pending) < state.cap:
            state.push(message)
            self._arm(state)
            return Decision(kind=DecisionKind.QUEUED, session_key=state.session_key, message=message)

        match state.drop_policy:
            case DropPolicy.NEW:
                # A lowered cap leaves an oversized buffer: trim the oldest first.
                overflow = len(state.pending) - state.cap
                evicted = state.evict_oldest(overflow) if overflow > 0 else []
                if evicted:
                    logger.info("Queue: trimmed {} oldest messages from {}", len(evicted), state.session_key)
                return self._drop(state, message, DropReason.CAPACITY, evicted=tuple(evicted))
            case DropPolicy.OLD:
                evicted = state.evict_oldest(len(state.pending) + 1 - state.cap)
                state.push(message)
                self._arm(state)
                logger.info("Queue: evicted {} oldest messages from {}", len(evicted), state.session_key)
                return Decision(
                    kind=DecisionKind.QUEUED,
                    session_key=state.session_key,
                    message=message,
                    evicted=tuple(evicted),
                )
            case DropPolicy.SUMMARIZE:
                return await self._collapse(state, message)
            case _:
                assert_never(state.drop_policy)

    async def _collapse(self, state: SessionQueueState, message: InboundMessage) -> Decision:
        """Replace the buffer with one summary entry plus *message*.

        With a cap of 1 the incoming message is folded into the summary too.
        """
        fold_incoming = state.cap < 2
        while True:
            collapsed = list(state.pending)
            revision = state.revision
            summary = await self._summarize(state, [*collapsed, message] if fold_incoming else collapsed)
            self._ensure_open()
            if state.revision == revision:
                break
            # A debounce flush emptied the buffer while the summarizer ran.
            if len(state.pending) < state.cap:
                state.push(message)
                self._arm(state)
                return Decision(kind=DecisionKind.QUEUED, session_key=state.session_key, message=message)

        state.replace([summary] if fold_incoming else [summary, message])
        self._arm(state)
        logger.info("Queue: collapsed {} messages into a summary for {}", len(collapsed), state.session_key)
        return Decision(
            kind=DecisionKind.SUMMARIZED,
            session_key=state.session_key,
            message=message,
            collapsed=len(collapsed),
        )

    async def _summarize(self, state: SessionQueueState, messages: list[InboundMessage]) -> InboundMessage:
        if self._summarizer is not None:
            try:
                return await self._summarizer(messages)
            except Exception:
                logger.exception("Queue: summarizer failed for {}, using placeholder", state.session_key)
        return placeholder_summary(messages)

    def _drop(
        self,
        state: SessionQueueState,
        message: InboundMessage,
        reason: DropReason,
        *,
        evicted: tuple[InboundMessage, ...] = (),
    ) -> Decision:
        logger.info(
            "Queue: dropped message {} for {} ({}, cap={})",
            message.message_id,
            state.session_key,
            reason,
            state.cap,
        )
        return Decision(
            kind=DecisionKind.DROPPED,
            session_key=state.session_key,
            message=message,
            reason=reason,
            evicted=evicted,
        )

    # -- Preemption ------------------------------------------------------------

    async def _try_steer(self, state: SessionQueueState, message: InboundMessage) -> Decision | None:
        """Redirect *message* into the in-flight run, or return None to buffer it."""
        if self._steerer is None:
            return None

        flight = state.active_flight
        try:
            accepted = await self._steerer(state.session_key, message)
        except Exception:
            logger.exception("Queue: steer failed for {}, buffering message", state.session_key)
            return None

        if not accepted:
            return None
        if state.active_flight != flight:
            # The run finished while the steer was being delivered and may
            # never have seen it.
            logger.warning("Queue: batch for {} completed during steer, buffering message", state.session_key)
            return None

        logger.info("Queue: steered message {} into {}", message.message_id, state.session_key)
        return Decision(kind=DecisionKind.STEERED, session_key=state.session_key, message=message)

    async def _interrupt(self, state: SessionQueueState, message: InboundMessage) -> Decision:
        previous = state.active_cancel if state.in_flight else None
        if previous is not None:
            previous.cancel()

        batch = Batch(
            session_key=state.session_key,
            channel=state.channel,
            messages=(message,),
            trigger=FlushTrigger.INTERRUPT,
        )
        self._start_flight(state, batch)

        if previous is not None:
            logger.info("Queue: interrupt preempted in-flight batch for {}", state.session_key)
            if self._interrupter is not None:
                try:
                    await self._interrupter(state.session_key, previous)
                except Exception:
                    logger.exception("Queue: interrupt signal failed for {}", state.session_key)

        return Decision(
            kind=DecisionKind.FLUSHED,
            session_key=state.session_key,
            message=message,
            batch=batch,
            preempted=previous is not None,
        )

    # -- Debounce and flush ----------------------------------------------------

    def _arm(self, state: SessionQueueState) -> None:
        """(Re)arm the session's debounce timer, cancelling any previous one."""
        state.cancel_timer()
        if self._closed:
            return
        loop = self._loop or asyncio.get_running_loop()
        state.debounce_timer = loop.call_later(state.debounce_ms / 1000, self._on_debounce_elapsed, state)

    def _on_debounce_elapsed(self, state: SessionQueueState) -> None:
        state.debounce_timer = None
        if not state.pending:
            self._release_if_idle(state)
            return
        if state.in_flight:
            logger.debug(
                "Queue: {} still in flight, holding {} messages as backlog",
                state.session_key,
                len(state.pending),
            )
            return
        self._flush(state, FlushTrigger.DEBOUNCE)

    def _flush(self, state: SessionQueueState, trigger: FlushTrigger) -> Batch:
        state.cancel_timer()
        batch = Batch(
            session_key=state.session_key,
            channel=state.channel,
            messages=state.take_pending(),
            trigger=trigger,
        )
        self._start_flight(state, batch)
        logger.info("Queue: flushed {} messages for {} ({})", len(batch), state.session_key, trigger)
        return batch

    def _start_flight(self, state: SessionQueueState, batch: Batch) -> None:
        if self._closed:
            return
        state.flight_seq += 1
        flight = state.flight_seq
        state.active_flight = flight
        state.active_cancel = batch.cancel

        loop = self._loop or asyncio.get_running_loop()
        task = loop.create_task(self._run_flight(state, batch, flight), name=f"chatgate-batch-{batch.batch_id}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _run_flight(self, state: SessionQueueState, batch: Batch, flight: int) -> None:
        try:
            await self._processor(batch)
        except Exception:
            logger.exception("Queue: processor failed for batch {} in {}", batch.batch_id, state.session_key)
        finally:
            self._complete_flight(state, flight)

    def _complete_flight(self, state: SessionQueueState, flight: int) -> None:
        if state.active_flight != flight:
            # Superseded by an interrupt; the newer batch owns the session.
            return
        state.active_flight = None
        state.active_cancel = None
        if self._closed:
            return

        if state.pending and state.debounce_timer is None:
            logger.debug("Queue: releasing backlog of {} for {}", len(state.pending), state.session_key)
            self._arm(state)
        self._release_if_idle(state)

    def _release_if_idle(self, state: SessionQueueState) -> None:
        if state.is_idle and self._sessions.get(state.session_key) is state:
            del self._sessions[state.session_key]

    # -- Manual control --------------------------------------------------------

    def flush(self, session_key: str) -> Batch | None:
        """Flush a session's buffer now, skipping the debounce wait.

        Returns ``None`` when there is nothing to flush or a batch is still in
        flight (the buffer is then released when that batch completes).
        """
        state = self._sessions.get(session_key)
        if state is None or not state.pending or state.in_flight:
            return None
        return self._flush(state, FlushTrigger.MANUAL)

    def flush_all(self) -> list[Batch]:
        """Flush every session that has a buffer and nothing in flight."""
        batches = []
        for session_key in list(self._sessions):
            batch = self.flush(session_key)
            if batch is not None:
                batches.append(batch)
        return batches

    # -- Query -----------------------------------------------------------------

    def snapshot(self, session_key: str) -> SessionSnapshot | None:
        state = self._sessions.get(session_key)
        return SessionSnapshot.of(state) if state is not None else None

    @property
    def active_sessions(self) -> list[str]:
        return list(self._sessions)

    @property
    def in_flight_count(self) -> int:
        return sum(1 for s in self._sessions.values() if s.in_flight)

    # -- Lifecycle -------------------------------------------------------------

    async def wait_until_drained(self, timeout: float | None = None) -> bool:
        """Flush all buffers and wait until every batch has been processed.

        Returns ``True`` once nothing is pending or in flight, ``False`` if
        *timeout* expired first.
        """
        try:
            async with asyncio.timeout(timeout):
                while True:
                    self.flush_all()
                    if not self._tasks:
                        return True
                    # Completed batches may re-arm a backlog; the next pass flushes it.
                    await asyncio.wait(set(self._tasks))
        except TimeoutError:
            logger.warning(
                "Queue: drain timed out after {}s with {} batches in flight",
                timeout,
                len(self._tasks),
            )
            return False

    async def aclose(self) -> None:
        """Stop accepting messages, cancel timers and in-flight batches."""
        self._closed = True
        for state in self._sessions.values():
            state.cancel_timer()
            if state.active_cancel is not None:
                state.active_cancel.cancel()
        tasks = set(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.wait(tasks)
        self._sessions.clear()
        logger.info("Queue: controller closed ({} batches cancelled)", len(tasks))
