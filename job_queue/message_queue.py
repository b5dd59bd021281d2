"""
Message Delivery Queue: paces authored messages into a conversation log.

State machine:
  IDLE       nothing to deliver
  DRAINING   a single drain task walks the backlog strictly in order
  SUSPENDED  a choice / text input is pending; waits for select_choice / submit_text
  DISPOSED   terminal; pending waits are cancelled, the backlog is dropped

Per message type (see _HANDLERS):
  bot / user / image / system   render → pace → append (bot/user split on |||)
  choice / textInput            render → pace → append → suspend
  autoroute                     route on the current store, continuation goes first
  dataAction                    apply store mutations / emit events inline

Delays pace delivery and never reorder it.
"""
from __future__ import annotations

import asyncio
from collections import deque
from enum import Enum
from typing import Any, Callable, Optional, Union

import structlog

from core.context import ConversationContext
from core.flow import FlowWalker
from job_queue.delay_policy import DelayPolicy
from models.schemas import (
    Choice, ConversationRun, InvalidResolutionError, Message, MessageType,
)
from rules.actions import DataActionProcessor
from rules.router import RouteProcessor
from templates.renderer import MessageRenderer

logger = structlog.get_logger()


class QueueState(str, Enum):
    IDLE = "idle"
    DRAINING = "draining"
    SUSPENDED = "suspended"
    DISPOSED = "disposed"


# MessageType → handler method; checked for completeness at import
_HANDLERS: dict[MessageType, str] = {
    MessageType.BOT: "_deliver_display",
    MessageType.USER: "_deliver_display",
    MessageType.IMAGE: "_deliver_display",
    MessageType.SYSTEM: "_deliver_display",
    MessageType.CHOICE: "_deliver_interactive",
    MessageType.TEXT_INPUT: "_deliver_interactive",
    MessageType.AUTOROUTE: "_deliver_autoroute",
    MessageType.DATA_ACTION: "_deliver_data_action",
}

_unhandled = set(MessageType) - set(_HANDLERS)
if _unhandled:
    raise RuntimeError(f"No delivery handler for message types: {sorted(t.value for t in _unhandled)}")

# (message, id of the sequence it belongs to)
QueuedMessage = tuple[Message, str]


class MessageDeliveryQueue:
    """Stateful orchestrator for one running conversation."""

    def __init__(
        self,
        context: ConversationContext,
        sequence_id: str = "",
        on_display: Callable[[Message], Any] = None,
    ):
        self.ctx = context
        self.run = ConversationRun(active_sequence_id=sequence_id)
        self.on_display = on_display

        self._state = QueueState.IDLE
        self._backlog: deque[QueuedMessage] = deque()
        self._task: Optional[asyncio.Task] = None
        self._idle = asyncio.Event()
        self._idle.set()
        self._last_displayed: Optional[Message] = None
        self._pending_sequence_id = sequence_id

        self._renderer = MessageRenderer(context.formatters, context.content)
        self._router = RouteProcessor()
        self._actions = DataActionProcessor(context.store, context.events)
        self._delays = DelayPolicy(context.delivery)
        self._walker = FlowWalker(context.delivery.max_walk_depth)

    # ── Introspection ─────────────────────────────────

    @property
    def state(self) -> QueueState:
        return self._state

    @property
    def messages(self) -> list[Message]:
        return list(self.run.message_log)

    @property
    def pending_message(self) -> Optional[Message]:
        return self.run.pending_message

    @property
    def active_sequence_id(self) -> str:
        return self.run.active_sequence_id

    @property
    def backlog_size(self) -> int:
        return len(self._backlog)

    async def join(self):
        """Wait until the backlog is drained or delivery is suspended."""
        await self._idle.wait()

    # ── Enqueue / continuation ────────────────────────

    def enqueue(self, messages: list[Message], sequence_id: str = None):
        """Append messages to the backlog; additive, never preemptive."""
        if self._state == QueueState.DISPOSED:
            logger.warning("enqueue_after_dispose", count=len(messages))
            return
        sid = sequence_id or self.run.active_sequence_id
        self._backlog.extend((m, sid) for m in messages)
        logger.debug("messages_enqueued", count=len(messages), sequence_id=sid, state=self._state.value)
        if self._state != QueueState.SUSPENDED:
            self._ensure_draining()

    def continuation(
        self,
        current_sequence_id: str,
        next_message_id: Optional[int] = None,
        sequence_id: Optional[str] = None,
    ) -> list[QueuedMessage]:
        """Walk the messages that follow a decision; a sequence jump wins over a message id."""
        if sequence_id:
            target = self.ctx.registry.get(sequence_id)
            if target is None:
                logger.warning("sequence_not_found", sequence_id=sequence_id)
                return []
            if sequence_id != self.run.active_sequence_id:
                logger.info("sequence_switched", previous=self.run.active_sequence_id, sequence_id=sequence_id)
            self.run.active_sequence_id = sequence_id
            start = target.first_message_id
        elif next_message_id is not None:
            target = self.ctx.registry.get(current_sequence_id)
            if target is None:
                logger.warning("sequence_not_found", sequence_id=current_sequence_id)
                return []
            start = next_message_id
        else:
            return []

        walk = self._walker.walk(target, start)
        return [(m, target.id) for m in walk.messages]

    def _push_front(self, items: list[QueuedMessage]):
        self._backlog.extendleft(reversed(items))

    def _ensure_draining(self):
        if self._state == QueueState.DRAINING and self._task and not self._task.done():
            return
        if not self._backlog:
            return
        self._state = QueueState.DRAINING
        self._idle.clear()
        self._task = asyncio.create_task(self._drain())

    # ── Drain loop ────────────────────────────────────

    async def _drain(self):
        try:
            while self._backlog and self._state == QueueState.DRAINING:
                message, sequence_id = self._backlog.popleft()
                handler = getattr(self, _HANDLERS[message.type])
                try:
                    await handler(message, sequence_id)
                except Exception as e:
                    logger.error("message_delivery_failed",
                                 message_id=message.id,
                                 type=message.type.value,
                                 error=str(e))
            if self._state == QueueState.DRAINING:
                self._state = QueueState.IDLE
                logger.debug("queue_idle", logged=len(self.run.message_log))
        finally:
            self._idle.set()

    async def _pace(self, delay_ms: int):
        if delay_ms > 0:
            logger.debug("pacing_wait", delay_ms=delay_ms)
            await self.ctx.scheduler.sleep(delay_ms)

    async def _deliver_display(self, message: Message, sequence_id: str):
        data = await self.ctx.store.snapshot()
        parts = self._renderer.render(message, data)
        if parts:
            # Every part of a multi-part message shares one delay
            delay = self._delays.delay_before(parts[0], self._last_displayed)
            history_end = len(self.run.message_log)
            for part in parts:
                await self._pace(delay)
                self._append(part, history_end)
        if message.sequence_id:
            self._push_front(self.continuation(sequence_id, sequence_id=message.sequence_id))

    async def _deliver_interactive(self, message: Message, sequence_id: str):
        data = await self.ctx.store.snapshot()
        rendered = self._renderer.render(message, data)[0]
        await self._pace(self._delays.delay_before(rendered, self._last_displayed))
        self._append(rendered)
        self.run.pending_message = rendered
        self._pending_sequence_id = sequence_id
        self._state = QueueState.SUSPENDED
        logger.info("queue_suspended", message_id=message.id, type=message.type.value)

    async def _deliver_autoroute(self, message: Message, sequence_id: str):
        data = await self.ctx.store.snapshot()
        decision = self._router.process(message, data)
        if decision.is_dead_end:
            return
        self._push_front(self.continuation(
            sequence_id,
            next_message_id=decision.next_message_id,
            sequence_id=decision.sequence_id,
        ))

    async def _deliver_data_action(self, message: Message, sequence_id: str):
        await self._actions.process(message.data_actions)
        if message.sequence_id:
            self._push_front(self.continuation(sequence_id, sequence_id=message.sequence_id))

    def _append(self, message: Message, history_end: Optional[int] = None):
        if self._is_duplicate(message, history_end):
            logger.debug("duplicate_message_suppressed", message_id=message.id)
            return
        self.run.message_log.append(message)
        self._last_displayed = message
        if self.on_display is not None:
            self.on_display(message)

    def _is_duplicate(self, message: Message, history_end: Optional[int] = None) -> bool:
        """
        Same id, text and sender already logged since the user last spoke.
        Parts of one multi-part render only look at the log as it was before it.
        """
        history = self.run.message_log if history_end is None else self.run.message_log[:history_end]
        for logged in reversed(history):
            if logged.type == MessageType.USER:
                return False
            if logged.id == message.id and logged.text == message.text and logged.sender == message.sender:
                return True
        return False

    # ── Resolution ────────────────────────────────────

    def _require_pending(self, expected: MessageType) -> Optional[Message]:
        if self._state == QueueState.DISPOSED:
            logger.warning("resolution_after_dispose", expected=expected.value)
            return None
        pending = self.run.pending_message
        if self._state != QueueState.SUSPENDED or pending is None:
            raise InvalidResolutionError("No interactive message is awaiting a response")
        if pending.type != expected:
            raise InvalidResolutionError(
                f"Message {pending.id} is a {pending.type.value} message, not {expected.value}"
            )
        return pending

    def _echo(self, pending: Message, text: str) -> Message:
        return Message(
            id=self.ctx.delivery.user_response_id_offset + pending.id,
            type=MessageType.USER,
            text=text,
            delay=0,
        )

    def _resume(self, pending: Message, items: list[QueuedMessage]):
        if self._state == QueueState.DISPOSED:
            return
        self.run.pending_message = None
        self._state = QueueState.IDLE
        self._push_front(items)
        logger.info("queue_resumed", message_id=pending.id, continuation=len(items))
        self._ensure_draining()

    async def select_choice(self, choice: Union[int, Choice]) -> Optional[Message]:
        """Answer the pending choice message; returns the user echo message."""
        pending = self._require_pending(MessageType.CHOICE)
        if pending is None:
            return None

        if isinstance(choice, bool) or not isinstance(choice, (int, Choice)):
            raise InvalidResolutionError(f"Unsupported choice value: {choice!r}")
        if isinstance(choice, int):
            if not 0 <= choice < len(pending.choices):
                raise InvalidResolutionError(
                    f"Choice index {choice} out of range for message {pending.id} ({len(pending.choices)} choices)"
                )
            selected = pending.choices[choice]
        elif choice in pending.choices:
            selected = choice
        else:
            raise InvalidResolutionError(f"Choice '{choice.text}' does not belong to message {pending.id}")

        if pending.store_key:
            await self.ctx.store.set(pending.store_key, selected.stored_value)

        self.run.replace_logged(pending.model_copy(update={"selected_choice_text": selected.text}))
        echo = self._echo(pending, selected.text)
        self._append(echo)
        logger.info("choice_selected", message_id=pending.id, choice=selected.text)

        sequence_id = self._pending_sequence_id
        if selected.sequence_id or selected.next_message_id is not None:
            items = self.continuation(sequence_id, selected.next_message_id, selected.sequence_id)
        else:
            items = self.continuation(sequence_id, pending.next_message_id, pending.sequence_id)
        self._resume(pending, items)
        return echo

    async def submit_text(self, text: str) -> Optional[Message]:
        """Answer the pending text input; returns the user echo message."""
        pending = self._require_pending(MessageType.TEXT_INPUT)
        if pending is None:
            return None
        text = (text or "").strip()
        if not text:
            raise InvalidResolutionError("Text input cannot be empty")

        if pending.store_key:
            await self.ctx.store.set(pending.store_key, text)

        echo = self._echo(pending, text)
        self._append(echo)
        logger.info("text_submitted", message_id=pending.id, store_key=pending.store_key)

        items = self.continuation(self._pending_sequence_id, pending.next_message_id, pending.sequence_id)
        self._resume(pending, items)
        return echo

    # ── Lifecycle ─────────────────────────────────────

    async def dispose(self):
        """Cancel any pacing wait and drop the backlog; the queue is unusable afterwards."""
        if self._state == QueueState.DISPOSED:
            return
        self._state = QueueState.DISPOSED
        dropped = len(self._backlog)
        self._backlog.clear()
        self.run.pending_message = None
        if self._task and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._idle.set()
        logger.info("queue_disposed", dropped=dropped, logged=len(self.run.message_log))
