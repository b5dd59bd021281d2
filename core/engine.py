"""
Conversation Engine: wires the session service, sequence registry and
delivery queue together for one running conversation.

Typical use:
    engine = ConversationEngine(build_context(get_settings()))
    await engine.start()
    await engine.join()
    await engine.select_choice(0)
"""
from __future__ import annotations

from datetime import datetime
from typing import Any, Callable, Optional, Union

import structlog

from config.settings import Settings
from context.session import SessionService
from core.context import ConversationContext
from core.events import EventSink
from database.store_base import BaseDataStore
from database.store_factory import create_store
from job_queue.message_queue import MessageDeliveryQueue, QueueState
from job_queue.scheduler import Scheduler
from models.schemas import Choice, Message, SequenceNotFoundError
from templates.content import FileContentLibrary
from templates.formatters import FormatterRegistry
from templates.registry import SequenceRegistry

logger = structlog.get_logger()


def build_context(
    settings: Settings,
    registry: SequenceRegistry = None,
    store: BaseDataStore = None,
    events: EventSink = None,
    scheduler: Scheduler = None,
) -> ConversationContext:
    """Assemble a ConversationContext from configuration; any piece can be overridden."""
    if registry is None:
        registry = SequenceRegistry()
        registry.load_directory(settings.sequences.directory)

    extras: dict[str, Any] = {}
    if events is not None:
        extras["events"] = events
    if scheduler is not None:
        extras["scheduler"] = scheduler

    return ConversationContext(
        registry=registry,
        store=store or create_store(settings.store),
        formatters=FormatterRegistry.from_file(settings.content.formatters_path),
        content=FileContentLibrary(settings.content.directory),
        delivery=settings.delivery,
        session=settings.session,
        default_sequence_id=settings.sequences.default_sequence_id,
        **extras,
    )


class ConversationEngine:
    """Session start + sequence entry + pass-through to the delivery queue."""

    def __init__(
        self,
        context: ConversationContext,
        on_display: Callable[[Message], Any] = None,
        now: Callable[[], datetime] = None,
    ):
        self.ctx = context
        self.session = SessionService(context.store, context.session, now=now)
        self.queue = MessageDeliveryQueue(context, on_display=on_display)

    async def start(self, sequence_id: str = None) -> str:
        """Initialise session state, then begin delivering ``sequence_id``."""
        sequence_id = sequence_id or self.ctx.default_sequence_id
        if not self.ctx.registry.has(sequence_id):
            raise SequenceNotFoundError(sequence_id)
        await self.session.initialize()
        return self.start_sequence(sequence_id)

    def start_sequence(self, sequence_id: str) -> str:
        """Enqueue the opening walk of ``sequence_id`` behind anything already queued."""
        if not self.ctx.registry.has(sequence_id):
            raise SequenceNotFoundError(sequence_id)
        items = self.queue.continuation(self.queue.active_sequence_id, sequence_id=sequence_id)
        self.queue.enqueue([m for m, _ in items], sequence_id=sequence_id)
        logger.info("sequence_started", sequence_id=sequence_id, messages=len(items))
        return sequence_id

    # ── Pass-through ──────────────────────────────────

    @property
    def state(self) -> QueueState:
        return self.queue.state

    @property
    def messages(self) -> list[Message]:
        return self.queue.messages

    @property
    def pending_message(self) -> Optional[Message]:
        return self.queue.pending_message

    @property
    def active_sequence_id(self) -> str:
        return self.queue.active_sequence_id

    async def join(self):
        await self.queue.join()

    async def select_choice(self, choice: Union[int, Choice]) -> Optional[Message]:
        return await self.queue.select_choice(choice)

    async def submit_text(self, text: str) -> Optional[Message]:
        return await self.queue.submit_text(text)

    async def dispose(self):
        await self.queue.dispose()

    async def data(self) -> dict[str, Any]:
        return await self.ctx.store.snapshot()
