"""
Conversation context: the collaborators one conversation depends on.

Passed explicitly into the delivery queue and engine instead of being reached
through module-level singletons, so tests can swap any piece for a fake.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from config.settings import DeliveryConfig, SessionConfig
from core.events import EventSink, LoggingEventSink
from database.store_base import BaseDataStore
from database.store_memory import InMemoryDataStore
from job_queue.scheduler import AsyncioScheduler, Scheduler
from templates.content import ContentLibrary
from templates.formatters import FormatterRegistry
from templates.registry import SequenceRegistry


@dataclass
class ConversationContext:
    registry: SequenceRegistry
    store: BaseDataStore = field(default_factory=InMemoryDataStore)
    formatters: FormatterRegistry = field(default_factory=FormatterRegistry)
    content: Optional[ContentLibrary] = None
    events: EventSink = field(default_factory=LoggingEventSink)
    scheduler: Scheduler = field(default_factory=AsyncioScheduler)
    delivery: DeliveryConfig = field(default_factory=DeliveryConfig)
    session: SessionConfig = field(default_factory=SessionConfig)
    default_sequence_id: str = "welcome"
