"""Shared test fixtures for the scripted chat runtime."""
import random
from datetime import datetime
from typing import Any

import pytest

from config.settings import DeliveryConfig, SessionConfig
from core.context import ConversationContext
from core.events import RecordingEventSink
from database.store_memory import InMemoryDataStore
from job_queue.scheduler import ManualScheduler
from models.schemas import Message, MessageType, Sequence
from templates.content import InMemoryContentLibrary
from templates.formatters import FormatterRegistry
from templates.registry import SequenceRegistry


def make_sequence(sequence_id: str, messages: list[dict[str, Any]], name: str = "") -> dict[str, Any]:
    """Raw authoring-format sequence dict."""
    return {
        "sequenceId": sequence_id,
        "name": name or sequence_id.title(),
        "description": "",
        "messages": messages,
    }


@pytest.fixture
def onboarding_raw() -> dict[str, Any]:
    """A small but complete sequence touching every message type."""
    return make_sequence("onboarding", [
        {"id": 1, "type": "bot", "text": "Hi there! ||| Let's get started.", "nextMessageId": 2},
        {"id": 2, "type": "textInput", "text": "What's your name?", "storeKey": "user.name",
         "placeholderText": "Name", "nextMessageId": 3},
        {"id": 3, "type": "dataAction", "dataActions": [
            {"type": "increment", "key": "user.score", "value": 5},
            {"type": "trigger", "event": "name_collected", "data": {"step": 3}},
        ], "nextMessageId": 4},
        {"id": 4, "type": "choice", "text": "Nice to meet you, {user.name}. Ready?", "storeKey": "user.ready",
         "choices": [
             {"text": "Yes", "value": True, "nextMessageId": 5},
             {"text": "Later", "value": False, "nextMessageId": 7},
         ]},
        {"id": 5, "type": "autoroute", "routes": [
            {"condition": "user.score >= 5 && user.ready == true", "nextMessageId": 6},
            {"default": True, "nextMessageId": 7},
        ]},
        {"id": 6, "type": "bot", "text": "Great, {user.name}!", "sequenceId": "followup"},
        {"id": 7, "type": "bot", "text": "See you later."},
    ])


@pytest.fixture
def followup_raw() -> dict[str, Any]:
    return make_sequence("followup", [
        {"id": 1, "type": "bot", "text": "Welcome to part two.", "nextMessageId": 2},
        {"id": 2, "type": "image", "text": "Here's a map.", "imagePath": "assets/map.png"},
    ])


@pytest.fixture
def registry(onboarding_raw, followup_raw) -> SequenceRegistry:
    reg = SequenceRegistry()
    assert reg.load(onboarding_raw).ok
    assert reg.load(followup_raw).ok
    return reg


@pytest.fixture
def store() -> InMemoryDataStore:
    return InMemoryDataStore()


@pytest.fixture
def events() -> RecordingEventSink:
    return RecordingEventSink()


@pytest.fixture
def scheduler() -> ManualScheduler:
    return ManualScheduler()


@pytest.fixture
def content_library() -> InMemoryContentLibrary:
    return InMemoryContentLibrary({
        "bot/acknowledge/completion": "Done!",
        "bot/acknowledge/default": "Okay.",
        "bot/request/input_name": "What should I call you?",
    }, rng=random.Random(7))


@pytest.fixture
def instant_context(registry, store, events, content_library) -> ConversationContext:
    """Context that delivers without pacing."""
    return ConversationContext(
        registry=registry,
        store=store,
        formatters=FormatterRegistry(),
        content=content_library,
        events=events,
        scheduler=ManualScheduler(),
        delivery=DeliveryConfig(instant_mode=True),
        session=SessionConfig(),
        default_sequence_id="onboarding",
    )


@pytest.fixture
def paced_context(registry, store, events, scheduler) -> ConversationContext:
    """Context paced by a manual clock: adaptive delay is always 100ms."""
    return ConversationContext(
        registry=registry,
        store=store,
        formatters=FormatterRegistry(),
        events=events,
        scheduler=scheduler,
        delivery=DeliveryConfig(
            instant_mode=False,
            min_delay_ms=100,
            max_delay_ms=100,
            base_delay_ms=100,
            per_word_delay_ms=0,
            interactive_delay_ms=50,
        ),
        default_sequence_id="onboarding",
    )


def bot(message_id: int, text: str = "", **kwargs) -> Message:
    return Message(id=message_id, type=MessageType.BOT, text=text or f"message {message_id}", **kwargs)


def fixed_now(year=2025, month=3, day=12, hour=9, minute=0):
    """A ``now`` callable frozen at the given local time (2025-03-12 is a Wednesday)."""
    moment = datetime(year, month, day, hour, minute)
    return lambda: moment
