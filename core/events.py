"""Event sinks for trigger data actions. The core emits and never inspects."""
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

import structlog

logger = structlog.get_logger()


class EventSink(ABC):

    @abstractmethod
    def emit(self, event: str, payload: dict[str, Any]) -> None:
        ...


class LoggingEventSink(EventSink):
    """Default sink: writes every event to the structured log."""

    def emit(self, event: str, payload: dict[str, Any]) -> None:
        logger.info("conversation_event", event_name=event, payload=payload)


class RecordingEventSink(EventSink):
    """Keeps emitted events in memory; used by the HTTP host and tests."""

    def __init__(self):
        self.events: list[tuple[str, dict[str, Any]]] = []

    def emit(self, event: str, payload: dict[str, Any]) -> None:
        self.events.append((event, dict(payload)))

    def names(self) -> list[str]:
        return [name for name, _ in self.events]

    def clear(self):
        self.events.clear()
