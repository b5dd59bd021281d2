"""
Data Action Processor: applies store mutations and emits trigger events.

  set        overwrite key with the literal value (None allowed)
  increment  current (non-numeric → 0) + value (default 1)
  decrement  current (non-numeric → 0) - value (default 1)
  reset      numeric → 0, anything else → None
  trigger    emit {event, data} to the event sink; store untouched
"""
from __future__ import annotations

from typing import Any

import structlog

from database.store_base import BaseDataStore
from core.events import EventSink
from models.schemas import DataAction, DataActionType
from utils.conditions import to_number

logger = structlog.get_logger()


def _magnitude(value: Any) -> float:
    if value is None:
        return 1
    number = to_number(value)
    if number is None:
        logger.debug("data_action_magnitude_coerced", value=value)
        return 1
    return number


def _current_number(value: Any) -> float:
    number = to_number(value)
    return 0 if number is None else number


class DataActionProcessor:
    """Applies DataActions to a data store, in order."""

    def __init__(self, store: BaseDataStore, events: EventSink):
        self.store = store
        self.events = events

    async def process(self, actions: list[DataAction]):
        for action in actions:
            await self.apply(action)

    async def apply(self, action: DataAction):
        if action.type == DataActionType.TRIGGER:
            self._trigger(action)
            return

        if not action.key:
            logger.warning("data_action_missing_key", type=action.type.value)
            return

        if action.type == DataActionType.SET:
            await self.store.set(action.key, action.value)
            logger.debug("data_action_set", key=action.key, value=action.value)

        elif action.type in (DataActionType.INCREMENT, DataActionType.DECREMENT):
            current = _current_number(await self.store.get(action.key))
            delta = _magnitude(action.value)
            updated = current + delta if action.type == DataActionType.INCREMENT else current - delta
            await self.store.set(action.key, updated)
            logger.debug("data_action_counter", key=action.key, type=action.type.value, value=updated)

        elif action.type == DataActionType.RESET:
            current = await self.store.get(action.key)
            await self.store.set(action.key, 0 if to_number(current) is not None else None)
            logger.debug("data_action_reset", key=action.key)

    def _trigger(self, action: DataAction):
        event = action.event or action.key
        if not event:
            logger.warning("data_action_trigger_without_event")
            return
        payload = dict(action.data)
        if action.value is not None and "value" not in payload:
            payload["value"] = action.value
        # Fire-and-forget: a failing sink never blocks the conversation
        try:
            self.events.emit(event, payload)
        except Exception as e:
            logger.warning("event_emit_failed", event_name=event, error=str(e))
        logger.info("event_triggered", event_name=event)
