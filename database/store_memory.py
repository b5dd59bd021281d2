"""
InMemoryDataStore: Dict-backed store for development and testing.

All data is lost on process restart.
"""
from __future__ import annotations

import copy
from typing import Any

import structlog

from database.store_base import BaseDataStore

logger = structlog.get_logger()


class InMemoryDataStore(BaseDataStore):

    def __init__(self, initial: dict[str, Any] = None):
        self._data: dict[str, Any] = dict(initial or {})
        logger.debug("inmemory_store_initialized", keys=len(self._data))

    async def get(self, key: str, default: Any = None) -> Any:
        value = self._data.get(key, default)
        return copy.deepcopy(value) if isinstance(value, (list, dict)) else value

    async def set(self, key: str, value: Any) -> None:
        self._data[key] = copy.deepcopy(value) if isinstance(value, (list, dict)) else value

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)

    async def snapshot(self) -> dict[str, Any]:
        return copy.deepcopy(self._data)

    async def clear(self) -> None:
        self._data.clear()
