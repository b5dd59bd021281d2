"""
Abstract Data Store: flat key-value interface the conversation core reads and writes.

Keys use a dotted namespace (``user.name``, ``task.isActiveDay``); values are
JSON scalars or short lists. The core never nests objects.

Implementations:
  - InMemoryDataStore (dict-based, single-process, no persistence)
  - FileDataStore     (one JSON file on disk, single-process, durable)
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any


class BaseDataStore(ABC):
    """Interface that all data store backends must implement."""

    @abstractmethod
    async def get(self, key: str, default: Any = None) -> Any:
        ...

    @abstractmethod
    async def set(self, key: str, value: Any) -> None:
        ...

    @abstractmethod
    async def delete(self, key: str) -> None:
        ...

    @abstractmethod
    async def snapshot(self) -> dict[str, Any]:
        """A copy of every stored key, for pure evaluation against one point in time."""
        ...

    @abstractmethod
    async def clear(self) -> None:
        ...

    async def has(self, key: str) -> bool:
        return key in await self.snapshot()

    async def set_many(self, values: dict[str, Any]) -> None:
        for key, value in values.items():
            await self.set(key, value)
