"""
FileDataStore: JSON file-backed store with persistence across restarts.

On init: loads the whole key space from ``file_path`` into memory.
On every write: rewrites the file (tmp file + rename, atomic on POSIX).
Single-process only (no concurrent write safety).
"""
from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import structlog

from database.store_memory import InMemoryDataStore

logger = structlog.get_logger()


class FileDataStore(InMemoryDataStore):
    """Extends InMemoryDataStore with JSON file persistence."""

    def __init__(self, file_path: str = "./data/store.json"):
        super().__init__()
        self._path = Path(file_path)
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._load()
        logger.info("file_store_initialized", path=str(self._path), keys=len(self._data))

    @property
    def path(self) -> Path:
        return self._path

    def _load(self):
        if not self._path.exists():
            return
        try:
            with open(self._path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.warning("file_store_load_error", path=str(self._path), error=str(e))
            return
        if isinstance(data, dict):
            self._data = data
        else:
            logger.warning("file_store_unexpected_format", path=str(self._path))

    def flush(self):
        """Write the full key space to disk."""
        tmp_path = self._path.with_suffix(".tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(self._data, f, indent=2, default=str)
        tmp_path.replace(self._path)

    async def set(self, key: str, value: Any) -> None:
        await super().set(key, value)
        self.flush()

    async def delete(self, key: str) -> None:
        await super().delete(key)
        self.flush()

    async def clear(self) -> None:
        await super().clear()
        self.flush()
