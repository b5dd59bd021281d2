"""
Store Factory: Create the right data store backend from configuration.

Configuration in settings.yaml:
    store:
      # "memory": in-memory dict (development, testing)
      # "file"  : one JSON file on disk (single-user deployments)
      backend: "memory"
      file_path: "./data/store.json"   # one file per namespace: store.<namespace>.json

Usage:
    from database.store_factory import create_store, get_store
    store = create_store(settings.store)   # Fresh instance from config
    store = create_store(settings.store, namespace=conversation_id)
    store = get_store()                    # Process-wide singleton
"""
from __future__ import annotations

from pathlib import Path
from typing import Optional

import structlog

from config.settings import StoreConfig
from database.store_base import BaseDataStore

logger = structlog.get_logger()

_instance: Optional[BaseDataStore] = None


def namespaced_path(file_path: str, namespace: Optional[str] = None) -> str:
    """``store.json`` becomes ``store.<namespace>.json``; unchanged without a namespace."""
    if not namespace:
        return file_path
    path = Path(file_path)
    return str(path.with_name(f"{path.stem}.{namespace}{path.suffix}"))


def create_store(config: StoreConfig = None, namespace: Optional[str] = None) -> BaseDataStore:
    """Factory: build a new data store for the configured backend.

    File stores keep a private copy of the whole key space and rewrite the
    file on every write, so stores that must not share keys need distinct
    namespaces.
    """
    config = config or StoreConfig()

    if config.backend == "file":
        from database.store_file import FileDataStore
        file_path = namespaced_path(config.file_path, namespace)
        store = FileDataStore(file_path=file_path)
        logger.info("store_created", backend="file", path=file_path, namespace=namespace)
        return store

    if config.backend != "memory":
        logger.warning("store_backend_unknown", backend=config.backend)

    from database.store_memory import InMemoryDataStore
    logger.info("store_created", backend="memory")
    return InMemoryDataStore()


def get_store(config: StoreConfig = None) -> BaseDataStore:
    """Return the singleton store instance, creating it on first use."""
    global _instance
    if _instance is None:
        _instance = create_store(config)
    return _instance


def reset_store() -> None:
    """Reset the singleton (for testing)."""
    global _instance
    _instance = None
