"""
Data store layer: flat key-value persistence for conversation state.

Backends:
  - In-memory (dict-based, for development/testing)
  - File (one JSON file on disk, for single-user deployments)

Quick start:
  from database import create_store
  store = create_store()
  await store.set("user.name", "Ana")
"""
from database.store_base import BaseDataStore
from database.store_memory import InMemoryDataStore
from database.store_file import FileDataStore
from database.store_factory import create_store, get_store, reset_store

__all__ = [
    "BaseDataStore",
    "InMemoryDataStore", "FileDataStore",
    "create_store", "get_store", "reset_store",
]
