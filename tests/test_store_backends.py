"""
Tests for all data store backends.

Covers:
  - InMemoryDataStore
  - FileDataStore (JSON file persistence)
  - Store factory (memory vs file selection)
"""
import json

import pytest

from config.settings import StoreConfig


# ──────────────────────────────────────────────────────────────
#  InMemoryDataStore
# ──────────────────────────────────────────────────────────────

class TestInMemoryDataStore:
    @pytest.fixture
    def store(self):
        from database.store_memory import InMemoryDataStore
        return InMemoryDataStore()

    @pytest.mark.asyncio
    async def test_set_and_get(self, store):
        await store.set("user.name", "Ana")
        assert await store.get("user.name") == "Ana"

    @pytest.mark.asyncio
    async def test_get_default(self, store):
        assert await store.get("user.name") is None
        assert await store.get("user.name", "Guest") == "Guest"

    @pytest.mark.asyncio
    async def test_delete_and_has(self, store):
        await store.set("task.streak", 3)
        assert await store.has("task.streak")
        await store.delete("task.streak")
        assert not await store.has("task.streak")
        await store.delete("task.streak")

    @pytest.mark.asyncio
    async def test_snapshot_is_a_copy(self, store):
        await store.set("task.activeDays", [1, 2])
        snap = await store.snapshot()
        snap["task.activeDays"].append(3)
        snap["other"] = True
        assert await store.get("task.activeDays") == [1, 2]
        assert not await store.has("other")

    @pytest.mark.asyncio
    async def test_stored_lists_are_isolated(self, store):
        days = [1, 2]
        await store.set("task.activeDays", days)
        days.append(3)
        fetched = await store.get("task.activeDays")
        fetched.append(4)
        assert await store.get("task.activeDays") == [1, 2]

    @pytest.mark.asyncio
    async def test_set_many_and_clear(self, store):
        await store.set_many({"a": 1, "b": 2})
        assert await store.snapshot() == {"a": 1, "b": 2}
        await store.clear()
        assert await store.snapshot() == {}

    @pytest.mark.asyncio
    async def test_initial_values(self):
        from database.store_memory import InMemoryDataStore
        store = InMemoryDataStore({"user.name": "Bo"})
        assert await store.get("user.name") == "Bo"


# ──────────────────────────────────────────────────────────────
#  FileDataStore
# ──────────────────────────────────────────────────────────────

class TestFileDataStore:
    @pytest.fixture
    def path(self, tmp_path):
        return tmp_path / "nested" / "store.json"

    @pytest.fixture
    def store(self, path):
        from database.store_file import FileDataStore
        return FileDataStore(file_path=str(path))

    @pytest.mark.asyncio
    async def test_write_persists_to_disk(self, store, path):
        await store.set("user.name", "Ana")
        assert json.loads(path.read_text()) == {"user.name": "Ana"}

    @pytest.mark.asyncio
    async def test_reload_after_restart(self, store, path):
        from database.store_file import FileDataStore
        await store.set("task.streak", 4)
        await store.set("task.activeDays", [1, 3])
        reopened = FileDataStore(file_path=str(path))
        assert await reopened.get("task.streak") == 4
        assert await reopened.get("task.activeDays") == [1, 3]

    @pytest.mark.asyncio
    async def test_delete_and_clear_persist(self, store, path):
        await store.set_many({"a": 1, "b": 2})
        await store.delete("a")
        assert json.loads(path.read_text()) == {"b": 2}
        await store.clear()
        assert json.loads(path.read_text()) == {}

    @pytest.mark.asyncio
    async def test_corrupt_file_starts_empty(self, path):
        from database.store_file import FileDataStore
        path.parent.mkdir(parents=True)
        path.write_text("{not json")
        store = FileDataStore(file_path=str(path))
        assert await store.snapshot() == {}

    @pytest.mark.asyncio
    async def test_non_object_file_ignored(self, path):
        from database.store_file import FileDataStore
        path.parent.mkdir(parents=True)
        path.write_text("[1, 2, 3]")
        store = FileDataStore(file_path=str(path))
        assert await store.snapshot() == {}

    def test_no_tmp_file_left_behind(self, store, path):
        store.flush()
        assert path.exists()
        assert not path.with_suffix(".tmp").exists()


# ──────────────────────────────────────────────────────────────
#  Store Factory
# ──────────────────────────────────────────────────────────────

class TestStoreFactory:
    @pytest.fixture(autouse=True)
    def reset(self):
        from database.store_factory import reset_store
        reset_store()
        yield
        reset_store()

    def test_memory_backend(self):
        from database.store_factory import create_store
        from database.store_memory import InMemoryDataStore
        store = create_store(StoreConfig(backend="memory"))
        assert type(store) is InMemoryDataStore

    def test_file_backend(self, tmp_path):
        from database.store_factory import create_store
        from database.store_file import FileDataStore
        store = create_store(StoreConfig(backend="file", file_path=str(tmp_path / "s.json")))
        assert isinstance(store, FileDataStore)
        assert store.path == tmp_path / "s.json"

    def test_unknown_backend_falls_back_to_memory(self):
        from database.store_factory import create_store
        from database.store_memory import InMemoryDataStore
        assert type(create_store(StoreConfig(backend="redis"))) is InMemoryDataStore

    def test_default_config(self):
        from database.store_factory import create_store
        from database.store_memory import InMemoryDataStore
        assert type(create_store()) is InMemoryDataStore

    def test_singleton(self):
        from database.store_factory import get_store, reset_store
        first = get_store()
        assert get_store() is first
        reset_store()
        assert get_store() is not first

    @pytest.mark.asyncio
    async def test_namespaced_file_stores_keep_their_own_keys(self, tmp_path):
        from database.store_factory import create_store
        from database.store_file import FileDataStore
        config = StoreConfig(backend="file", file_path=str(tmp_path / "store.json"))
        first = create_store(config, namespace="a1")
        second = create_store(config, namespace="b2")
        await first.set("user.name", "Ana")
        await second.set("session.visitCount", 1)

        assert first.path == tmp_path / "store.a1.json"
        assert second.path == tmp_path / "store.b2.json"
        assert await FileDataStore(str(first.path)).snapshot() == {"user.name": "Ana"}
        assert await FileDataStore(str(second.path)).snapshot() == {"session.visitCount": 1}

    def test_namespace_ignored_for_memory(self):
        from database.store_factory import create_store
        from database.store_memory import InMemoryDataStore
        assert type(create_store(StoreConfig(backend="memory"), namespace="a1")) is InMemoryDataStore

    @pytest.mark.parametrize("path,namespace,expected", [
        ("data/store.json", "abc", "data/store.abc.json"),
        ("data/store.json", None, "data/store.json"),
        ("data/store", "abc", "data/store.abc"),
    ])
    def test_namespaced_path(self, path, namespace, expected):
        from pathlib import Path
        from database.store_factory import namespaced_path
        assert Path(namespaced_path(path, namespace)) == Path(expected)
