"""
Unit tests for the SQLite document store.

Tests cover:
- Schema creation and persistence across instances
- Collection registry (order, empty collections)
- Transactional writes
"""

import tempfile
from datetime import datetime, timezone
from pathlib import Path

import pytest

from vault.storevault_server.errors import StoreConnectionError
from vault.storevault_server.store import DuplicateKeyError, SqliteDocumentStore


class TestSqliteDocumentStore:
    """Tests for SqliteDocumentStore."""

    @pytest.fixture
    def data_dir(self):
        """Create temporary data directory."""
        with tempfile.TemporaryDirectory() as tmpdir:
            yield tmpdir

    @pytest.fixture
    def store(self, data_dir):
        return SqliteDocumentStore(data_dir)

    @pytest.mark.asyncio
    async def test_connect_creates_database(self, store, data_dir):
        await store.connect()

        assert store.is_connected
        assert (Path(data_dir) / "store.db").exists()

    @pytest.mark.asyncio
    async def test_connect_failure(self, data_dir):
        blocker = Path(data_dir) / "not-a-dir"
        blocker.write_text("x")
        store = SqliteDocumentStore(str(blocker / "nested"))

        with pytest.raises(StoreConnectionError):
            await store.connect()
        assert not store.is_connected

    @pytest.mark.asyncio
    async def test_requires_connection(self, store):
        with pytest.raises(StoreConnectionError):
            await store.find_all("users")

    @pytest.mark.asyncio
    async def test_round_trip_documents(self, store):
        await store.connect()
        docs = [
            {"_id": "m1", "name": "Panadol", "stock": 12, "tags": ["otc"]},
            {"_id": "m2", "name": "Brufen", "price": 3.5, "meta": {"a": None}},
        ]
        assert await store.insert_many("medicines", docs) == 2

        assert await store.find_all("medicines") == docs

    @pytest.mark.asyncio
    async def test_data_persists_across_instances(self, data_dir):
        first = SqliteDocumentStore(data_dir)
        await first.connect()
        await first.insert_many("users", [{"_id": "u1"}])
        await first.create_collection("empty")
        await first.close()

        second = SqliteDocumentStore(data_dir)
        await second.connect()
        assert await second.list_collections() == ["users", "empty"]
        assert await second.find_all("users") == [{"_id": "u1"}]

    @pytest.mark.asyncio
    async def test_collection_order(self, store):
        await store.connect()
        await store.insert_many("b", [{"_id": 1}])
        await store.insert_many("a", [{"_id": 1}])
        await store.create_collection("c")
        await store.insert_many("b", [{"_id": 2}])

        assert await store.list_collections() == ["b", "a", "c"]

    @pytest.mark.asyncio
    async def test_non_json_values_are_rendered(self, store):
        await store.connect()
        when = datetime(2024, 5, 1, 2, 0, tzinfo=timezone.utc)
        await store.insert_many("events", [{"_id": "e1", "at": when}])

        assert await store.find_all("events") == [{"_id": "e1", "at": when.isoformat()}]

    @pytest.mark.asyncio
    async def test_insert_duplicate_rolls_back(self, store):
        await store.connect()
        await store.insert_many("users", [{"_id": "u1"}])

        with pytest.raises(DuplicateKeyError):
            await store.insert_many("users", [{"_id": "u2"}, {"_id": "u1"}])

        assert await store.find_all("users") == [{"_id": "u1"}]
        assert await store.count("users") == 1

    @pytest.mark.asyncio
    async def test_numeric_and_string_ids_are_distinct(self, store):
        await store.connect()
        await store.insert_many("items", [{"_id": 1}, {"_id": "1"}])

        assert await store.find_one("items", 1) == {"_id": 1}
        assert await store.find_one("items", "1") == {"_id": "1"}

    @pytest.mark.asyncio
    async def test_replace_all(self, store):
        await store.connect()
        await store.insert_many("users", [{"_id": "u1"}, {"_id": "u2"}])

        assert await store.replace_all("users", [{"_id": "u2", "v": 2}]) == 1
        assert await store.find_all("users") == [{"_id": "u2", "v": 2}]

    @pytest.mark.asyncio
    async def test_replace_all_failure_leaves_collection_unchanged(self, store):
        await store.connect()
        await store.insert_many("users", [{"_id": "u1"}])

        with pytest.raises(DuplicateKeyError):
            await store.replace_all("users", [{"_id": "x"}, {"_id": "x"}])

        assert await store.find_all("users") == [{"_id": "u1"}]

    @pytest.mark.asyncio
    async def test_replace_all_empty_registers_collection(self, store):
        await store.connect()

        assert await store.replace_all("fresh", []) == 0
        assert await store.list_collections() == ["fresh"]

    @pytest.mark.asyncio
    async def test_delete_all(self, store):
        await store.connect()
        await store.insert_many("users", [{"_id": "u1"}, {"_id": "u2"}])

        assert await store.delete_all("users") == 2
        assert await store.delete_all("users") == 0
        assert await store.list_collections() == ["users"]

    @pytest.mark.asyncio
    async def test_upsert_and_find_one(self, store):
        await store.connect()
        await store.upsert("settings", {"_id": "backup_settings", "backup": {"enabled": False}})
        await store.upsert("settings", {"_id": "backup_settings", "backup": {"enabled": True}})

        doc = await store.find_one("settings", "backup_settings")
        assert doc == {"_id": "backup_settings", "backup": {"enabled": True}}
        assert await store.count("settings") == 1
        assert await store.find_one("settings", "other") is None
