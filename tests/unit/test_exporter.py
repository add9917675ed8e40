"""
Unit tests for the snapshot exporter.

Tests cover:
- Artifact shape and naming
- Connection precondition
- Unique names for exports in the same millisecond
- Failure paths (serialization, storage)
"""

import json
from datetime import datetime, timezone
from decimal import Decimal

import pytest

from vault.storevault_server.artifacts import FilesystemArtifactStore
from vault.storevault_server.errors import (
    ArtifactExistsError,
    ArtifactIOError,
    BackupError,
    StoreConnectionError,
)
from vault.storevault_server.snapshot import SnapshotExporter, serialize_payload
from vault.storevault_server.store import InMemoryDocumentStore, StoreError

EXPORT_INSTANT = datetime(2024, 5, 1, 2, 0, 0, 123000, tzinfo=timezone.utc)


class RecordingArtifactStore:
    """Artifact store that records calls instead of writing files."""

    def __init__(self, fail_write: bool = False) -> None:
        self.written: dict[str, bytes] = {}
        self.ready_calls = 0
        self.fail_write = fail_write

    async def ensure_ready(self) -> None:
        self.ready_calls += 1

    async def write(self, name: str, data: bytes) -> str:
        if self.fail_write:
            raise ArtifactIOError(f"Failed to write backup {name}: disk full", name=name)
        if name in self.written:
            raise ArtifactExistsError(name)
        self.written[name] = data
        return f"/backups/{name}"

    async def read(self, name: str) -> bytes:
        return self.written[name]

    async def list(self):
        return []

    async def resolve(self, name: str) -> str:
        return f"/backups/{name}"


class TestSnapshotExporter:
    """Tests for SnapshotExporter."""

    @pytest.fixture
    def store(self):
        return InMemoryDocumentStore()

    @pytest.fixture
    def artifacts(self):
        return RecordingArtifactStore()

    @pytest.fixture
    def exporter(self, store, artifacts):
        return SnapshotExporter(store, artifacts, clock=lambda: EXPORT_INSTANT)

    @pytest.mark.asyncio
    async def test_export_writes_every_collection(self, store, artifacts, exporter):
        await store.connect()
        await store.insert_many("users", [{"_id": "u1", "name": "A"}, {"_id": "u2", "name": "B"}])
        await store.insert_many("orders", [{"_id": "o1"}])

        path = await exporter.export_snapshot()

        assert path == "/backups/backup-2024-05-01T02-00-00-123Z.json"
        body = artifacts.written["backup-2024-05-01T02-00-00-123Z.json"]
        assert json.loads(body) == {
            "users": [{"_id": "u1", "name": "A"}, {"_id": "u2", "name": "B"}],
            "orders": [{"_id": "o1"}],
        }

    @pytest.mark.asyncio
    async def test_export_keeps_collection_order_and_empty_collections(self, store, artifacts, exporter):
        await store.connect()
        await store.create_collection("zeta")
        await store.insert_many("alpha", [{"_id": 1}])
        await store.create_collection("settings")

        await exporter.export_snapshot()

        (body,) = artifacts.written.values()
        assert list(json.loads(body)) == ["zeta", "alpha", "settings"]
        assert json.loads(body)["zeta"] == []

    @pytest.mark.asyncio
    async def test_export_empty_store(self, store, artifacts, exporter):
        await store.connect()

        info = await exporter.create_snapshot()

        assert json.loads(artifacts.written[info.file_name]) == {}
        assert info.collection_count == 0
        assert info.document_count == 0

    @pytest.mark.asyncio
    async def test_body_is_indented_utf8(self, store, artifacts, exporter):
        await store.connect()
        await store.insert_many("medicines", [{"_id": "m1", "name": "Paracétamol"}])

        info = await exporter.create_snapshot()

        body = artifacts.written[info.file_name]
        assert body.decode("utf-8") == json.dumps(
            {"medicines": [{"_id": "m1", "name": "Paracétamol"}]}, indent=2, ensure_ascii=False
        )

    @pytest.mark.asyncio
    async def test_snapshot_info(self, store, exporter):
        await store.connect()
        await store.insert_many("a", [{"_id": 1}, {"_id": 2}])
        await store.insert_many("b", [{"_id": 3}])

        info = await exporter.create_snapshot()

        assert info.file_name == "backup-2024-05-01T02-00-00-123Z.json"
        assert info.created_at == EXPORT_INSTANT
        assert info.collection_count == 2
        assert info.document_count == 3
        assert info.size_bytes > 0
        assert exporter.stats == {"export_count": 1, "last_snapshot": info.file_name}

    @pytest.mark.asyncio
    async def test_same_instant_exports_get_distinct_names(self, store, artifacts, exporter):
        await store.connect()
        await store.insert_many("users", [{"_id": "u1"}])

        first = await exporter.create_snapshot()
        second = await exporter.create_snapshot()

        assert first.file_name == "backup-2024-05-01T02-00-00-123Z.json"
        assert second.file_name == "backup-2024-05-01T02-00-00-124Z.json"
        assert second.created_at > first.created_at
        assert len(artifacts.written) == 2
        assert exporter.stats["export_count"] == 2

    @pytest.mark.asyncio
    async def test_taken_name_moves_to_next_millisecond(self, store, artifacts):
        await store.connect()
        artifacts.written["backup-2024-05-01T02-00-00-123Z.json"] = b"{}"
        artifacts.written["backup-2024-05-01T02-00-00-124Z.json"] = b"{}"
        exporter = SnapshotExporter(store, artifacts, clock=lambda: EXPORT_INSTANT)

        info = await exporter.create_snapshot()

        assert info.file_name == "backup-2024-05-01T02-00-00-125Z.json"
        assert artifacts.written["backup-2024-05-01T02-00-00-123Z.json"] == b"{}"

    @pytest.mark.asyncio
    async def test_back_to_back_exports_to_directory(self, store, tmp_path):
        await store.connect()
        exporter = SnapshotExporter(store, FilesystemArtifactStore(tmp_path / "backups"))

        names = [(await exporter.create_snapshot()).file_name for _ in range(50)]

        assert len(set(names)) == 50
        assert names == sorted(names)

    @pytest.mark.asyncio
    async def test_disconnected_store_writes_nothing(self, store, artifacts, exporter):
        with pytest.raises(StoreConnectionError):
            await exporter.export_snapshot()

        assert artifacts.written == {}
        assert artifacts.ready_calls == 0

    @pytest.mark.asyncio
    async def test_read_failure_writes_nothing(self, store, artifacts, exporter):
        await store.connect()
        await store.insert_many("users", [{"_id": "u1"}])
        store.fail_next("find_all", "users")

        with pytest.raises(StoreError):
            await exporter.export_snapshot()

        assert artifacts.written == {}

    @pytest.mark.asyncio
    async def test_write_failure_propagates(self, store):
        await store.connect()
        exporter = SnapshotExporter(store, RecordingArtifactStore(fail_write=True))

        with pytest.raises(ArtifactIOError):
            await exporter.export_snapshot()
        assert exporter.stats["export_count"] == 0

    @pytest.mark.asyncio
    async def test_unserializable_document_writes_nothing(self, store, artifacts, exporter):
        await store.connect()
        await store.insert_many("weird", [{"_id": "w1", "value": object()}])

        with pytest.raises(BackupError) as exc_info:
            await exporter.export_snapshot()

        assert exc_info.value.code == "SERIALIZATION_ERROR"
        assert artifacts.written == {}

    @pytest.mark.asyncio
    async def test_real_directory(self, store, tmp_path):
        await store.connect()
        await store.insert_many("users", [{"_id": "u1"}])
        artifacts = FilesystemArtifactStore(tmp_path / "backups")
        exporter = SnapshotExporter(store, artifacts, clock=lambda: EXPORT_INSTANT)

        path = await exporter.export_snapshot()

        assert path == str((tmp_path / "backups" / "backup-2024-05-01T02-00-00-123Z.json").absolute())
        assert json.loads((tmp_path / "backups").joinpath(
            "backup-2024-05-01T02-00-00-123Z.json"
        ).read_text()) == {"users": [{"_id": "u1"}]}


class TestSerializePayload:
    """Tests for serialize_payload."""

    def test_renders_non_json_values(self):
        payload = {
            "events": [
                {
                    "_id": "e1",
                    "at": datetime(2024, 5, 1, 2, 0, tzinfo=timezone.utc),
                    "amount": Decimal("12.50"),
                    "blob": b"\x00\x01",
                }
            ]
        }

        assert json.loads(serialize_payload(payload)) == {
            "events": [
                {
                    "_id": "e1",
                    "at": "2024-05-01T02:00:00+00:00",
                    "amount": "12.50",
                    "blob": "AAE=",
                }
            ]
        }
