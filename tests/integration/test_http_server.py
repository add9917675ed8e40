"""
Integration tests for the HTTP control surface.

Runs the aiohttp application against an in-memory store and a temporary
backup directory.
"""

import json

import pytest
from aiohttp.test_utils import TestClient, TestServer

from vault.storevault_server.api import create_http_app
from vault.storevault_server.artifacts import FilesystemArtifactStore
from vault.storevault_server.config import HttpConfig
from vault.storevault_server.engine import BackupEngine
from vault.storevault_server.store import InMemoryDocumentStore


class TestHttpServer:
    """Tests for the /backup routes."""

    @pytest.fixture
    def backup_dir(self, tmp_path):
        return tmp_path / "backups"

    @pytest.fixture
    def engine(self, backup_dir):
        return BackupEngine(InMemoryDocumentStore(), FilesystemArtifactStore(backup_dir))

    @pytest.fixture
    def app(self, engine):
        return create_http_app(engine, HttpConfig(cors_origins=("http://admin.example",)))

    @pytest.mark.asyncio
    async def test_manual_backup_list_and_download(self, app, engine, backup_dir):
        await engine.store.connect()
        await engine.store.insert_many("users", [{"_id": "u1", "name": "A"}])

        async with TestClient(TestServer(app)) as client:
            resp = await client.post("/backup/manual")
            assert resp.status == 200
            file_name = (await resp.json())["fileName"]
            assert file_name.startswith("backup-") and file_name.endswith(".json")
            assert (backup_dir / file_name).exists()

            resp = await client.get("/backup/list")
            assert resp.status == 200
            listed = await resp.json()
            assert [item["fileName"] for item in listed] == [file_name]
            assert set(listed[0]) == {"fileName", "date", "size"}

            resp = await client.get(f"/backup/download/{file_name}")
            assert resp.status == 200
            assert file_name in resp.headers["Content-Disposition"]
            assert json.loads(await resp.read()) == {"users": [{"_id": "u1", "name": "A"}]}

    @pytest.mark.asyncio
    async def test_download_unknown_is_404(self, app, engine, backup_dir):
        await engine.store.connect()
        backup_dir.mkdir(parents=True)

        async with TestClient(TestServer(app)) as client:
            resp = await client.get("/backup/download/backup-missing.json")
            assert resp.status == 404
            assert await resp.json() == {"message": "Backup not found"}

            resp = await client.get("/backup/download/..%2Fsecret.json")
            assert resp.status == 404

    @pytest.mark.asyncio
    async def test_restore_from_body(self, app, engine):
        await engine.store.connect()
        await engine.store.insert_many("users", [{"_id": "old"}])
        await engine.store.insert_many("orders", [{"_id": "o1"}])

        async with TestClient(TestServer(app)) as client:
            resp = await client.post("/backup/restore", json={"users": [{"_id": "u1", "name": "A"}]})
            assert resp.status == 200
            body = await resp.json()
            assert body["message"] == "Data restored"
            assert body["collections"] == ["users"]

        assert engine.store.snapshot() == {
            "users": [{"_id": "u1", "name": "A"}],
            "orders": [{"_id": "o1"}],
        }

    @pytest.mark.asyncio
    @pytest.mark.parametrize("data", ["{not json", "[1, 2]", '{"users": "x"}'])
    async def test_restore_invalid_body_is_400(self, app, engine, data):
        await engine.store.connect()
        await engine.store.insert_many("users", [{"_id": "u1"}])

        async with TestClient(TestServer(app)) as client:
            resp = await client.post(
                "/backup/restore", data=data, headers={"Content-Type": "application/json"}
            )
            assert resp.status == 400
            assert "message" in await resp.json()

        assert engine.store.snapshot() == {"users": [{"_id": "u1"}]}

    @pytest.mark.asyncio
    async def test_restore_stored_artifact(self, app, engine):
        await engine.store.connect()
        await engine.store.insert_many("users", [{"_id": "u1"}])
        info = await engine.export_snapshot()
        await engine.store.insert_many("users", [{"_id": "u2"}])

        async with TestClient(TestServer(app)) as client:
            resp = await client.post(f"/backup/restore/{info.file_name}")
            assert resp.status == 200
            assert (await resp.json())["fileName"] == info.file_name

        assert engine.store.snapshot()["users"] == [{"_id": "u1"}]

    @pytest.mark.asyncio
    async def test_purge(self, app, engine):
        await engine.store.connect()
        await engine.store.insert_many("users", [{"_id": "u1"}, {"_id": "u2"}])

        async with TestClient(TestServer(app)) as client:
            resp = await client.post("/backup/purge")
            assert resp.status == 200
            body = await resp.json()
            assert body["message"] == "All data deleted"
            assert body["documentsDeleted"] == 2

        assert engine.store.snapshot() == {"users": []}

    @pytest.mark.asyncio
    async def test_disconnected_store_is_500(self, app, engine):
        async with TestClient(TestServer(app)) as client:
            resp = await client.post("/backup/manual")
            assert resp.status == 500
            assert await resp.json() == {"message": "Manual backup failed"}

            resp = await client.post("/backup/purge")
            assert resp.status == 500
            assert await resp.json() == {"message": "Purge failed"}

            resp = await client.get("/backup/health")
            assert resp.status == 503

    @pytest.mark.asyncio
    async def test_settings_round_trip(self, app, engine):
        await engine.store.connect()

        async with TestClient(TestServer(app)) as client:
            resp = await client.get("/backup/settings")
            assert await resp.json() == {
                "enabled": False,
                "scheduleExpression": "0 2 * * *",
                "lastRunAt": None,
            }

            resp = await client.put(
                "/backup/settings", json={"enabled": True, "scheduleExpression": "30 3 * * *"}
            )
            assert resp.status == 200
            assert (await resp.json())["scheduleExpression"] == "30 3 * * *"
            assert engine.scheduler.is_active
            assert engine.scheduler.expression == "30 3 * * *"

            resp = await client.get("/backup/health")
            assert resp.status == 200
            assert (await resp.json())["scheduler"]["expression"] == "30 3 * * *"

            resp = await client.put("/backup/settings", json={"enabled": True, "scheduleExpression": "soon"})
            assert resp.status == 400
            # The previous valid settings stay persisted
            assert (await engine.settings.load()).schedule_expression == "30 3 * * *"

            resp = await client.put("/backup/settings", json={"enabled": False})
            assert resp.status == 200
            assert not engine.scheduler.is_active

        await engine.shutdown()

    @pytest.mark.asyncio
    async def test_cors_headers(self, app, engine):
        await engine.store.connect()

        async with TestClient(TestServer(app)) as client:
            resp = await client.options("/backup/list", headers={"Origin": "http://admin.example"})
            assert resp.status == 200
            assert resp.headers["Access-Control-Allow-Origin"] == "http://admin.example"

            resp = await client.get("/backup/list", headers={"Origin": "http://evil.example"})
            assert "Access-Control-Allow-Origin" not in resp.headers

    @pytest.mark.asyncio
    async def test_list_without_backups(self, app, engine):
        await engine.store.connect()

        async with TestClient(TestServer(app)) as client:
            resp = await client.get("/backup/list")
            assert resp.status == 200
            assert await resp.json() == []


    @pytest.mark.asyncio
    async def test_settings_reject_string_enabled(self, app, engine):
        await engine.store.connect()

        async with TestClient(TestServer(app)) as client:
            resp = await client.put(
                "/backup/settings", json={"enabled": "false", "scheduleExpression": "0 1 * * *"}
            )
            assert resp.status == 400
            assert "enabled" in (await resp.json())["message"]

        assert not engine.scheduler.is_active
        assert await engine.store.list_collections() == []

    @pytest.mark.asyncio
    async def test_settings_after_restoring_malformed_document(self, app, engine):
        await engine.store.connect()

        async with TestClient(TestServer(app)) as client:
            resp = await client.post(
                "/backup/restore", json={"settings": [{"_id": "backup_settings", "backup": "on"}]}
            )
            assert resp.status == 200

            resp = await client.get("/backup/settings")
            assert resp.status == 200
            assert (await resp.json())["enabled"] is False
