"""
HTTP control surface for StoreVault.

This module exposes the backup engine over a small REST API used by the
admin portals (pharmacy, lab, hospital, finance):

    POST /backup/manual                 -> {"fileName"}
    GET  /backup/download/{fileName}    -> artifact bytes
    GET  /backup/list                   -> [{"fileName", "date", "size"}]
    POST /backup/purge                  -> {"message"}
    POST /backup/restore                -> {"message", ...}   (body = payload)
    POST /backup/restore/{fileName}     -> {"message", ...}
    GET  /backup/settings               -> settings
    PUT  /backup/settings               -> saved settings (reschedules)
    GET  /backup/health                 -> engine stats

Invariants:
    - Restore bodies are validated before any mutation (400 on failure)
    - Unknown artifact names return 404
    - Any other failure is logged server-side and answered with a generic 500
    - Purge has no confirmation step here; the UI asks the operator

How to change safely:
    - Keep response shapes stable; the portals parse them
    - Authentication is handled in front of this app, not in it
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable

from aiohttp import web

from ..config import HttpConfig
from ..engine import BackupEngine
from ..errors import ArtifactNotFoundError, ValidationError
from ..schedule.settings import BackupSettings

logger = logging.getLogger(__name__)

ENGINE_KEY = web.AppKey("engine", BackupEngine)


def create_http_app(
    engine: BackupEngine,
    config: HttpConfig | None = None,
) -> web.Application:
    """Create the HTTP application.

    Args:
        engine: Backup engine instance
        config: HTTP server configuration

    Returns:
        aiohttp Application instance
    """
    config = config or HttpConfig()
    app = web.Application(client_max_size=config.max_body_bytes)
    app[ENGINE_KEY] = engine

    app.router.add_post("/backup/manual", handle_manual_backup)
    app.router.add_get("/backup/download/{file_name}", handle_download)
    app.router.add_get("/backup/list", handle_list)
    app.router.add_post("/backup/purge", handle_purge)
    app.router.add_post("/backup/restore", handle_restore)
    app.router.add_post("/backup/restore/{file_name}", handle_restore_artifact)
    app.router.add_get("/backup/settings", handle_get_settings)
    app.router.add_put("/backup/settings", handle_save_settings)
    app.router.add_get("/backup/health", handle_health)

    # Add CORS middleware
    @web.middleware
    async def cors_middleware(request: web.Request, handler: Callable) -> web.StreamResponse:
        if request.method == "OPTIONS":
            response = web.Response()
        else:
            try:
                response = await handler(request)
            except web.HTTPException as e:
                response = e

        origin = request.headers.get("Origin", "*")
        if "*" in config.cors_origins or origin in config.cors_origins:
            response.headers["Access-Control-Allow-Origin"] = origin
        response.headers["Access-Control-Allow-Methods"] = "GET, POST, PUT, OPTIONS"
        response.headers["Access-Control-Allow-Headers"] = "Content-Type, Authorization"

        return response

    app.middlewares.append(cors_middleware)

    # Add error handler
    @web.middleware
    async def error_middleware(request: web.Request, handler: Callable) -> web.StreamResponse:
        try:
            return await handler(request)
        except web.HTTPException:
            raise
        except ValidationError as e:
            return web.json_response({"message": e.message}, status=400)
        except ArtifactNotFoundError:
            return web.json_response({"message": "Backup not found"}, status=404)
        except Exception as e:
            label = request.match_info.route.name or request.path
            logger.error(f"HTTP handler error on {label}: {e}", exc_info=True)
            return web.json_response(
                {"message": _failure_message(request)},
                status=500,
            )

    app.middlewares.insert(0, error_middleware)

    return app


def _failure_message(request: web.Request) -> str:
    path = request.path
    if path.startswith("/backup/manual"):
        return "Manual backup failed"
    if path.startswith("/backup/restore"):
        return "Restore failed"
    if path.startswith("/backup/purge"):
        return "Purge failed"
    if path.startswith("/backup/settings"):
        return "Failed to save settings" if request.method == "PUT" else "Failed to load settings"
    if path.startswith("/backup/list"):
        return "Failed to list backups"
    return "Backup operation failed"


async def _read_json(request: web.Request) -> object:
    try:
        return await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise ValidationError("Invalid backup data")


async def handle_manual_backup(request: web.Request) -> web.Response:
    """Handle POST /backup/manual - Export now."""
    info = await request.app[ENGINE_KEY].export_snapshot()
    return web.json_response({"fileName": info.file_name})


async def handle_download(request: web.Request) -> web.Response:
    """Handle GET /backup/download/{file_name} - Download an artifact."""
    file_name = request.match_info["file_name"]
    body = await request.app[ENGINE_KEY].read_artifact(file_name)
    return web.Response(
        body=body,
        content_type="application/json",
        headers={"Content-Disposition": f'attachment; filename="{file_name}"'},
    )


async def handle_list(request: web.Request) -> web.Response:
    """Handle GET /backup/list - List artifacts, newest first."""
    artifacts = await request.app[ENGINE_KEY].list_artifacts()
    return web.json_response([a.to_dict() for a in artifacts])


async def handle_purge(request: web.Request) -> web.Response:
    """Handle POST /backup/purge - Delete all data."""
    result = await request.app[ENGINE_KEY].purge_all()
    return web.json_response(
        {
            "message": "All data deleted",
            "collections": result.collections_purged,
            "documentsDeleted": result.documents_deleted,
        }
    )


async def handle_restore(request: web.Request) -> web.Response:
    """Handle POST /backup/restore - Restore from the request body."""
    payload = await _read_json(request)
    if not isinstance(payload, dict):
        raise ValidationError("Invalid backup data")

    result = await request.app[ENGINE_KEY].restore_snapshot(payload)
    return web.json_response({"message": "Data restored", **result.to_dict()})


async def handle_restore_artifact(request: web.Request) -> web.Response:
    """Handle POST /backup/restore/{file_name} - Restore a stored artifact."""
    file_name = request.match_info["file_name"]
    result = await request.app[ENGINE_KEY].restore_artifact(file_name)
    return web.json_response({"message": "Data restored", "fileName": file_name, **result.to_dict()})


async def handle_get_settings(request: web.Request) -> web.Response:
    """Handle GET /backup/settings - Current backup settings."""
    settings = await request.app[ENGINE_KEY].settings.load()
    return web.json_response(settings.to_dict())


async def handle_save_settings(request: web.Request) -> web.Response:
    """Handle PUT /backup/settings - Save settings and reschedule."""
    engine = request.app[ENGINE_KEY]
    body = await _read_json(request)
    settings = BackupSettings.from_request(body, engine.settings.default_expression)
    saved = await engine.save_settings(settings)
    return web.json_response(saved.to_dict())


async def handle_health(request: web.Request) -> web.Response:
    """Handle GET /backup/health - Engine status."""
    engine = request.app[ENGINE_KEY]
    status = 200 if engine.store.is_connected else 503
    return web.json_response(engine.stats, status=status)
