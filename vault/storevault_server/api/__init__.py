"""
API module for StoreVault.

This module provides the HTTP control surface used by the admin portals
to trigger backups, download and list artifacts, restore, purge and edit
the backup schedule.

Invariants:
    - Handlers only translate HTTP to BackupEngine calls
    - Error mapping: validation -> 400, unknown artifact -> 404, other -> 500
"""

from .http_server import ENGINE_KEY, create_http_app

__all__ = ["create_http_app", "ENGINE_KEY"]
