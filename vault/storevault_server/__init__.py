"""
StoreVault Server - snapshot, restore, purge and scheduled backups for a document store.

This package protects the application's persistent data by:
- Exporting every collection into one timestamp-named JSON artifact
- Restoring collections from a previously produced (or uploaded) artifact
- Purging all documents while keeping collection definitions
- Repeating exports on an operator-configured cron schedule

Architecture:
    ┌─────────────┐     ┌─────────────┐     ┌─────────────────┐
    │ Admin UI /  │────▶│  HTTP API   │────▶│  BackupEngine   │
    │    CLI      │     │  (aiohttp)  │     │                 │
    └─────────────┘     └─────────────┘     └────────┬────────┘
                                                     │
                        ┌────────────────────┬───────┴────────────┐
                        │                    │                    │
                        ▼                    ▼                    ▼
                   ┌─────────┐         ┌─────────┐         ┌───────────┐
                   │Exporter │         │ Restore │         │ Scheduler │
                   │         │         │ / Purge │         │  (cron)   │
                   └────┬────┘         └────┬────┘         └─────┬─────┘
                        │                   │                    │
                        ▼                   ▼                    ▼
                   ┌──────────┐       ┌──────────┐          ┌─────────┐
                   │Artifacts │       │ Document │          │Exporter │
                   │ (FS/S3)  │       │  Store   │          └─────────┘
                   └──────────┘       └──────────┘

Invariants:
    - Every artifact holds one entry per collection present at export time
    - Documents are opaque; they are never interpreted or rewritten
    - Artifact names are timestamp-derived and never reused
    - At most one scheduler job is active per process

How to change safely:
    - Keep the artifact format readable by older restore paths
    - Restore and purge are not atomic across collections; do not rely on it
    - New store or artifact backends must implement the protocols in
      store/base.py and artifacts/base.py

Version: see _version.py.
"""

from ._version import __version__

__all__ = ["__version__"]
