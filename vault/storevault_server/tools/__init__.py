"""
CLI tools for StoreVault administration.

This module provides command-line tools for:
- export: Write a new backup of every collection
- restore: Replace collections from a backup
- purge: Delete all documents
- list / schedule: Inspect backups and the backup schedule

Invariants:
    - Tools work offline (no running server required)
    - Destructive commands require explicit confirmation flags
"""

from .backup_cli import BackupCLI

__all__ = ["BackupCLI"]
