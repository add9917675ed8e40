"""
Snapshot module for StoreVault.

This module handles the whole-store operations:
- Export every collection into a timestamped artifact
- Restore collections from an artifact payload
- Purge all documents

Invariants:
    - Every operation checks the store connection before touching anything
    - Documents pass through untouched
    - Restore and purge are not atomic across collections
"""

from .exporter import SnapshotExporter, SnapshotInfo, serialize_payload
from .importer import RestoreImporter, RestoreResult, parse_payload, validate_payload
from .purge import PurgeOperator, PurgeResult

__all__ = [
    "SnapshotExporter",
    "SnapshotInfo",
    "serialize_payload",
    "RestoreImporter",
    "RestoreResult",
    "parse_payload",
    "validate_payload",
    "PurgeOperator",
    "PurgeResult",
]
