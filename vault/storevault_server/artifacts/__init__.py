"""
Snapshot artifact storage for StoreVault.

This module provides a pluggable artifact store supporting:
- Local filesystem directory (default)
- S3 / MinIO object storage

Invariants:
    - Artifacts are immutable once written
    - Names follow backup-<timestamp>.json and are never reused
    - Unknown names raise ArtifactNotFoundError

How to change safely:
    - New backends must implement the ArtifactStore protocol
    - Exporter and restore paths must not depend on a specific backend
"""

from .base import (
    ARTIFACT_EXTENSION,
    ARTIFACT_PREFIX,
    ArtifactInfo,
    ArtifactStore,
    artifact_name,
    create_artifact_store,
    format_timestamp,
    is_artifact_name,
)
from .filesystem import FilesystemArtifactStore
from .s3 import S3ArtifactStore

__all__ = [
    # Protocol and types
    "ArtifactStore",
    "ArtifactInfo",
    "ARTIFACT_PREFIX",
    "ARTIFACT_EXTENSION",
    "artifact_name",
    "format_timestamp",
    "is_artifact_name",
    # Factory
    "create_artifact_store",
    # Implementations
    "FilesystemArtifactStore",
    "S3ArtifactStore",
]
