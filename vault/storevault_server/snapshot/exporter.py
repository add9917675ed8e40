"""
Full-store snapshot exporter for StoreVault.

The exporter reads every collection of the document store and writes
them into one JSON artifact:

    {
      "<collection>": [<document>, ...],
      ...
    }

Documents are written verbatim (identity field and all other fields),
indented by two spaces, UTF-8.

Invariants:
    - The artifact has one key per collection present at export time
    - Nothing is written if the store is not connected or serialization fails
    - The artifact name is derived from the export instant; when that name
      is taken, the instant moves forward one millisecond until it is free

Limitations:
    - Best-effort, not transactional: collections are read one after the
      other, so writes racing the export can leave the artifact
      inconsistent across collections

How to change safely:
    - Keep the top-level shape; restore and older tooling depend on it
    - Never filter collections or fields
"""

from __future__ import annotations

import json
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

from ..artifacts.base import ArtifactStore, artifact_name
from ..errors import ArtifactExistsError, BackupError
from ..store.base import Document, DocumentStore, json_default, require_connected

logger = logging.getLogger(__name__)

# Artifact names have millisecond resolution
NAME_STEP = timedelta(milliseconds=1)
MAX_NAME_ATTEMPTS = 1000


@dataclass
class SnapshotInfo:
    """Information about an exported snapshot.

    Attributes:
        file_name: Artifact name
        location: Absolute path or URI of the stored artifact
        created_at: Export instant (UTC)
        collection_count: Number of collections exported
        document_count: Number of documents exported
        size_bytes: Artifact size in bytes
        duration_ms: Export duration
    """

    file_name: str
    location: str
    created_at: datetime
    collection_count: int
    document_count: int
    size_bytes: int
    duration_ms: int


def serialize_payload(payload: dict[str, list[Document]]) -> bytes:
    """Encode a snapshot payload as an artifact body."""
    return json.dumps(payload, indent=2, ensure_ascii=False, default=json_default).encode("utf-8")


class SnapshotExporter:
    """Exports every collection into one artifact.

    Attributes:
        store: Document store to read from
        artifacts: Artifact store to write to

    Example:
        >>> exporter = SnapshotExporter(store, artifacts)
        >>> path = await exporter.export_snapshot()
        >>> path
        '/var/lib/storevault/backups/backup-2024-05-01T02-00-00-123Z.json'
    """

    def __init__(
        self,
        store: DocumentStore,
        artifacts: ArtifactStore,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        """Initialize the exporter.

        Args:
            store: Document store
            artifacts: Artifact store
            clock: Returns the export instant (defaults to UTC now)
        """
        self.store = store
        self.artifacts = artifacts
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._export_count = 0
        self._last_snapshot: SnapshotInfo | None = None
        self._last_instant: datetime | None = None

    async def build_payload(self) -> dict[str, list[Document]]:
        """Read every collection into a snapshot payload.

        Raises:
            StoreConnectionError: If the store is not connected
        """
        require_connected(self.store, "backup")

        payload: dict[str, list[Document]] = {}
        for name in await self.store.list_collections():
            payload[name] = await self.store.find_all(name)
        return payload

    async def create_snapshot(self) -> SnapshotInfo:
        """Export the store and describe the stored artifact.

        Raises:
            StoreConnectionError: If the store is not connected
            ArtifactIOError: If the artifact cannot be written
            BackupError: If a document cannot be serialized
        """
        start_time = time.time()
        created_at = self._clock()

        payload = await self.build_payload()

        try:
            body = serialize_payload(payload)
        except (TypeError, ValueError) as e:
            raise BackupError(f"Failed to serialize backup: {e}", code="SERIALIZATION_ERROR") from e

        await self.artifacts.ensure_ready()
        created_at, file_name, location = await self._write_unique(created_at, body)

        info = SnapshotInfo(
            file_name=file_name,
            location=location,
            created_at=created_at,
            collection_count=len(payload),
            document_count=sum(len(docs) for docs in payload.values()),
            size_bytes=len(body),
            duration_ms=int((time.time() - start_time) * 1000),
        )
        self._export_count += 1
        self._last_snapshot = info

        logger.info(
            "Created snapshot",
            extra={
                "file_name": info.file_name,
                "collections": info.collection_count,
                "documents": info.document_count,
                "size_bytes": info.size_bytes,
                "duration_ms": info.duration_ms,
            },
        )
        return info

    async def _write_unique(self, instant: datetime, body: bytes) -> tuple[datetime, str, str]:
        """Write the artifact under the first free name at or after `instant`."""
        if self._last_instant is not None and instant <= self._last_instant:
            instant = self._last_instant + NAME_STEP

        for _ in range(MAX_NAME_ATTEMPTS):
            file_name = artifact_name(instant)
            try:
                location = await self.artifacts.write(file_name, body)
            except ArtifactExistsError:
                logger.debug("Backup name taken, retrying", extra={"file_name": file_name})
                instant += NAME_STEP
                continue
            self._last_instant = instant
            return instant, file_name, location

        raise ArtifactExistsError(artifact_name(instant))

    async def export_snapshot(self) -> str:
        """Export the store and return the artifact location."""
        info = await self.create_snapshot()
        return info.location

    @property
    def stats(self) -> dict[str, Any]:
        """Get exporter statistics."""
        return {
            "export_count": self._export_count,
            "last_snapshot": self._last_snapshot.file_name if self._last_snapshot else None,
        }
