"""
Filesystem artifact store.

Artifacts live as plain files in one directory. Writes go to a temporary
file in the same directory first and are then hard-linked to the final
name, so a listing never shows a partially written artifact and an
existing artifact is never replaced.
"""

from __future__ import annotations

import asyncio
import logging
import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path

from ..errors import ArtifactExistsError, ArtifactIOError, ArtifactNotFoundError
from .base import ARTIFACT_EXTENSION, ArtifactInfo, check_artifact_name, is_artifact_name

logger = logging.getLogger(__name__)


class FilesystemArtifactStore:
    """Directory-backed implementation of ArtifactStore.

    Attributes:
        directory: Directory holding the artifacts

    Example:
        >>> artifacts = FilesystemArtifactStore("/var/lib/storevault/backups")
        >>> await artifacts.ensure_ready()
    """

    def __init__(self, directory: str | os.PathLike) -> None:
        self.directory = Path(directory).absolute()

    async def ensure_ready(self) -> None:
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise ArtifactIOError(f"Cannot create backup directory {self.directory}: {e}") from e

    async def write(self, name: str, data: bytes) -> str:
        if not is_artifact_name(name):
            raise ArtifactIOError(f"Invalid artifact name: {name}", name=name)

        path = await asyncio.get_event_loop().run_in_executor(None, self._write_new, name, data)
        logger.debug("Wrote artifact", extra={"path": path, "size_bytes": len(data)})
        return path

    def _write_new(self, name: str, data: bytes) -> str:
        target = self.directory / name
        try:
            fd, tmp_name = tempfile.mkstemp(dir=self.directory, prefix=".tmp-", suffix=".part")
        except OSError as e:
            raise ArtifactIOError(f"Failed to write backup {name}: {e}", name=name) from e

        tmp_path = Path(tmp_name)
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(data)
                f.flush()
                os.fsync(f.fileno())
            # link() refuses an existing target
            os.link(tmp_path, target)
        except FileExistsError as e:
            raise ArtifactExistsError(name) from e
        except OSError as e:
            raise ArtifactIOError(f"Failed to write backup {name}: {e}", name=name) from e
        finally:
            if tmp_path.exists():
                tmp_path.unlink()

        return str(target)

    async def read(self, name: str) -> bytes:
        path = self._path_for(name)
        try:
            return await asyncio.get_event_loop().run_in_executor(None, path.read_bytes)
        except FileNotFoundError:
            raise ArtifactNotFoundError(name)
        except OSError as e:
            raise ArtifactIOError(f"Failed to read backup {name}: {e}", name=name) from e

    async def list(self) -> list[ArtifactInfo]:
        if not self.directory.exists():
            return []

        artifacts = []
        for path in self.directory.glob(f"*{ARTIFACT_EXTENSION}"):
            if not is_artifact_name(path.name) or not path.is_file():
                continue
            try:
                stat = path.stat()
            except FileNotFoundError:
                # Removed between glob and stat
                continue
            artifacts.append(
                ArtifactInfo(
                    file_name=path.name,
                    last_modified=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc),
                    size_bytes=stat.st_size,
                )
            )

        return sorted(artifacts, key=lambda a: (a.last_modified, a.file_name), reverse=True)

    async def resolve(self, name: str) -> str:
        return str(self._path_for(name))

    def _path_for(self, name: str) -> Path:
        check_artifact_name(name)
        path = self.directory / name
        if not path.is_file():
            raise ArtifactNotFoundError(name)
        return path
