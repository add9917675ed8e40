"""
Base protocol and types for snapshot artifact storage.

An artifact is one immutable, timestamp-named JSON file holding a full
export of the document store. This module defines the ArtifactStore
protocol, the artifact naming convention and the listing record.

Naming:
    backup-<timestamp>.json

    <timestamp> is the UTC export instant in ISO 8601 with millisecond
    precision and a Z suffix, with every ':' and '.' replaced by '-':

        2024-05-01T02:00:00.123Z -> backup-2024-05-01T02-00-00-123Z.json

    Names sort lexicographically in creation order.

Invariants:
    - Artifacts are never overwritten or modified after creation
    - Only names ending in ARTIFACT_EXTENSION are listed
    - Names containing path separators or '..' never resolve

How to change safely:
    - Protocol changes require updating all implementations
    - Keep the naming convention; operators sort and pick by name
"""

from __future__ import annotations

from abc import abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Optional, Protocol, runtime_checkable, TYPE_CHECKING
import logging

from ..errors import ArtifactNotFoundError

if TYPE_CHECKING:
    from ..config import ArtifactConfig, S3Config

logger = logging.getLogger(__name__)

ARTIFACT_PREFIX = "backup-"
ARTIFACT_EXTENSION = ".json"


@dataclass(frozen=True)
class ArtifactInfo:
    """A stored artifact as seen by a listing.

    Attributes:
        file_name: Artifact name
        last_modified: Modification time (timezone-aware)
        size_bytes: Stored size in bytes
    """

    file_name: str
    last_modified: datetime
    size_bytes: int

    def to_dict(self) -> dict:
        """Convert to the control surface listing shape."""
        return {
            "fileName": self.file_name,
            "date": self.last_modified.isoformat(),
            "size": self.size_bytes,
        }


def format_timestamp(instant: Optional[datetime] = None) -> str:
    """Render an instant as a filesystem-safe sortable timestamp.

    Args:
        instant: Export instant (defaults to now, UTC)

    Returns:
        e.g. "2024-05-01T02-00-00-123Z"
    """
    instant = instant or datetime.now(timezone.utc)
    if instant.tzinfo is None:
        instant = instant.replace(tzinfo=timezone.utc)
    instant = instant.astimezone(timezone.utc)
    iso = instant.strftime("%Y-%m-%dT%H:%M:%S") + f".{instant.microsecond // 1000:03d}Z"
    return iso.replace(":", "-").replace(".", "-")


def artifact_name(instant: Optional[datetime] = None) -> str:
    """Build the artifact file name for an export instant."""
    return f"{ARTIFACT_PREFIX}{format_timestamp(instant)}{ARTIFACT_EXTENSION}"


def is_artifact_name(name: str) -> bool:
    """Whether a name is a well-formed, recognized artifact name.

    Any name with the artifact extension is recognized, including files
    supplied from elsewhere; names that could escape the artifact
    directory are not.
    """
    if not name or not name.endswith(ARTIFACT_EXTENSION):
        return False
    if "/" in name or "\\" in name or name.startswith("."):
        return False
    return ".." not in name


def check_artifact_name(name: str) -> str:
    """Validate an artifact name for lookup.

    Raises:
        ArtifactNotFoundError: If the name can never refer to an artifact
    """
    if not is_artifact_name(name):
        raise ArtifactNotFoundError(name)
    return name


@runtime_checkable
class ArtifactStore(Protocol):
    """Protocol for artifact storage backends.

    Example:
        >>> artifacts = FilesystemArtifactStore("/var/lib/storevault/backups")
        >>> await artifacts.ensure_ready()
        >>> path = await artifacts.write("backup-2024-05-01T02-00-00-123Z.json", body)
        >>> [a.file_name for a in await artifacts.list()]
        ['backup-2024-05-01T02-00-00-123Z.json']
    """

    @abstractmethod
    async def ensure_ready(self) -> None:
        """Make sure the backing location exists. Idempotent.

        Raises:
            ArtifactIOError: If the location cannot be created
        """
        ...

    @abstractmethod
    async def write(self, name: str, data: bytes) -> str:
        """Store a new artifact.

        Args:
            name: Artifact name (must not already exist)
            data: Artifact body

        Returns:
            Location of the stored artifact (absolute path or URI)

        Raises:
            ArtifactIOError: If the write fails or the name is taken
        """
        ...

    @abstractmethod
    async def read(self, name: str) -> bytes:
        """Read an artifact body.

        Raises:
            ArtifactNotFoundError: If no artifact has this name
            ArtifactIOError: If the read fails
        """
        ...

    @abstractmethod
    async def list(self) -> List[ArtifactInfo]:
        """List recognized artifacts, newest first."""
        ...

    @abstractmethod
    async def resolve(self, name: str) -> str:
        """Resolve a name to its location.

        Raises:
            ArtifactNotFoundError: If no artifact has this name
        """
        ...


def create_artifact_store(config: "ArtifactConfig", s3_config: "S3Config") -> ArtifactStore:
    """Factory function to create an artifact store from configuration.

    Args:
        config: Artifact configuration
        s3_config: S3 configuration (used by the S3 backend)

    Returns:
        Appropriate ArtifactStore implementation

    Raises:
        ValueError: If backend is not supported
    """
    from ..config import ArtifactBackend
    from .filesystem import FilesystemArtifactStore
    from .s3 import S3ArtifactStore

    if config.backend == ArtifactBackend.FILESYSTEM:
        return FilesystemArtifactStore(config.backup_dir)
    elif config.backend == ArtifactBackend.S3:
        return S3ArtifactStore(s3_config)
    else:
        raise ValueError(f"Unsupported artifact backend: {config.backend}")
