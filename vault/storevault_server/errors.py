"""
Error types for StoreVault.

This module defines the exceptions raised by the backup engine:
- BackupError: Base exception
- StoreConnectionError: Data store not connected / not ready
- ValidationError: Malformed restore payload or schedule expression
- ArtifactIOError: Artifact read/write failure
- ArtifactExistsError: Artifact name already taken
- ArtifactNotFoundError: Requested artifact name does not exist

Invariants:
    - All errors inherit from BackupError
    - Errors carry a stable code for the HTTP layer to map
    - Core operations never retry store or I/O failures; errors propagate
      to the caller
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class BackupError(Exception):
    """Base exception for all StoreVault errors.

    Attributes:
        message: Error message
        code: Error code for programmatic handling
        details: Additional error context
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or "BACKUP_ERROR"
        self.details = details or {}


class StoreConnectionError(BackupError, ConnectionError):
    """Data store connection is not available.

    Raised before any read or mutation when the store is not connected.
    This is a precondition failure; it is never retried.
    """

    def __init__(self, message: str, operation: Optional[str] = None) -> None:
        super().__init__(
            message,
            code="CONNECTION_ERROR",
            details={"operation": operation},
        )
        self.operation = operation


class ValidationError(BackupError, ValueError):
    """Input validation failed.

    Raised when:
    - A restore payload is not a mapping of collection name to document list
    - A schedule expression is not a valid 5-field cron expression
    """

    def __init__(
        self,
        message: str,
        field_name: Optional[str] = None,
    ) -> None:
        super().__init__(
            message,
            code="VALIDATION_ERROR",
            details={"field": field_name},
        )
        self.field_name = field_name


class ArtifactError(BackupError):
    """Base exception for artifact storage errors."""

    pass


class ArtifactIOError(ArtifactError, OSError):
    """Reading or writing an artifact failed."""

    def __init__(self, message: str, name: Optional[str] = None) -> None:
        ArtifactError.__init__(self, message, code="IO_ERROR", details={"name": name})
        self.name = name

    def __str__(self) -> str:
        return self.message


class ArtifactExistsError(ArtifactIOError):
    """An artifact with this name already exists."""

    def __init__(self, name: str) -> None:
        ArtifactError.__init__(
            self, f"Backup already exists: {name}", code="ALREADY_EXISTS", details={"name": name}
        )
        self.name = name


class ArtifactNotFoundError(ArtifactError, LookupError):
    """Requested artifact does not exist."""

    def __init__(self, name: str) -> None:
        super().__init__(
            f"Backup not found: {name}",
            code="NOT_FOUND",
            details={"name": name},
        )
        self.name = name
