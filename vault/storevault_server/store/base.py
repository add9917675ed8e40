"""
Base protocol and types for the document store abstraction.

This module defines the DocumentStore protocol the backup engine talks to,
along with the document type and store-level errors.

Invariants:
    - Documents are opaque key-value records; backends store them verbatim
    - list_collections() returns every collection, including empty ones
    - find_all() returns documents in insertion order
    - delete_all() removes documents but keeps the collection itself

How to change safely:
    - Protocol changes require updating all implementations
    - Add new methods as optional with default implementations
"""

from __future__ import annotations

import base64
import uuid
from abc import abstractmethod
from datetime import date, datetime
from decimal import Decimal
from typing import (
    Any,
    Dict,
    List,
    Optional,
    Protocol,
    runtime_checkable,
    TYPE_CHECKING,
)
import logging

from ..errors import StoreConnectionError

if TYPE_CHECKING:
    from ..config import StorageConfig

logger = logging.getLogger(__name__)

# An opaque record. The engine never looks inside.
Document = Dict[str, Any]

ID_FIELD = "_id"


def json_default(value: Any) -> Any:
    """Render values json.dumps cannot encode natively.

    Used wherever documents are serialized (SQLite rows, artifacts). The
    rendering is lossy for these types; documents that came from JSON
    round-trip unchanged.
    """
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (bytes, bytearray)):
        return base64.b64encode(bytes(value)).decode("ascii")
    if isinstance(value, (Decimal, uuid.UUID)):
        return str(value)
    if isinstance(value, (set, frozenset, tuple)):
        return list(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


class StoreError(Exception):
    """Base exception for document store operations."""
    pass


class DuplicateKeyError(StoreError):
    """A document with the same identity already exists in the collection."""

    def __init__(self, collection: str, doc_id: Any) -> None:
        super().__init__(f"Duplicate {ID_FIELD} {doc_id!r} in collection {collection!r}")
        self.collection = collection
        self.doc_id = doc_id


@runtime_checkable
class DocumentStore(Protocol):
    """Protocol for document store backends.

    The store groups opaque documents into named collections. The backup
    engine only needs whole-collection reads and writes; single-document
    lookups exist for the settings document.

    Connection contract:
        - connect() must be called before any other operation
        - Operations on a disconnected store raise StoreConnectionError

    Example:
        >>> store = SqliteDocumentStore("/var/lib/storevault")
        >>> await store.connect()
        >>> await store.insert_many("users", [{"_id": "u1", "name": "A"}])
        >>> await store.find_all("users")
        [{'_id': 'u1', 'name': 'A'}]
    """

    @abstractmethod
    async def connect(self) -> None:
        """Open the store.

        Raises:
            StoreConnectionError: If the store cannot be opened
        """
        ...

    @abstractmethod
    async def close(self) -> None:
        """Close the store and release resources."""
        ...

    @property
    @abstractmethod
    def is_connected(self) -> bool:
        """Whether the store is ready for operations."""
        ...

    @abstractmethod
    async def list_collections(self) -> List[str]:
        """List every collection name in store enumeration order."""
        ...

    @abstractmethod
    async def create_collection(self, name: str) -> None:
        """Create an empty collection if it does not exist."""
        ...

    @abstractmethod
    async def find_all(self, collection: str) -> List[Document]:
        """Return every document of a collection.

        A collection that does not exist yields an empty list.
        """
        ...

    @abstractmethod
    async def find_one(self, collection: str, doc_id: Any) -> Optional[Document]:
        """Return the document with the given identity, or None."""
        ...

    @abstractmethod
    async def insert_many(self, collection: str, documents: List[Document]) -> int:
        """Insert documents, creating the collection on demand.

        Documents without an identity field are assigned one.

        Returns:
            Number of documents inserted

        Raises:
            DuplicateKeyError: If an identity already exists in the collection
        """
        ...

    @abstractmethod
    async def upsert(self, collection: str, document: Document) -> None:
        """Insert or replace a document by its identity field."""
        ...

    @abstractmethod
    async def replace_all(self, collection: str, documents: List[Document]) -> int:
        """Replace the whole contents of one collection.

        Deletes every existing document then inserts the given ones, as one
        unit for this collection: on failure the collection is unchanged.
        The collection is created (and kept) even when `documents` is empty.

        Returns:
            Number of documents inserted

        Raises:
            DuplicateKeyError: If `documents` repeats an identity
        """
        ...

    @abstractmethod
    async def delete_all(self, collection: str) -> int:
        """Delete every document of a collection, keeping the collection.

        Returns:
            Number of documents deleted
        """
        ...


def require_connected(store: DocumentStore, operation: str) -> None:
    """Fail fast if the store is not ready.

    Raises:
        StoreConnectionError: If the store is not connected
    """
    if not store.is_connected:
        raise StoreConnectionError(
            f"Database connection not ready for {operation}",
            operation=operation,
        )


def create_document_store(config: "StorageConfig") -> DocumentStore:
    """Factory function to create a document store from configuration.

    Args:
        config: Storage configuration

    Returns:
        Appropriate DocumentStore implementation

    Raises:
        ValueError: If backend is not supported
    """
    from ..config import StoreBackend
    from .memory import InMemoryDocumentStore
    from .sqlite import SqliteDocumentStore

    if config.backend == StoreBackend.SQLITE:
        return SqliteDocumentStore(
            data_dir=config.data_dir,
            db_name=config.db_name,
            wal_mode=config.wal_mode,
            busy_timeout_ms=config.busy_timeout_ms,
        )
    elif config.backend == StoreBackend.MEMORY:
        return InMemoryDocumentStore()
    else:
        raise ValueError(f"Unsupported store backend: {config.backend}")
