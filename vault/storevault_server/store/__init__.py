"""
Document store abstraction for StoreVault.

This module provides a pluggable store interface supporting:
- SQLite (default, single file under DATA_DIR)
- In-memory (for testing)

The store holds the application's collections. The backup engine reads
and replaces whole collections through it and never looks inside documents.

Invariants:
    - Operations on a disconnected store raise StoreConnectionError
    - Collections are enumerated in a stable order
    - delete_all() keeps the collection definition

How to change safely:
    - New backends must implement the DocumentStore protocol
    - Keep documents opaque in every backend
"""

from .base import (
    Document,
    DocumentStore,
    DuplicateKeyError,
    ID_FIELD,
    StoreError,
    create_document_store,
    json_default,
    require_connected,
)
from .memory import InMemoryDocumentStore
from .sqlite import SqliteDocumentStore

__all__ = [
    # Protocol and types
    "DocumentStore",
    "Document",
    "ID_FIELD",
    "StoreError",
    "DuplicateKeyError",
    "json_default",
    "require_connected",
    # Factory
    "create_document_store",
    # Implementations
    "InMemoryDocumentStore",
    "SqliteDocumentStore",
]
