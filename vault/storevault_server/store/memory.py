"""
In-memory document store implementation for testing.

This module provides a simple in-memory backend for:
- Unit tests
- Integration tests
- Local development without a database file

Invariants:
    - All data is lost on process exit
    - Documents are deep-copied on the way in and out
    - Same collection semantics as the SQLite backend

How to change safely:
    - Keep interface compatible with DocumentStore protocol
    - Add features to help with testing scenarios
"""

from __future__ import annotations

import asyncio
import copy
import json
import uuid
from typing import Any, Dict, List, Optional, Set, Tuple
import logging

from .base import Document, DuplicateKeyError, ID_FIELD, StoreError, require_connected

logger = logging.getLogger(__name__)


def _identity_key(doc_id: Any) -> str:
    """Hashable key for an arbitrary identity value."""
    return json.dumps(doc_id, sort_keys=True, default=str)


class InMemoryDocumentStore:
    """In-memory implementation of DocumentStore for testing.

    Collections are kept in creation order, documents in insertion order.

    Testing helpers:
        fail_next(operation, collection) makes the next matching call raise
        StoreError, to exercise partial-failure paths.

    Example:
        >>> store = InMemoryDocumentStore()
        >>> await store.connect()
        >>> await store.insert_many("users", [{"_id": "u1"}])
        1
    """

    def __init__(self) -> None:
        self._collections: Dict[str, Dict[str, Document]] = {}
        self._connected = False
        self._lock = asyncio.Lock()
        self._failures: Set[Tuple[str, str]] = set()

    @property
    def is_connected(self) -> bool:
        """Whether connected (always true after connect())."""
        return self._connected

    async def connect(self) -> None:
        """Connect (no-op for in-memory)."""
        self._connected = True
        logger.debug("InMemoryDocumentStore connected")

    async def close(self) -> None:
        """Close the store. Data is kept so a reconnect sees it."""
        self._connected = False
        logger.debug("InMemoryDocumentStore closed")

    async def list_collections(self) -> List[str]:
        require_connected(self, "list collections")
        return list(self._collections)

    async def create_collection(self, name: str) -> None:
        require_connected(self, "create collection")
        self._collections.setdefault(name, {})

    async def find_all(self, collection: str) -> List[Document]:
        require_connected(self, "find")
        self._maybe_fail("find_all", collection)
        docs = self._collections.get(collection, {})
        return [copy.deepcopy(d) for d in docs.values()]

    async def find_one(self, collection: str, doc_id: Any) -> Optional[Document]:
        require_connected(self, "find")
        doc = self._collections.get(collection, {}).get(_identity_key(doc_id))
        return copy.deepcopy(doc) if doc is not None else None

    async def insert_many(self, collection: str, documents: List[Document]) -> int:
        require_connected(self, "insert")
        self._maybe_fail("insert_many", collection)

        async with self._lock:
            target = self._collections.setdefault(collection, {})
            staged = self._stage(collection, documents, existing=target)
            target.update(staged)
            return len(staged)

    async def replace_all(self, collection: str, documents: List[Document]) -> int:
        require_connected(self, "replace")
        self._maybe_fail("replace_all", collection)

        async with self._lock:
            # Staging first leaves the collection untouched on failure
            staged = self._stage(collection, documents, existing={})
            self._collections[collection] = staged
            return len(staged)

    def _stage(
        self,
        collection: str,
        documents: List[Document],
        existing: Dict[str, Document],
    ) -> Dict[str, Document]:
        staged: Dict[str, Document] = {}
        for doc in documents:
            doc = copy.deepcopy(doc)
            if ID_FIELD not in doc:
                doc[ID_FIELD] = uuid.uuid4().hex
            key = _identity_key(doc[ID_FIELD])
            if key in existing or key in staged:
                raise DuplicateKeyError(collection, doc[ID_FIELD])
            staged[key] = doc
        return staged

    async def upsert(self, collection: str, document: Document) -> None:
        require_connected(self, "upsert")
        if ID_FIELD not in document:
            raise StoreError(f"upsert requires an {ID_FIELD} field")
        async with self._lock:
            target = self._collections.setdefault(collection, {})
            target[_identity_key(document[ID_FIELD])] = copy.deepcopy(document)

    async def delete_all(self, collection: str) -> int:
        require_connected(self, "delete")
        self._maybe_fail("delete_all", collection)
        async with self._lock:
            docs = self._collections.get(collection)
            if docs is None:
                # deleteMany on an unknown collection is a no-op
                return 0
            count = len(docs)
            docs.clear()
            return count

    # -------------------------------------------------------------------------
    # Testing helpers
    # -------------------------------------------------------------------------

    def fail_next(self, operation: str, collection: str) -> None:
        """Make the next call of `operation` on `collection` raise StoreError."""
        self._failures.add((operation, collection))

    def _maybe_fail(self, operation: str, collection: str) -> None:
        if (operation, collection) in self._failures:
            self._failures.discard((operation, collection))
            raise StoreError(f"Injected {operation} failure on {collection}")

    def snapshot(self) -> Dict[str, List[Document]]:
        """Get a copy of all data (synchronous, for assertions)."""
        return {
            name: [copy.deepcopy(d) for d in docs.values()]
            for name, docs in self._collections.items()
        }
