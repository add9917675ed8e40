"""
Restore importer for StoreVault.

Replaces collection contents from a snapshot payload (the decoded body of
an artifact, or an equivalent mapping supplied by an operator).

For each (collection, documents) pair, in the order given, the store
replaces the collection: every existing document is deleted and the given
documents are inserted (nothing for an empty list), as one unit per
collection.

Invariants:
    - The payload is validated completely before any mutation
    - Collections not named in the payload are left untouched
    - Documents are inserted verbatim

Limitations:
    - Not atomic across collections. If collection N fails, collections
      before N are already replaced; N and the ones after it are unchanged.
      There is no cross-collection rollback.

How to change safely:
    - Keep validation ahead of the first delete
    - Do not add document rewriting here; documents are opaque
"""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass, field
from typing import Any

from ..errors import ValidationError
from ..store.base import Document, DocumentStore, require_connected

logger = logging.getLogger(__name__)


@dataclass
class RestoreResult:
    """Result of a restore.

    Attributes:
        collections_restored: Collection names in the order they were replaced
        documents_inserted: Total documents inserted
        duration_ms: Restore duration
    """

    collections_restored: list[str] = field(default_factory=list)
    documents_inserted: int = 0
    duration_ms: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "collections": self.collections_restored,
            "documentsInserted": self.documents_inserted,
            "durationMs": self.duration_ms,
        }


def validate_payload(payload: Any) -> dict[str, list[Document]]:
    """Check that a payload maps collection names to document lists.

    Raises:
        ValidationError: If the payload is not a mapping of non-empty string
            keys to lists of objects
    """
    if not isinstance(payload, dict):
        raise ValidationError("Invalid backup data: expected an object of collections")

    for name, documents in payload.items():
        if not isinstance(name, str) or not name:
            raise ValidationError(f"Invalid collection name: {name!r}", field_name=str(name))
        if not isinstance(documents, list):
            raise ValidationError(
                f"Invalid backup data for {name}: expected a list of documents",
                field_name=name,
            )
        for index, doc in enumerate(documents):
            if not isinstance(doc, dict):
                raise ValidationError(
                    f"Invalid document at {name}[{index}]: expected an object",
                    field_name=name,
                )

    return payload


def parse_payload(raw: bytes | str) -> dict[str, list[Document]]:
    """Decode and validate an artifact body.

    Raises:
        ValidationError: If the body is not valid JSON or not a valid payload
    """
    try:
        payload = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise ValidationError(f"Invalid backup data: {e}")
    return validate_payload(payload)


class RestoreImporter:
    """Replaces collections from a snapshot payload.

    Example:
        >>> importer = RestoreImporter(store)
        >>> await importer.restore_snapshot({"users": [{"_id": "u1", "name": "A"}]})
        RestoreResult(collections_restored=['users'], documents_inserted=1, ...)
    """

    def __init__(self, store: DocumentStore) -> None:
        self.store = store

    async def restore_snapshot(self, payload: Any) -> RestoreResult:
        """Replace the contents of every collection named in the payload.

        Args:
            payload: Mapping of collection name to document list

        Returns:
            RestoreResult

        Raises:
            ValidationError: If the payload is malformed (nothing is changed)
            StoreConnectionError: If the store is not connected (nothing is changed)
            StoreError: If a delete or insert fails partway through
        """
        start_time = time.time()
        payload = validate_payload(payload)
        require_connected(self.store, "restore")

        result = RestoreResult()
        for name, documents in payload.items():
            # Delete then insert (nothing for an empty list); unchanged on failure
            result.documents_inserted += await self.store.replace_all(name, documents)
            result.collections_restored.append(name)
            logger.debug(
                "Restored collection",
                extra={"collection": name, "documents": len(documents)},
            )

        result.duration_ms = int((time.time() - start_time) * 1000)
        logger.info(
            "Restore completed",
            extra={
                "collections": len(result.collections_restored),
                "documents": result.documents_inserted,
                "duration_ms": result.duration_ms,
            },
        )
        return result
