"""
Purge operator for StoreVault.

Deletes every document from every collection. Collection definitions are
kept, so the store looks like a freshly initialized one.

The operation has no confirmation step of its own; asking the operator
is the caller's job.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from ..store.base import DocumentStore, require_connected

logger = logging.getLogger(__name__)


@dataclass
class PurgeResult:
    """Result of a purge.

    Attributes:
        collections_purged: Collections that were emptied
        documents_deleted: Total documents removed
    """

    collections_purged: list[str] = field(default_factory=list)
    documents_deleted: int = 0


class PurgeOperator:
    """Empties every collection of the store.

    Purging an already empty store is a no-op. A failure partway through
    leaves the store partially purged.
    """

    def __init__(self, store: DocumentStore) -> None:
        self.store = store

    async def purge_all(self) -> PurgeResult:
        """Delete all documents from all collections.

        Raises:
            StoreConnectionError: If the store is not connected (nothing is deleted)
            StoreError: If a delete fails partway through
        """
        require_connected(self.store, "purge")

        result = PurgeResult()
        for name in await self.store.list_collections():
            result.documents_deleted += await self.store.delete_all(name)
            result.collections_purged.append(name)

        logger.warning(
            "Purged all data",
            extra={
                "collections": len(result.collections_purged),
                "documents": result.documents_deleted,
            },
        )
        return result
