"""
SQLite document store for StoreVault.

This module keeps the application's collections in a single SQLite file.
Documents are stored as JSON text, verbatim, next to a normalized identity
key used for uniqueness and single-document lookups.

Invariants:
    - One SQLite file per store
    - Collections are registered in the collections table, so empty
      collections survive a purge and keep their enumeration position
    - Every multi-row write runs in one SQLite transaction
    - (collection, doc_key) is unique; doc_key is the canonical JSON of _id

How to change safely:
    - Schema migrations must be backward compatible
    - Keep documents opaque; never add columns derived from document fields
      other than the identity key

Table schema:
    collections:
        - name TEXT PRIMARY KEY
        - position INTEGER (enumeration order)
        - created_at INTEGER (Unix ms)

    documents:
        - seq INTEGER PRIMARY KEY AUTOINCREMENT (insertion order)
        - collection TEXT
        - doc_key TEXT
        - body_json TEXT
        - UNIQUE (collection, doc_key)
"""

from __future__ import annotations

import asyncio
import json
import logging
import sqlite3
import time
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from ..errors import StoreConnectionError
from .base import Document, DuplicateKeyError, ID_FIELD, StoreError, json_default, require_connected

logger = logging.getLogger(__name__)

SCHEMA = """
    -- Schema version tracking
    CREATE TABLE IF NOT EXISTS schema_version (
        version INTEGER PRIMARY KEY,
        applied_at INTEGER NOT NULL
    );

    CREATE TABLE IF NOT EXISTS collections (
        name TEXT PRIMARY KEY,
        position INTEGER NOT NULL,
        created_at INTEGER NOT NULL
    );

    CREATE TABLE IF NOT EXISTS documents (
        seq INTEGER PRIMARY KEY AUTOINCREMENT,
        collection TEXT NOT NULL,
        doc_key TEXT NOT NULL,
        body_json TEXT NOT NULL,
        UNIQUE (collection, doc_key)
    );

    CREATE INDEX IF NOT EXISTS idx_documents_collection ON documents(collection, seq);

    INSERT OR IGNORE INTO schema_version (version, applied_at)
    VALUES (1, strftime('%s', 'now') * 1000);
"""


def _doc_key(doc_id: Any) -> str:
    return json.dumps(doc_id, sort_keys=True, default=json_default)


class SqliteDocumentStore:
    """SQLite-backed implementation of DocumentStore.

    Thread safety:
        Each operation opens its own connection. Writes are serialized
        with an asyncio lock; SQLite handles concurrent readers via WAL mode.

    Example:
        >>> store = SqliteDocumentStore("/var/lib/storevault")
        >>> await store.connect()
        >>> await store.insert_many("medicines", [{"_id": "m1", "name": "Panadol"}])
        1
    """

    SCHEMA_VERSION = 1

    def __init__(
        self,
        data_dir: str,
        db_name: str = "store.db",
        wal_mode: bool = True,
        busy_timeout_ms: int = 5000,
    ) -> None:
        """Initialize the store.

        Args:
            data_dir: Directory for the SQLite database file
            db_name: Database file name
            wal_mode: Enable SQLite WAL mode
            busy_timeout_ms: SQLite busy timeout
        """
        self.data_dir = Path(data_dir)
        self.db_path = self.data_dir / db_name
        self.wal_mode = wal_mode
        self.busy_timeout_ms = busy_timeout_ms
        self._connected = False
        self._lock = asyncio.Lock()

    @property
    def is_connected(self) -> bool:
        return self._connected

    async def connect(self) -> None:
        """Create the database file and schema if needed.

        Raises:
            StoreConnectionError: If the database cannot be opened
        """
        try:
            self.data_dir.mkdir(parents=True, exist_ok=True)
            with self._get_connection() as conn:
                conn.executescript(SCHEMA)
        except (OSError, sqlite3.Error) as e:
            raise StoreConnectionError(
                f"Failed to open database {self.db_path}: {e}", operation="connect"
            ) from e

        self._connected = True
        logger.info("SQLite document store connected", extra={"db_path": str(self.db_path)})

    async def close(self) -> None:
        self._connected = False
        logger.info("SQLite document store closed", extra={"db_path": str(self.db_path)})

    @contextmanager
    def _get_connection(self) -> Iterator[sqlite3.Connection]:
        """Open a configured connection to the database file."""
        conn = sqlite3.connect(
            str(self.db_path),
            timeout=self.busy_timeout_ms / 1000.0,
            isolation_level=None,  # Autocommit by default, explicit transactions
        )
        conn.row_factory = sqlite3.Row

        try:
            conn.execute(f"PRAGMA busy_timeout = {self.busy_timeout_ms}")
            if self.wal_mode:
                conn.execute("PRAGMA journal_mode = WAL")
            conn.execute("PRAGMA synchronous = NORMAL")

            yield conn
        finally:
            conn.close()

    def _register_collection(self, conn: sqlite3.Connection, name: str) -> None:
        conn.execute(
            """
            INSERT OR IGNORE INTO collections (name, position, created_at)
            VALUES (?, (SELECT COALESCE(MAX(position), -1) + 1 FROM collections), ?)
            """,
            (name, int(time.time() * 1000)),
        )

    async def list_collections(self) -> list[str]:
        require_connected(self, "list collections")
        with self._get_connection() as conn:
            cursor = conn.execute("SELECT name FROM collections ORDER BY position")
            return [row["name"] for row in cursor.fetchall()]

    async def create_collection(self, name: str) -> None:
        require_connected(self, "create collection")
        async with self._lock:
            with self._get_connection() as conn:
                self._register_collection(conn, name)

    async def find_all(self, collection: str) -> list[Document]:
        require_connected(self, "find")
        with self._get_connection() as conn:
            cursor = conn.execute(
                "SELECT body_json FROM documents WHERE collection = ? ORDER BY seq",
                (collection,),
            )
            return [json.loads(row["body_json"]) for row in cursor.fetchall()]

    async def find_one(self, collection: str, doc_id: Any) -> Document | None:
        require_connected(self, "find")
        with self._get_connection() as conn:
            cursor = conn.execute(
                "SELECT body_json FROM documents WHERE collection = ? AND doc_key = ?",
                (collection, _doc_key(doc_id)),
            )
            row = cursor.fetchone()
            return json.loads(row["body_json"]) if row else None

    async def insert_many(self, collection: str, documents: list[Document]) -> int:
        """Insert documents in one transaction.

        Raises:
            DuplicateKeyError: If an identity already exists; nothing is inserted
            StoreError: If a document cannot be serialized
        """
        require_connected(self, "insert")
        rows = self._rows(collection, documents)

        async with self._lock:
            with self._get_connection() as conn:
                self._write_rows(conn, collection, rows, replace=False)

        return len(rows)

    async def replace_all(self, collection: str, documents: list[Document]) -> int:
        """Delete and re-insert one collection in a single transaction."""
        require_connected(self, "replace")
        rows = self._rows(collection, documents)

        async with self._lock:
            with self._get_connection() as conn:
                self._write_rows(conn, collection, rows, replace=True)

        return len(rows)

    def _rows(self, collection: str, documents: list[Document]) -> list[tuple[str, str, str]]:
        rows = []
        for doc in documents:
            if ID_FIELD not in doc:
                doc = {ID_FIELD: uuid.uuid4().hex, **doc}
            try:
                body = json.dumps(doc, default=json_default)
            except (TypeError, ValueError) as e:
                raise StoreError(f"Cannot serialize document for {collection}: {e}") from e
            rows.append((collection, _doc_key(doc[ID_FIELD]), body))
        return rows

    def _write_rows(
        self,
        conn: sqlite3.Connection,
        collection: str,
        rows: list[tuple[str, str, str]],
        replace: bool,
    ) -> None:
        conn.execute("BEGIN IMMEDIATE")
        try:
            self._register_collection(conn, collection)
            if replace:
                conn.execute("DELETE FROM documents WHERE collection = ?", (collection,))
            conn.executemany(
                "INSERT INTO documents (collection, doc_key, body_json) VALUES (?, ?, ?)",
                rows,
            )
            conn.execute("COMMIT")
        except sqlite3.IntegrityError as e:
            conn.execute("ROLLBACK")
            raise DuplicateKeyError(collection, self._first_duplicate(rows)) from e
        except Exception:
            conn.execute("ROLLBACK")
            raise

    def _first_duplicate(self, rows: list[tuple[str, str, str]]) -> Any:
        seen = set()
        for _, key, _ in rows:
            if key in seen:
                return json.loads(key)
            seen.add(key)
        return json.loads(rows[0][1]) if rows else None

    async def upsert(self, collection: str, document: Document) -> None:
        require_connected(self, "upsert")
        if ID_FIELD not in document:
            raise StoreError(f"upsert requires an {ID_FIELD} field")

        body = json.dumps(document, default=json_default)
        async with self._lock:
            with self._get_connection() as conn:
                conn.execute("BEGIN IMMEDIATE")
                try:
                    self._register_collection(conn, collection)
                    conn.execute(
                        """
                        INSERT INTO documents (collection, doc_key, body_json)
                        VALUES (?, ?, ?)
                        ON CONFLICT (collection, doc_key) DO UPDATE SET body_json = excluded.body_json
                        """,
                        (collection, _doc_key(document[ID_FIELD]), body),
                    )
                    conn.execute("COMMIT")
                except Exception:
                    conn.execute("ROLLBACK")
                    raise

    async def delete_all(self, collection: str) -> int:
        require_connected(self, "delete")
        async with self._lock:
            with self._get_connection() as conn:
                cursor = conn.execute("DELETE FROM documents WHERE collection = ?", (collection,))
                return cursor.rowcount

    async def count(self, collection: str) -> int:
        """Number of documents in a collection."""
        require_connected(self, "count")
        with self._get_connection() as conn:
            cursor = conn.execute(
                "SELECT COUNT(*) AS n FROM documents WHERE collection = ?", (collection,)
            )
            return cursor.fetchone()["n"]
