"""SQLite adapter for reading pre-embedded document chunks."""

import logging
import sqlite3
import threading
from collections.abc import Iterator
from pathlib import Path
from typing import Any

from ....core.domain import CollectionStats, StoredDocument
from ....core.domain.exceptions import DocumentStoreError, MissingTablesError
from ....core.ports.document_store_port import DocumentStorePort

logger = logging.getLogger(__name__)

REQUIRED_TABLES = {"documents", "collections"}

DOCUMENT_COLUMNS = "id, content, embedding, metadata, collection_name"


class SQLiteDocumentStore(DocumentStorePort):
    """Read-only access to the ``documents`` table produced at ingestion time.

    Expected schema (one row per chunk)::

        documents(id, content TEXT, embedding BLOB, metadata TEXT, collection_name TEXT)
        collections(name TEXT, ...)
    """

    def __init__(self, db_path: str | Path) -> None:
        """Initialize the adapter.

        Args:
            db_path: Path to the SQLite database file.
        """
        self.db_path = Path(db_path)
        self._conn: sqlite3.Connection | None = None
        # one connection shared by worker threads; sqlite3 objects are not thread-safe
        self._lock = threading.Lock()

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    def open(self) -> None:
        """Open the database read-only and verify the expected tables exist.

        Raises:
            DocumentStoreError: If the file is missing or cannot be opened.
            MissingTablesError: If required tables are absent.
        """
        if self._conn is not None:
            return

        if not self.db_path.exists():
            raise DocumentStoreError(
                f"Database not found: {self.db_path}",
                context={"db_path": str(self.db_path)},
            )

        logger.info("Opening document store: %s", self.db_path)
        try:
            conn = sqlite3.connect(
                f"{self.db_path.resolve().as_uri()}?mode=ro",
                uri=True,
                check_same_thread=False,
            )
        except sqlite3.Error as e:
            raise DocumentStoreError(
                f"Failed to open database: {self.db_path}",
                cause=e,
                context={"db_path": str(self.db_path)},
            ) from e

        try:
            self._verify_structure(conn)
        except Exception:
            conn.close()
            raise

        self._conn = conn
        logger.info("Document store verified")

    def _verify_structure(self, conn: sqlite3.Connection) -> None:
        rows = conn.execute(
            "SELECT name FROM sqlite_master WHERE type='table' AND name IN ('documents', 'collections')"
        ).fetchall()
        found = {row[0] for row in rows}
        missing = REQUIRED_TABLES - found
        if missing:
            raise MissingTablesError(
                f"Missing required tables. Found: {', '.join(sorted(found)) or 'none'}",
                context={"missing": sorted(missing), "db_path": str(self.db_path)},
            )

    def _connection(self) -> sqlite3.Connection:
        if self._conn is None:
            raise DocumentStoreError("Document store is not open. Call open() first.")
        return self._conn

    def iter_documents(self, collection_name: str | None = None) -> Iterator[StoredDocument]:
        """Yield stored chunks, optionally filtered to one collection."""
        sql = f"SELECT {DOCUMENT_COLUMNS} FROM documents"
        params: tuple[Any, ...] = ()
        if collection_name:
            sql += " WHERE collection_name = ?"
            params = (collection_name,)
        sql += " ORDER BY rowid"

        with self._lock:
            try:
                rows = self._connection().execute(sql, params).fetchall()
            except sqlite3.Error as e:
                logger.error("Document scan failed: %s", e)
                raise DocumentStoreError("Document scan failed", cause=e) from e

        for row in rows:
            yield self._to_document(row)

    def get_document(self, doc_id: Any) -> StoredDocument | None:
        """Fetch a single chunk by id."""
        with self._lock:
            row = (
                self._connection()
                .execute(f"SELECT {DOCUMENT_COLUMNS} FROM documents WHERE id = ?", (doc_id,))
                .fetchone()
            )
        return self._to_document(row) if row else None

    def count_documents(self) -> int:
        with self._lock:
            return int(self._connection().execute("SELECT COUNT(*) FROM documents").fetchone()[0])

    def list_collections(self) -> list[CollectionStats]:
        """Collections with their document counts, including empty ones."""
        with self._lock:
            rows = (
                self._connection()
                .execute(
                    """
                    SELECT c.name, COUNT(d.id)
                    FROM collections c
                    LEFT JOIN documents d ON d.collection_name = c.name
                    GROUP BY c.name
                    ORDER BY c.name
                    """
                )
                .fetchall()
            )
        return [CollectionStats(name=name, documents=count) for name, count in rows]

    def close(self) -> None:
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None
                logger.info("Document store closed")

    @staticmethod
    def _to_document(row: tuple[Any, ...]) -> StoredDocument:
        doc_id, content, embedding, metadata, collection_name = row
        if isinstance(embedding, str):
            # blobs written as text by some ingestion tools
            embedding = embedding.encode("latin-1")
        return StoredDocument(
            id=doc_id,
            content=content or "",
            embedding=bytes(embedding or b""),
            metadata_json=metadata,
            collection_name=collection_name,
        )
