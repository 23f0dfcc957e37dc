"""Index storage: the SQLite projection of the document store."""

from __future__ import annotations

import json
import logging
import sqlite3
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from jane import __version__
from jane.documents.models import Category, format_timestamp, parse_timestamp
from jane.index.errors import IndexNotInitializedError, IndexStorageError
from jane.index.search import SearchFilters, SearchResult, row_to_document, search_documents
from jane.infrastructure.db import SCHEMA_VERSION, create_schema, get_meta, open_db, set_meta

if TYPE_CHECKING:
    from collections.abc import Iterator
    from datetime import datetime
    from pathlib import Path
    from types import TracebackType

    from jane.documents.models import Document

logger = logging.getLogger(__name__)

# External identity of an indexed document.
SnapshotKey = tuple[Category, str]


@dataclass(frozen=True)
class RecordMetadata:
    """What the scanner needs to know about one indexed document."""

    id: int
    updated_at: datetime | None


@dataclass
class IndexStats:
    """Counts describing the current index."""

    documents: int = 0
    by_category: dict[str, int] = field(default_factory=dict)
    tags: int = 0
    last_scan_at: str | None = None
    schema_version: str | None = None


def _unique_tags(tags: list[str]) -> list[str]:
    seen: set[str] = set()
    out: list[str] = []
    for tag in tags:
        if tag not in seen:
            seen.add(tag)
            out.append(tag)
    return out


class DocumentIndex:
    """Persistent, searchable index of documents keyed by ``(category, path)``.

    Construct once, call :meth:`initialize`, share the instance, and
    :meth:`close` it at shutdown.  Every mutation is one transaction: the
    document row, its tags and its search projection row change together
    or not at all.
    """

    def __init__(self, db_path: Path) -> None:
        self.db_path = db_path
        self._conn: sqlite3.Connection | None = None
        # One connection is shared; transactions must not interleave on it.
        self._lock = threading.RLock()

    # -- lifecycle ---------------------------------------------------------

    def initialize(self) -> None:
        """Open the database and create the schema.  Safe to call twice.

        Raises :class:`IndexStorageError` if the database cannot be opened
        or prepared; no connection is kept in that case.
        """
        if self._conn is not None:
            return
        logger.info("Opening document index at %s", self.db_path)
        conn: sqlite3.Connection | None = None
        try:
            conn = open_db(self.db_path)
            create_schema(conn)
            set_meta(conn, "schema_version", SCHEMA_VERSION)
            set_meta(conn, "jane_version", __version__)
            docs = conn.execute("SELECT count(*) FROM documents").fetchone()[0]
            projected = conn.execute("SELECT count(*) FROM documents_fts").fetchone()[0]
            if docs != projected:
                logger.warning(
                    "Search projection out of sync (%d documents, %d rows); rebuilding",
                    docs,
                    projected,
                )
                self._rebuild_projection(conn)
        except (sqlite3.Error, OSError, IndexStorageError) as exc:
            if conn is not None:
                conn.close()
            msg = f"Cannot open document index at {self.db_path}: {exc}"
            raise IndexStorageError(msg) from exc
        self._conn = conn

    def close(self) -> None:
        """Close the connection.  Safe to call twice."""
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None
                logger.debug("Document index closed")

    @property
    def is_initialized(self) -> bool:
        return self._conn is not None

    def __enter__(self) -> DocumentIndex:
        self.initialize()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    def _require_conn(self) -> sqlite3.Connection:
        if self._conn is None:
            msg = "Document index is not initialized. Call initialize() first."
            raise IndexNotInitializedError(msg)
        return self._conn

    @contextmanager
    def _transaction(
        self, action: str, conn: sqlite3.Connection | None = None
    ) -> Iterator[sqlite3.Connection]:
        """Run the block in one write transaction; roll back on any error."""
        with self._lock:
            if conn is None:
                conn = self._require_conn()
            try:
                conn.execute("BEGIN IMMEDIATE")
                yield conn
                conn.commit()
            except sqlite3.Error as exc:
                conn.rollback()
                msg = f"{action} failed: {exc}"
                logger.error(msg)
                raise IndexStorageError(msg) from exc
            except BaseException:
                conn.rollback()
                raise

    # -- writes ------------------------------------------------------------

    def upsert(self, document: Document, *, modified_at: datetime | None = None) -> None:
        """Insert or replace the record for ``(document.category, document.path)``.

        The stored ``updated_at`` is the metadata ``updatedAt``, raised to
        *modified_at* (the file's on-disk mtime) when that is later.
        Raises :class:`IndexStorageError` if the database write fails.
        """
        meta = document.meta
        updated = meta.updated_timestamp()
        if modified_at is not None and (updated is None or modified_at > updated):
            updated = modified_at
        created = meta.created_timestamp()
        tags = _unique_tags(meta.tags)
        meta_json = json.dumps(meta.to_json_dict(), ensure_ascii=False)
        fields = (
            document.content,
            meta.title,
            meta.description,
            meta.author,
            format_timestamp(created) if created else None,
            format_timestamp(updated) if updated else None,
            meta_json,
        )

        with self._transaction(f"Indexing {document.key}") as conn:
            row = conn.execute(
                "SELECT id FROM documents WHERE category = ? AND path = ?",
                (document.category.value, document.path),
            ).fetchone()
            if row is not None:
                doc_id = int(row["id"])
                conn.execute(
                    "UPDATE documents SET content = ?, title = ?, description = ?, "
                    "author = ?, created_at = ?, updated_at = ?, meta_json = ? "
                    "WHERE id = ?",
                    (*fields, doc_id),
                )
                conn.execute("DELETE FROM document_tags WHERE document_id = ?", (doc_id,))
                conn.execute("DELETE FROM documents_fts WHERE rowid = ?", (doc_id,))
                logger.debug("Updated indexed document %s", document.key)
            else:
                cur = conn.execute(
                    "INSERT INTO documents (category, path, content, title, description, "
                    "author, created_at, updated_at, meta_json) "
                    "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
                    (document.category.value, document.path, *fields),
                )
                doc_id = int(cur.lastrowid or 0)
                logger.debug("Added indexed document %s", document.key)

            conn.executemany(
                "INSERT INTO document_tags (document_id, tag) VALUES (?, ?)",
                [(doc_id, tag) for tag in tags],
            )
            conn.execute(
                "INSERT INTO documents_fts (rowid, content, title, description, tags) "
                "VALUES (?, ?, ?, ?, ?)",
                (doc_id, document.content, meta.title, meta.description or "", " ".join(tags)),
            )

    def remove(self, category: Category, path: str) -> bool:
        """Delete a record with its tags and projection row.

        Returns ``False`` (not an error) if nothing was indexed under that key.
        """
        with self._transaction(f"Removing {category.value}://{path}") as conn:
            row = conn.execute(
                "SELECT id FROM documents WHERE category = ? AND path = ?",
                (category.value, path),
            ).fetchone()
            if row is None:
                logger.debug("Not in index: %s://%s", category.value, path)
                return False
            doc_id = row["id"]
            conn.execute("DELETE FROM documents_fts WHERE rowid = ?", (doc_id,))
            conn.execute("DELETE FROM document_tags WHERE document_id = ?", (doc_id,))
            conn.execute("DELETE FROM documents WHERE id = ?", (doc_id,))
        logger.debug("Removed %s://%s from index", category.value, path)
        return True

    def rebuild_projection(self) -> int:
        """Regenerate every search projection row from ``documents`` + tags."""
        return self._rebuild_projection(self._require_conn())

    def _rebuild_projection(self, conn: sqlite3.Connection) -> int:
        with self._transaction("Rebuilding search projection", conn):
            conn.execute("DELETE FROM documents_fts")
            cur = conn.execute(
                "INSERT INTO documents_fts (rowid, content, title, description, tags) "
                "SELECT d.id, d.content, d.title, IFNULL(d.description, ''), "
                "IFNULL((SELECT group_concat(tag, ' ') FROM "
                "(SELECT tag FROM document_tags WHERE document_id = d.id ORDER BY id)), '') "
                "FROM documents d"
            )
            count = cur.rowcount
        logger.info("Rebuilt search projection for %d documents", count)
        return count

    def record_scan(self, when: datetime) -> None:
        with self._lock:
            try:
                set_meta(self._require_conn(), "last_scan_at", format_timestamp(when))
            except sqlite3.Error as exc:
                msg = f"Recording scan time failed: {exc}"
                raise IndexStorageError(msg) from exc

    # -- reads -------------------------------------------------------------

    def get_metadata_snapshot(self) -> dict[SnapshotKey, RecordMetadata]:
        """Map every indexed ``(category, path)`` to its id and ``updated_at``."""
        with self._lock:
            conn = self._require_conn()
            try:
                rows = conn.execute(
                    "SELECT id, category, path, updated_at FROM documents"
                ).fetchall()
            except sqlite3.Error as exc:
                msg = f"Reading index metadata failed: {exc}"
                raise IndexStorageError(msg) from exc
        return {
            (Category(r["category"]), r["path"]): RecordMetadata(
                id=r["id"], updated_at=parse_timestamp(r["updated_at"])
            )
            for r in rows
        }

    def get(self, category: Category, path: str) -> Document | None:
        """Fetch one indexed document, or ``None``."""
        with self._lock:
            conn = self._require_conn()
            try:
                row = conn.execute(
                    "SELECT * FROM documents WHERE category = ? AND path = ?",
                    (category.value, path),
                ).fetchone()
            except sqlite3.Error as exc:
                msg = f"Reading {category.value}://{path} failed: {exc}"
                raise IndexStorageError(msg) from exc
        return row_to_document(row) if row is not None else None

    def tags_for(self, category: Category, path: str) -> list[str]:
        """Tags stored for one document, in insertion order."""
        with self._lock:
            rows = self._require_conn().execute(
                "SELECT t.tag FROM document_tags t JOIN documents d ON d.id = t.document_id "
                "WHERE d.category = ? AND d.path = ? ORDER BY t.id",
                (category.value, path),
            ).fetchall()
        return [r["tag"] for r in rows]

    def search(self, query: str, filters: SearchFilters | None = None) -> list[SearchResult]:
        """Search the index; see :func:`jane.index.search.search_documents`."""
        with self._lock:
            return search_documents(self._require_conn(), query, filters)

    def stats(self) -> IndexStats:
        with self._lock:
            conn = self._require_conn()
            rows = conn.execute(
                "SELECT category, count(*) AS n FROM documents GROUP BY category"
            ).fetchall()
            by_category = {r["category"]: r["n"] for r in rows}
            return IndexStats(
                documents=sum(by_category.values()),
                by_category=by_category,
                tags=conn.execute("SELECT count(*) FROM document_tags").fetchone()[0],
                last_scan_at=get_meta(conn, "last_scan_at"),
                schema_version=get_meta(conn, "schema_version"),
            )
