"""SQLite database layer: connection management, schema, meta helpers."""

from __future__ import annotations

import sqlite3
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pathlib import Path

# Schema version: increment on breaking changes
SCHEMA_VERSION = "2"

_SCHEMA_SQL = """\
-- Indexed documents (one row per (category, path))
CREATE TABLE IF NOT EXISTS documents (
    id          INTEGER PRIMARY KEY AUTOINCREMENT,
    category    TEXT NOT NULL CHECK(category IN ('stdlib','spec')),
    path        TEXT NOT NULL,
    content     TEXT NOT NULL DEFAULT '',
    title       TEXT NOT NULL,
    description TEXT,
    author      TEXT,
    created_at  TEXT,
    updated_at  TEXT,
    meta_json   TEXT NOT NULL DEFAULT '{}',
    UNIQUE(category, path)
);

-- Document tags
CREATE TABLE IF NOT EXISTS document_tags (
    id          INTEGER PRIMARY KEY AUTOINCREMENT,
    document_id INTEGER NOT NULL REFERENCES documents(id) ON DELETE CASCADE,
    tag         TEXT NOT NULL,
    UNIQUE(document_id, tag)
);

-- Search projection (rowid = documents.id)
CREATE VIRTUAL TABLE IF NOT EXISTS documents_fts USING fts5(
    content,
    title,
    description,
    tags
);

-- Index metadata
CREATE TABLE IF NOT EXISTS meta (
    key   TEXT PRIMARY KEY,
    value TEXT NOT NULL
);

-- Indexes
CREATE INDEX IF NOT EXISTS idx_documents_category ON documents(category);
CREATE INDEX IF NOT EXISTS idx_documents_title ON documents(title);
CREATE INDEX IF NOT EXISTS idx_document_tags_doc ON document_tags(document_id);
CREATE INDEX IF NOT EXISTS idx_document_tags_tag ON document_tags(tag);
"""


def contains_ci(haystack: str | None, needle: str | None) -> int:
    """Case-insensitive literal substring test, registered as ``jane_contains``."""
    if haystack is None or needle is None:
        return 0
    return int(needle.lower() in haystack.lower())


def open_db(db_path: Path) -> sqlite3.Connection:
    """Open (or create) a SQLite database with proper PRAGMAs.

    Sets WAL journal mode (persistent per-file), ``synchronous=NORMAL``,
    and enables foreign keys (per-connection, required on every open).
    Registers the ``jane_contains`` SQL function used by search.

    Returns a connection with ``sqlite3.Row`` row factory.
    """
    db_path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(db_path), check_same_thread=False)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA synchronous=NORMAL")
    conn.execute("PRAGMA foreign_keys=ON")
    conn.create_function("jane_contains", 2, contains_ci, deterministic=True)
    return conn


def create_schema(conn: sqlite3.Connection) -> None:
    """Create all tables and indexes if they don't exist.

    Safe to call multiple times (uses IF NOT EXISTS).
    """
    conn.executescript(_SCHEMA_SQL)


def get_meta(conn: sqlite3.Connection, key: str, default: str | None = None) -> str | None:
    """Read a value from the ``meta`` table.

    Returns *default* (``None``) if the key doesn't exist.
    """
    row = conn.execute("SELECT value FROM meta WHERE key = ?", (key,)).fetchone()
    if row is None:
        return default
    return str(row[0])


def set_meta(conn: sqlite3.Connection, key: str, value: str) -> None:
    """Insert or update a key in the ``meta`` table."""
    conn.execute(
        "INSERT INTO meta (key, value) VALUES (?, ?) "
        "ON CONFLICT(key) DO UPDATE SET value = excluded.value",
        (key, value),
    )
    conn.commit()
