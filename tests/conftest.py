"""Shared test fixtures for Jane."""

from __future__ import annotations

import os
from typing import TYPE_CHECKING

import pytest

from jane.documents.models import Category, Document, DocumentMeta
from jane.documents.store import DocumentStore
from jane.index.storage import DocumentIndex

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator
    from pathlib import Path


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("JANE_DOCS_DIR", raising=False)
    monkeypatch.delenv("JANE_DB_PATH", raising=False)


@pytest.fixture()
def store(tmp_path: Path) -> DocumentStore:
    """Empty document store rooted at ``tmp_path/Jane``."""
    docs = DocumentStore(tmp_path / "Jane")
    docs.ensure_structure(languages=(), projects=())
    return docs


@pytest.fixture()
def index(tmp_path: Path) -> Iterator[DocumentIndex]:
    """Initialized index; closed after the test."""
    idx = DocumentIndex(tmp_path / ".jane" / "jane.db")
    idx.initialize()
    yield idx
    idx.close()


@pytest.fixture()
def write_doc(store: DocumentStore) -> Callable[..., Path]:
    """Write a raw markdown file into the store, optionally pinning its mtime."""

    def _write(
        category: Category,
        path: str,
        text: str,
        *,
        mtime: float | None = None,
    ) -> Path:
        file_path = store.document_path(category, path)
        file_path.parent.mkdir(parents=True, exist_ok=True)
        file_path.write_text(text, encoding="utf-8")
        if mtime is not None:
            os.utime(file_path, (mtime, mtime))
        return file_path

    return _write


@pytest.fixture()
def make_doc() -> Callable[..., Document]:
    """Factory for in-memory documents used with direct ``upsert`` calls."""
    return _make_doc


def _make_doc(
    category: Category,
    path: str,
    content: str,
    *,
    title: str = "Untitled Document",
    description: str | None = None,
    tags: list[str] | None = None,
    updated_at: str | None = None,
) -> Document:
    """Build an in-memory document for direct ``upsert`` calls."""
    meta = DocumentMeta(
        title=title,
        description=description,
        tags=list(tags or []),
        updated_at=updated_at,
    )
    return Document(category=category, path=path, content=content, meta=meta)
