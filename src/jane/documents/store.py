"""Filesystem document store: ``<root>/stdlib/<language>/`` and ``<root>/specs/<project>/``."""

from __future__ import annotations

import logging
import os
from datetime import datetime, timezone
from pathlib import Path, PurePosixPath
from typing import Any

from jane.documents.frontmatter import generate_frontmatter, parse_frontmatter
from jane.documents.models import Category, Document, DocumentMeta

logger = logging.getLogger(__name__)

# On-disk directory for each category.
_CATEGORY_DIRS: dict[Category, str] = {
    Category.STDLIB: "stdlib",
    Category.SPEC: "specs",
}

DEFAULT_LANGUAGES = ("javascript", "typescript", "python")
DEFAULT_PROJECTS = ("project1", "project2")


def _raise_walk_error(exc: OSError) -> None:
    raise exc


class DocumentStore:
    """Read, write and enumerate markdown documents under *root*."""

    def __init__(self, root: Path) -> None:
        self.root = root

    def category_root(self, category: Category) -> Path:
        return self.root / _CATEGORY_DIRS[category]

    def document_path(self, category: Category, path: str) -> Path:
        """Absolute file path for *path*; rejects paths leaving the category root."""
        rel = PurePosixPath(path)
        if rel.is_absolute() or ".." in rel.parts or not rel.parts:
            msg = f"Invalid document path: '{path}'"
            raise ValueError(msg)
        return self.category_root(category).joinpath(*rel.parts)

    def read(self, category: Category, path: str) -> Document | None:
        """Read one document; ``None`` if the file does not exist."""
        file_path = self.document_path(category, path)
        try:
            text = file_path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        meta, content = parse_frontmatter(text)
        return Document(category=category, path=path, content=content, meta=meta)

    def list(self, category: Category, subpath: str = "") -> list[str]:
        """List ``*.md`` paths relative to the category root, sorted.

        A missing category root or *subpath* directory means there are no
        documents and yields ``[]``.  Any error while walking the tree
        (unreadable directory, I/O failure) propagates as ``OSError``.
        """
        base = self.category_root(category)
        search_dir = self.document_path(category, subpath) if subpath else base
        if not search_dir.is_dir():
            return []
        paths: list[str] = []
        for dirpath, _dirnames, filenames in os.walk(search_dir, onerror=_raise_walk_error):
            for name in filenames:
                if name.endswith(".md"):
                    paths.append((Path(dirpath) / name).relative_to(base).as_posix())
        return sorted(paths)

    def last_modified(self, category: Category, path: str) -> datetime:
        """On-disk modification time of a document, as aware UTC ``datetime``."""
        st = self.document_path(category, path).stat()
        return datetime.fromtimestamp(st.st_mtime, tz=timezone.utc)

    def write(
        self,
        category: Category,
        path: str,
        content: str,
        meta: DocumentMeta,
    ) -> Document:
        """Write a document, stamping ``updatedAt``.  Returns it as written."""
        file_path = self.document_path(category, path)
        file_path.parent.mkdir(parents=True, exist_ok=True)
        file_path.write_text(generate_frontmatter(meta, content), encoding="utf-8")
        logger.debug("Wrote document %s://%s", category.value, path)
        return Document(category=category, path=path, content=content, meta=meta)

    def update(
        self,
        category: Category,
        path: str,
        *,
        content: str | None = None,
        meta_updates: dict[str, Any] | None = None,
    ) -> Document | None:
        """Merge *content* / *meta_updates* into an existing document.

        *meta_updates* uses frontmatter keys (``title``, ``tags``, ...).
        Returns ``None`` if the document does not exist.
        """
        doc = self.read(category, path)
        if doc is None:
            return None
        new_content = doc.content if content is None else content
        merged = doc.meta.to_dict()
        if meta_updates:
            merged.update({k: v for k, v in meta_updates.items() if v is not None})
        return self.write(category, path, new_content, DocumentMeta.from_dict(merged))

    def list_subcategories(self, category: Category) -> list[str]:
        """Languages (stdlib) or projects (spec): the directories under the root."""
        base = self.category_root(category)
        if not base.is_dir():
            return []
        return sorted(p.name for p in base.iterdir() if p.is_dir())

    def ensure_structure(
        self,
        *,
        languages: tuple[str, ...] | list[str] = DEFAULT_LANGUAGES,
        projects: tuple[str, ...] | list[str] = DEFAULT_PROJECTS,
    ) -> None:
        """Create the category roots and default language/project directories."""
        for name in languages:
            (self.category_root(Category.STDLIB) / name).mkdir(parents=True, exist_ok=True)
        for name in projects:
            (self.category_root(Category.SPEC) / name).mkdir(parents=True, exist_ok=True)
        for category in Category:
            self.category_root(category).mkdir(parents=True, exist_ok=True)
