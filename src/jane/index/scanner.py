"""Reconciliation scanner: bring the index in line with the document store."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING

from jane.documents.models import Category

if TYPE_CHECKING:
    from jane.documents.store import DocumentStore
    from jane.index.storage import DocumentIndex

logger = logging.getLogger(__name__)


@dataclass
class ScanResult:
    """Summary of a reconciliation pass."""

    indexed: int = 0
    skipped: int = 0
    failed: int = 0
    errors: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors


def scan_and_index(
    store: DocumentStore,
    index: DocumentIndex,
    *,
    categories: tuple[Category, ...] | None = None,
) -> ScanResult:
    """Index every new or modified document in *store*.

    A document is skipped when the index already holds it with an
    ``updated_at`` at or after the file's modification time; its content
    is not read.  Listing, stat, read and upsert failures are recorded in
    the result and the scan moves on.  Only a failure to read the index
    metadata itself aborts the scan (``IndexStorageError``).

    Documents that disappeared from disk are left in the index; use
    :func:`prune_missing` to remove them explicitly.
    """
    result = ScanResult()
    logger.info("Starting document scan")

    existing = index.get_metadata_snapshot()
    logger.info("Found %d documents in index", len(existing))

    for category in categories or tuple(Category):
        try:
            paths = store.list(category)
        except Exception as exc:  # listing fault: skip this category only
            message = f"Error listing {category.value} documents: {exc}"
            result.failed += 1
            result.errors.append(message)
            logger.error(message)
            continue
        logger.info("Found %d %s documents to scan", len(paths), category.value)

        for path in paths:
            key = f"{category.value}://{path}"
            try:
                modified_at = store.last_modified(category, path)
                record = existing.get((category, path))
                if (
                    record is not None
                    and record.updated_at is not None
                    and record.updated_at >= modified_at
                ):
                    result.skipped += 1
                    logger.debug("Skipped unchanged document %s", key)
                    continue

                document = store.read(category, path)
                if document is None:
                    message = f"{key}: failed to read document"
                    result.failed += 1
                    result.errors.append(message)
                    logger.error(message)
                    continue

                index.upsert(document, modified_at=modified_at)
                result.indexed += 1
                logger.debug("Indexed document %s (%s)", key, "updated" if record else "new")
            except Exception as exc:  # per-document fault: record and continue
                message = f"{key}: {exc}"
                result.failed += 1
                result.errors.append(message)
                logger.error("Error processing document %s", message)

    index.record_scan(datetime.now(tz=timezone.utc))
    logger.info(
        "Document scan complete. Indexed: %d, Skipped: %d, Failed: %d",
        result.indexed,
        result.skipped,
        result.failed,
    )
    return result


def prune_missing(store: DocumentStore, index: DocumentIndex) -> list[str]:
    """Remove index records whose source file no longer exists.

    Never called by :func:`scan_and_index`; callers opt in explicitly.
    Returns the ``category://path`` keys that were removed.
    """
    removed: list[str] = []
    for category, path in sorted(index.get_metadata_snapshot(), key=lambda k: (k[0].value, k[1])):
        if store.document_path(category, path).exists():
            continue
        if index.remove(category, path):
            removed.append(f"{category.value}://{path}")
            logger.info("Removed deleted document from index: %s://%s", category.value, path)
    return removed
