"""Document index: storage, reconciliation scanner and search engine."""

from jane.index.errors import (
    IndexNotInitializedError,
    IndexStorageError,
    JaneIndexError,
    SearchQueryError,
)
from jane.index.scanner import ScanResult, prune_missing, scan_and_index
from jane.index.search import SearchFilters, SearchResult
from jane.index.storage import DocumentIndex, IndexStats, RecordMetadata

__all__ = [
    "DocumentIndex",
    "IndexNotInitializedError",
    "IndexStats",
    "IndexStorageError",
    "JaneIndexError",
    "RecordMetadata",
    "ScanResult",
    "SearchFilters",
    "SearchQueryError",
    "SearchResult",
    "prune_missing",
    "scan_and_index",
]
