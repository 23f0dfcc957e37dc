"""Exceptions raised by the document index."""

from __future__ import annotations


class JaneIndexError(RuntimeError):
    """Base class for index failures."""


class IndexNotInitializedError(JaneIndexError):
    """An index operation was called before ``initialize()`` or after ``close()``."""


class IndexStorageError(JaneIndexError):
    """The underlying database failed; the operation was rolled back."""


class SearchQueryError(JaneIndexError, ValueError):
    """Malformed search filters, or the engine could not complete the query."""
