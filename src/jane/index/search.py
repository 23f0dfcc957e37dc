"""Search engine: wildcard listing and multi-term substring search with excerpts."""

from __future__ import annotations

import json
import logging
import re
import sqlite3
from dataclasses import dataclass, field
from typing import Any

from jane.documents.models import Category, Document, DocumentMeta
from jane.index.errors import SearchQueryError

logger = logging.getLogger(__name__)

WILDCARD = "*"

# Fields a term may match in; each is a column of the documents_fts projection.
_MATCH_FIELDS = ("content", "title", "description", "tags")


@dataclass(frozen=True)
class SearchFilters:
    """Structural restrictions applied to every search.

    ``subcategory`` is the first path segment (language or project).
    Absent values mean "no restriction".
    """

    category: Category | str | None = None
    subcategory: str | None = None
    include_content: bool = False


@dataclass
class SearchResult:
    """A matching document and its highlighted excerpts (may be empty)."""

    document: Document
    matches: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"document": self.document.to_dict(), "matches": list(self.matches)}


def is_wildcard(query: str) -> bool:
    """True for the empty query and a lone ``*``."""
    return query.strip() in ("", WILDCARD)


def split_terms(query: str) -> list[str]:
    """Lower-cased whitespace-separated terms; empty terms are dropped."""
    return [t for t in query.lower().split() if t]


def highlight_terms(text: str, terms: list[str]) -> str:
    """Wrap every case-insensitive occurrence of *terms* in ``**`` markers.

    Terms are matched literally; longer terms win where they overlap.
    """
    unique = sorted({t for t in terms if t}, key=len, reverse=True)
    if not unique:
        return text
    pattern = re.compile("|".join(re.escape(t) for t in unique), re.IGNORECASE)
    return pattern.sub(lambda m: f"**{m.group(0)}**", text)


def _contains_any(text: str | None, terms: list[str]) -> bool:
    if not text:
        return False
    lowered = text.lower()
    return any(t in lowered for t in terms)


def extract_matches(
    content: str,
    title: str,
    description: str | None,
    terms: list[str],
) -> list[str]:
    """Build excerpts: first matching content line, then title and description hits."""
    matches: list[str] = []
    for line in content.splitlines():
        if _contains_any(line, terms):
            matches.append(highlight_terms(line.strip(), terms))
            break
    if _contains_any(title, terms):
        matches.append(f"Title: {highlight_terms(title, terms)}")
    if description and _contains_any(description, terms):
        matches.append(f"Description: {highlight_terms(description, terms)}")
    return matches


def row_to_document(row: sqlite3.Row, *, include_content: bool = True) -> Document:
    """Rebuild a :class:`Document` from a ``documents`` row.

    Metadata comes from the verbatim ``meta_json`` blob; if that is
    unreadable the denormalized columns are used instead.
    """
    try:
        data = json.loads(row["meta_json"] or "{}")
    except json.JSONDecodeError:
        logger.warning("Corrupt meta_json for %s://%s", row["category"], row["path"])
        data = None
    if not isinstance(data, dict):
        data = {
            "title": row["title"],
            "description": row["description"],
            "author": row["author"],
            "createdAt": row["created_at"],
            "updatedAt": row["updated_at"],
        }
    return Document(
        category=Category(row["category"]),
        path=row["path"],
        content=(row["content"] or "") if include_content else "",
        meta=DocumentMeta.from_dict(data),
    )


def _filter_clause(filters: SearchFilters) -> tuple[list[str], list[Any]]:
    """SQL conditions + params for the category / subcategory filters."""
    conditions: list[str] = []
    params: list[Any] = []

    if filters.category is not None and filters.category != "":
        try:
            category = Category.parse(filters.category)
        except ValueError as exc:
            raise SearchQueryError(str(exc)) from exc
        conditions.append("d.category = ?")
        params.append(category.value)

    subcategory = (filters.subcategory or "").strip().strip("/")
    if subcategory:
        prefix = f"{subcategory}/"
        conditions.append("substr(d.path, 1, ?) = ?")
        params.extend([len(prefix), prefix])

    return conditions, params


_SELECT_COLUMNS = (
    "d.id, d.category, d.path, d.content, d.title, d.description, "
    "d.author, d.created_at, d.updated_at, d.meta_json"
)


def search_documents(
    conn: sqlite3.Connection,
    query: str,
    filters: SearchFilters | None = None,
) -> list[SearchResult]:
    """Run *query* against the index.

    An empty or ``*`` query lists every document matching *filters*,
    ordered by title.  Otherwise every term must occur (case-insensitive
    substring) in the content, title, description or tags; documents
    whose title contains a term come first, then by title.

    Raises :class:`SearchQueryError` for invalid filters or if the
    database cannot complete the query.
    """
    if filters is None:
        filters = SearchFilters()
    conditions, filter_params = _filter_clause(filters)
    terms = [] if is_wildcard(query) else split_terms(query)

    if not terms:
        sql = f"SELECT {_SELECT_COLUMNS} FROM documents d"
        if conditions:
            sql += " WHERE " + " AND ".join(conditions)
        sql += " ORDER BY d.title, d.path"
        params: list[Any] = filter_params
    else:
        title_hit = " OR ".join("jane_contains(d.title, ?)" for _ in terms)
        term_conditions = []
        term_params: list[Any] = []
        for term in terms:
            term_conditions.append(
                "(" + " OR ".join(f"jane_contains(f.{col}, ?)" for col in _MATCH_FIELDS) + ")"
            )
            term_params.extend([term] * len(_MATCH_FIELDS))
        sql = (
            f"SELECT {_SELECT_COLUMNS}, ({title_hit}) AS title_hit "
            "FROM documents d JOIN documents_fts f ON f.rowid = d.id "
            "WHERE " + " AND ".join(term_conditions + conditions) + " "
            "ORDER BY title_hit DESC, d.title, d.path"
        )
        params = list(terms) + term_params + filter_params

    logger.debug("Search %r terms=%s filters=%s", query, terms, filters)
    try:
        rows = conn.execute(sql, params).fetchall()
    except sqlite3.Error as exc:
        msg = f"Search failed for query '{query}': {exc}"
        raise SearchQueryError(msg) from exc

    results: list[SearchResult] = []
    for row in rows:
        document = row_to_document(row, include_content=filters.include_content)
        matches: list[str] = []
        if terms and filters.include_content:
            matches = extract_matches(
                document.content, row["title"], row["description"], terms
            )
        results.append(SearchResult(document=document, matches=matches))

    logger.debug("Search found %d matching documents", len(results))
    return results
