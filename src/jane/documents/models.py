"""Document models: categories, metadata and timestamps."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any

# Title used when a document's frontmatter has none.
DEFAULT_TITLE = "Untitled Document"

# Frontmatter keys mapped onto DocumentMeta fields.
_KNOWN_KEYS = ("title", "description", "author", "tags", "createdAt", "updatedAt")


class Category(str, Enum):
    """Top-level partition of the document namespace."""

    STDLIB = "stdlib"
    SPEC = "spec"

    @classmethod
    def parse(cls, value: Category | str) -> Category:
        """Return the category for *value*, raising ``ValueError`` if unknown."""
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            choices = ", ".join(c.value for c in cls)
            msg = f"Unknown category '{value}' (expected one of: {choices})"
            raise ValueError(msg) from None


def parse_timestamp(value: object) -> datetime | None:
    """Parse a frontmatter timestamp into an aware UTC ``datetime``.

    Accepts ``datetime``, ``date`` and ISO-8601 strings (a trailing ``Z``
    is allowed).  Naive values are assumed to be UTC.  Returns ``None``
    for empty or unparsable input.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    elif isinstance(value, str):
        text = value.strip()
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def format_timestamp(value: datetime) -> str:
    """Serialize *value* for storage: UTC, microsecond precision."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _jsonable(value: Any) -> Any:
    """Convert YAML-native values (dates) into JSON-friendly ones."""
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, dict):
        return {str(k): _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    return value


@dataclass
class DocumentMeta:
    """Frontmatter metadata: a known subset plus opaque extra keys."""

    title: str = DEFAULT_TITLE
    description: str | None = None
    author: str | None = None
    tags: list[str] = field(default_factory=list)
    created_at: datetime | str | None = None
    updated_at: datetime | str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> DocumentMeta:
        """Build metadata from a frontmatter mapping (camelCase keys)."""
        data = data or {}
        raw_tags = data.get("tags") or []
        if isinstance(raw_tags, str):
            raw_tags = [raw_tags]
        title = data.get("title")
        return cls(
            title=str(title) if title else DEFAULT_TITLE,
            description=_optional_str(data.get("description")),
            author=_optional_str(data.get("author")),
            tags=[str(t) for t in raw_tags],
            created_at=data.get("createdAt"),
            updated_at=data.get("updatedAt"),
            extra={k: v for k, v in data.items() if k not in _KNOWN_KEYS},
        )

    def to_dict(self) -> dict[str, Any]:
        """Return the frontmatter mapping; absent optional keys are omitted."""
        data: dict[str, Any] = {"title": self.title}
        if self.description is not None:
            data["description"] = self.description
        if self.author is not None:
            data["author"] = self.author
        if self.tags:
            data["tags"] = list(self.tags)
        if self.created_at is not None:
            data["createdAt"] = self.created_at
        if self.updated_at is not None:
            data["updatedAt"] = self.updated_at
        data.update(self.extra)
        return data

    def to_json_dict(self) -> dict[str, Any]:
        """Like :meth:`to_dict` but with timestamps rendered as strings."""
        return _jsonable(self.to_dict())  # type: ignore[no-any-return]

    def created_timestamp(self) -> datetime | None:
        return parse_timestamp(self.created_at)

    def updated_timestamp(self) -> datetime | None:
        return parse_timestamp(self.updated_at)


def _optional_str(value: object) -> str | None:
    if value is None:
        return None
    return str(value)


@dataclass
class Document:
    """A document: category + path identity, markdown body and metadata."""

    category: Category
    path: str
    content: str
    meta: DocumentMeta = field(default_factory=DocumentMeta)

    @property
    def key(self) -> str:
        return f"{self.category.value}://{self.path}"

    @property
    def subcategory(self) -> str:
        """First path segment: the language (stdlib) or project (spec)."""
        head, sep, _rest = self.path.partition("/")
        return head if sep else ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "category": self.category.value,
            "path": self.path,
            "subcategory": self.subcategory,
            "content": self.content,
            "meta": self.meta.to_json_dict(),
        }
