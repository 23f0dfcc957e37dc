"""Markdown frontmatter: YAML metadata block + markdown body."""

from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import TYPE_CHECKING

import yaml

from jane.documents.models import DocumentMeta, format_timestamp

if TYPE_CHECKING:
    from jane.documents.models import Document

# Leading ``---`` block, closed by a line containing only ``---``.
_FRONTMATTER_RE = re.compile(r"\A---[ \t]*\r?\n(.*?)^---[ \t]*(?:\r?\n|\Z)", re.DOTALL | re.MULTILINE)


def parse_frontmatter(text: str) -> tuple[DocumentMeta, str]:
    """Split *text* into metadata and markdown body.

    Text without a frontmatter block yields default metadata (placeholder
    title) and the whole text as body.  Raises ``ValueError`` when the
    block is not valid YAML or not a mapping.
    """
    match = _FRONTMATTER_RE.match(text)
    if match is None:
        return DocumentMeta(), text

    try:
        data = yaml.safe_load(match.group(1))
    except yaml.YAMLError as exc:
        msg = f"Invalid frontmatter: {exc}"
        raise ValueError(msg) from exc
    if data is None:
        data = {}
    if not isinstance(data, dict):
        msg = f"Frontmatter must be a mapping, got {type(data).__name__}"
        raise ValueError(msg)

    body = text[match.end() :]
    return DocumentMeta.from_dict(data), body.lstrip("\n")


def generate_frontmatter(
    meta: DocumentMeta,
    content: str,
    *,
    now: datetime | None = None,
) -> str:
    """Serialize *meta* and *content* into a markdown document.

    Stamps ``updatedAt`` with *now* (current UTC time by default) and sets
    ``createdAt`` to the same value when missing.  Mutates *meta* so the
    caller sees the stamped values.
    """
    stamp = format_timestamp(now or datetime.now(tz=timezone.utc))
    meta.updated_at = stamp
    if meta.created_at is None:
        meta.created_at = stamp

    header = yaml.safe_dump(
        meta.to_dict(),
        sort_keys=False,
        allow_unicode=True,
        default_flow_style=False,
    )
    body = content if content.endswith("\n") or not content else f"{content}\n"
    return f"---\n{header}---\n\n{body}"


def render_document(doc: Document) -> str:
    """Render *doc* as markdown without re-stamping timestamps."""
    header = yaml.safe_dump(doc.meta.to_dict(), sort_keys=False, allow_unicode=True)
    return f"---\n{header}---\n\n{doc.content}"
