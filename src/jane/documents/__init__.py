"""Documents: models, frontmatter codec and the filesystem store."""

from jane.documents.models import Category, Document, DocumentMeta
from jane.documents.store import DocumentStore

__all__ = ["Category", "Document", "DocumentMeta", "DocumentStore"]
