"""Jane: document knowledge base with a SQLite full-text index."""

__version__ = "0.4.0"
