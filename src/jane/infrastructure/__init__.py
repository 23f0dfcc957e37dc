"""Infrastructure: SQLite layer and configuration."""
