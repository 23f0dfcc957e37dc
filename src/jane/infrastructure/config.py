"""Project configuration: ``.jane/config.yml`` with environment overrides."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml

from jane.documents.store import DEFAULT_LANGUAGES, DEFAULT_PROJECTS

CONFIG_DIR = ".jane"
CONFIG_FILE = "config.yml"

_DEFAULT_DOCS_DIR = "Jane"
_DEFAULT_DB_PATH = ".jane/jane.db"


@dataclass
class JaneConfig:
    """Resolved configuration for one project root."""

    project_root: Path
    docs_dir: Path
    db_path: Path
    languages: list[str] = field(default_factory=lambda: list(DEFAULT_LANGUAGES))
    projects: list[str] = field(default_factory=lambda: list(DEFAULT_PROJECTS))

    @classmethod
    def load(cls, project_root: Path) -> JaneConfig:
        """Read ``<project_root>/.jane/config.yml`` if present.

        Relative paths are resolved against *project_root*.  The
        ``JANE_DOCS_DIR`` and ``JANE_DB_PATH`` environment variables take
        precedence over the file.  Raises ``ValueError`` on a malformed file.
        """
        data: dict[str, object] = {}
        config_path = project_root / CONFIG_DIR / CONFIG_FILE
        if config_path.exists():
            loaded = yaml.safe_load(config_path.read_text(encoding="utf-8")) or {}
            if not isinstance(loaded, dict):
                msg = f"{config_path}: expected a mapping at top level"
                raise ValueError(msg)
            data = loaded

        docs_dir = os.environ.get("JANE_DOCS_DIR") or _str_option(data, "docs_dir", _DEFAULT_DOCS_DIR)
        db_path = os.environ.get("JANE_DB_PATH") or _str_option(data, "db_path", _DEFAULT_DB_PATH)

        config = cls(
            project_root=project_root,
            docs_dir=project_root / docs_dir,
            db_path=project_root / db_path,
        )
        languages = data.get("languages")
        if isinstance(languages, list) and languages:
            config.languages = [str(x) for x in languages]
        projects = data.get("projects")
        if isinstance(projects, list) and projects:
            config.projects = [str(x) for x in projects]
        return config

    def write(self) -> Path:
        """Persist this configuration to ``.jane/config.yml``."""
        config_path = self.project_root / CONFIG_DIR / CONFIG_FILE
        config_path.parent.mkdir(parents=True, exist_ok=True)
        data = {
            "docs_dir": _relative(self.docs_dir, self.project_root),
            "db_path": _relative(self.db_path, self.project_root),
            "languages": self.languages,
            "projects": self.projects,
        }
        config_path.write_text(yaml.safe_dump(data, sort_keys=False), encoding="utf-8")
        return config_path


def _str_option(data: dict[str, object], key: str, default: str) -> str:
    value = data.get(key)
    if isinstance(value, str) and value:
        return value
    return default


def _relative(path: Path, root: Path) -> str:
    if path.is_relative_to(root):
        return path.relative_to(root).as_posix()
    return str(path)
