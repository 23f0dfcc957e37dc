"""Tests for the jane CLI commands."""

from __future__ import annotations

import json
import os
from typing import TYPE_CHECKING

import pytest
from click.testing import CliRunner, Result

from jane.services.cli import main

if TYPE_CHECKING:
    from pathlib import Path


@pytest.fixture()
def project(tmp_path: Path) -> Path:
    """Initialized project with one stdlib document."""
    proj = tmp_path / "proj"
    proj.mkdir()
    runner = CliRunner()
    result = runner.invoke(main, ["init", "--project", str(proj)])
    assert result.exit_code == 0, result.output
    result = runner.invoke(
        main,
        [
            "create", "stdlib", "javascript/arrays.md",
            "--title", "Arrays",
            "--tag", "js",
            "--content", "map filter reduce",
            "--project", str(proj),
        ],
    )
    assert result.exit_code == 0, result.output
    return proj


def _run(project: Path, *args: str, **kwargs: str) -> Result:
    return CliRunner().invoke(main, [*args, "--project", str(project)], **kwargs)


class TestInit:
    def test_creates_layout(self, tmp_path: Path) -> None:
        result = CliRunner().invoke(main, ["init", "--project", str(tmp_path)])
        assert result.exit_code == 0, result.output
        assert (tmp_path / ".jane" / "config.yml").is_file()
        assert (tmp_path / ".jane" / "jane.db").is_file()
        assert (tmp_path / "Jane" / "stdlib" / "python").is_dir()
        assert (tmp_path / "Jane" / "specs" / "project1").is_dir()

    def test_keeps_existing_config(self, tmp_path: Path) -> None:
        (tmp_path / ".jane").mkdir()
        (tmp_path / ".jane" / "config.yml").write_text("docs_dir: kb\nlanguages: [go]\n")
        result = CliRunner().invoke(main, ["init", "--project", str(tmp_path)])
        assert result.exit_code == 0, result.output
        assert (tmp_path / "kb" / "stdlib" / "go").is_dir()
        assert "docs_dir: kb" in (tmp_path / ".jane" / "config.yml").read_text()


class TestCreateAndReindex:
    def test_created_document_is_indexed(self, project: Path) -> None:
        result = _run(project, "reindex")
        assert result.exit_code == 0, result.output
        assert "Indexed: 0" in result.output
        assert "Skipped: 1" in result.output

    def test_create_duplicate_fails(self, project: Path) -> None:
        result = _run(project, "create", "stdlib", "javascript/arrays.md", "--title", "X", "--content", "y")
        assert result.exit_code == 1
        assert "already exists" in result.output

    def test_create_from_stdin(self, project: Path) -> None:
        result = _run(project, "create", "spec", "project1/api.md", "--title", "API", input="GET POST\n")
        assert result.exit_code == 0, result.output
        assert "Created spec://project1/api.md" in result.output
        assert "project1/api.md" in _run(project, "search", "post").output

    def test_create_rejects_escaping_path(self, project: Path) -> None:
        result = _run(project, "create", "spec", "../evil.md", "--title", "X", "--content", "y")
        assert result.exit_code == 1
        assert "Invalid document path" in result.output

    def test_reindex_picks_up_new_file(self, project: Path) -> None:
        (project / "Jane" / "stdlib" / "python" / "lists.md").write_text(
            "---\ntitle: Lists\n---\n\nappend extend\n"
        )
        result = _run(project, "reindex")
        assert result.exit_code == 0, result.output
        assert "Indexed: 1" in result.output
        assert "Skipped: 1" in result.output

    def test_reindex_reports_errors(self, project: Path) -> None:
        (project / "Jane" / "stdlib" / "python" / "bad.md").write_text("---\ntitle: [x\n---\n")
        result = _run(project, "reindex")
        assert result.exit_code == 1, result.output
        assert "Failed:  1" in result.output
        assert "[ERR] stdlib://python/bad.md" in result.output

    def test_reindex_prune(self, project: Path) -> None:
        os.remove(project / "Jane" / "stdlib" / "javascript" / "arrays.md")
        result = _run(project, "reindex", "--prune")
        assert result.exit_code == 0, result.output
        assert "Removed: 1" in result.output
        assert "No results found." in _run(project, "search", "*").output


class TestSearch:
    def test_plain_output(self, project: Path) -> None:
        result = _run(project, "search", "filter")
        assert result.exit_code == 0, result.output
        assert "[stdlib] javascript/arrays.md: Arrays" in result.output
        assert "**" not in result.output

    def test_content_shows_excerpts(self, project: Path) -> None:
        result = _run(project, "search", "filter", "--content")
        assert "map **filter** reduce" in result.output

    def test_no_results(self, project: Path) -> None:
        result = _run(project, "search", "nothing-here")
        assert result.exit_code == 0
        assert "No results found." in result.output

    def test_json(self, project: Path) -> None:
        result = _run(project, "search", "*", "--json")
        assert result.exit_code == 0, result.output
        data = json.loads(result.output)
        assert [d["document"]["path"] for d in data] == ["javascript/arrays.md"]
        assert data[0]["document"]["content"] == ""
        assert data[0]["document"]["meta"]["tags"] == ["js"]

    def test_filters(self, project: Path) -> None:
        assert "No results found." in _run(project, "search", "map", "--category", "spec").output
        assert "No results found." in _run(project, "search", "map", "--subcategory", "python").output
        assert "arrays.md" in _run(project, "search", "map", "--subcategory", "javascript").output

    def test_unknown_category_rejected(self, project: Path) -> None:
        result = _run(project, "search", "map", "--category", "blog")
        assert result.exit_code == 2


class TestGetListUpdate:
    def test_get(self, project: Path) -> None:
        result = _run(project, "get", "stdlib", "javascript/arrays.md")
        assert result.exit_code == 0, result.output
        assert "title: Arrays" in result.output
        assert "map filter reduce" in result.output

    def test_get_missing(self, project: Path) -> None:
        result = _run(project, "get", "spec", "project1/none.md")
        assert result.exit_code == 1
        assert "document not found" in result.output

    def test_list(self, project: Path) -> None:
        result = _run(project, "list", "stdlib")
        assert result.exit_code == 0, result.output
        assert "javascript/" in result.output
        assert "javascript/arrays.md" in result.output

    def test_list_rejects_escaping_subcategory(self, project: Path) -> None:
        result = _run(project, "list", "stdlib", "--subcategory", "../x")
        assert result.exit_code == 1
        assert "Invalid document path" in result.output

    def test_update_reindexes(self, project: Path) -> None:
        result = _run(project, "update", "stdlib", "javascript/arrays.md", "--title", "Array Methods")
        assert result.exit_code == 0, result.output
        assert "Updated stdlib://javascript/arrays.md" in result.output
        assert "Array Methods" in _run(project, "search", "methods").output
        assert "Skipped: 1" in _run(project, "reindex").output

    def test_update_missing(self, project: Path) -> None:
        result = _run(project, "update", "spec", "project1/none.md", "--title", "X")
        assert result.exit_code == 1


class TestStatus:
    def test_status(self, project: Path) -> None:
        result = _run(project, "status")
        assert result.exit_code == 0, result.output
        assert "Documents" in result.output
        assert "stdlib" in result.output
        assert "Last scan" in result.output

    def test_malformed_config(self, tmp_path: Path) -> None:
        (tmp_path / ".jane").mkdir()
        (tmp_path / ".jane" / "config.yml").write_text("- not a mapping\n")
        result = CliRunner().invoke(main, ["status", "--project", str(tmp_path)])
        assert result.exit_code == 1
        assert "mapping" in result.output
