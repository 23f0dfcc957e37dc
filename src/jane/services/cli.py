"""Jane CLI entry point."""

from __future__ import annotations

import json
import logging
import sys
from pathlib import Path
from typing import TYPE_CHECKING, NoReturn

import click

from jane import __version__
from jane.documents.models import Category, DocumentMeta
from jane.index.errors import JaneIndexError

if TYPE_CHECKING:
    from jane.documents.store import DocumentStore
    from jane.index.storage import DocumentIndex
    from jane.infrastructure.config import JaneConfig

_CATEGORY_CHOICE = click.Choice([c.value for c in Category])

_project_option = click.option(
    "--project",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    default=None,
    help="Project root (default: current directory).",
)


def _configure_logging(*, verbose: bool, quiet: bool) -> None:
    level = logging.DEBUG if verbose else logging.ERROR if quiet else logging.WARNING
    logging.basicConfig(
        level=level,
        stream=sys.stderr,
        format="%(levelname)s %(name)s: %(message)s",
        force=True,
    )


def _fail(message: str) -> NoReturn:
    click.echo(f"Error: {message}", err=True)
    sys.exit(1)


def _load_store(project: Path | None) -> tuple[JaneConfig, DocumentStore]:
    """Resolve config and build the document store."""
    from jane.documents.store import DocumentStore
    from jane.infrastructure.config import JaneConfig

    project_root = project or Path.cwd()
    try:
        config = JaneConfig.load(project_root)
    except ValueError as exc:
        _fail(str(exc))
    return config, DocumentStore(config.docs_dir)


def _load(project: Path | None) -> tuple[JaneConfig, DocumentStore, DocumentIndex]:
    """Resolve config and build the store + an initialized index."""
    from jane.index.storage import DocumentIndex

    config, store = _load_store(project)
    index = DocumentIndex(config.db_path)
    try:
        index.initialize()
    except JaneIndexError as exc:
        _fail(str(exc))
    return config, store, index


@click.group()
@click.version_option(version=__version__, prog_name="jane")
@click.option("--verbose", "-v", is_flag=True, help="Verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Minimal output (errors only).")
@click.pass_context
def main(ctx: click.Context, *, verbose: bool, quiet: bool) -> None:
    """Jane - document knowledge base with full-text search."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet
    _configure_logging(verbose=verbose, quiet=quiet)


@main.command()
@_project_option
def init(*, project: Path | None) -> None:
    """Create the document directories and the index database."""
    from jane.documents.store import DocumentStore
    from jane.index.storage import DocumentIndex
    from jane.infrastructure.config import CONFIG_DIR, CONFIG_FILE, JaneConfig

    project_root = project or Path.cwd()
    config = JaneConfig.load(project_root)
    if not (project_root / CONFIG_DIR / CONFIG_FILE).exists():
        config.write()

    DocumentStore(config.docs_dir).ensure_structure(
        languages=config.languages,
        projects=config.projects,
    )
    with DocumentIndex(config.db_path):
        pass
    click.echo(f"Documents: {config.docs_dir}")
    click.echo(f"Index:     {config.db_path}")


@main.command()
@_project_option
@click.option(
    "--prune",
    is_flag=True,
    default=False,
    help="Also remove index entries whose document file was deleted.",
)
def reindex(*, project: Path | None, prune: bool) -> None:
    """Index new and modified documents.

    Unchanged documents (index timestamp at or after the file's mtime)
    are skipped without being read.
    Exits with status 1 if any document failed.
    """
    from jane.index.scanner import prune_missing, scan_and_index

    _config, store, index = _load(project)
    try:
        result = scan_and_index(store, index)
        removed = prune_missing(store, index) if prune else []
    except JaneIndexError as exc:
        index.close()
        _fail(str(exc))
    index.close()

    click.echo(f"Indexed: {result.indexed}")
    click.echo(f"Skipped: {result.skipped}")
    click.echo(f"Failed:  {result.failed}")
    if prune:
        click.echo(f"Removed: {len(removed)}")
    if not result.ok:
        click.echo("")
        for err in result.errors:
            click.echo(f"  [ERR] {err}")
        sys.exit(1)


@main.command()
@click.argument("query")
@click.option("--category", type=_CATEGORY_CHOICE, default=None, help="Restrict to one category.")
@click.option(
    "--subcategory",
    default=None,
    help="Restrict to one language (stdlib) or project (spec).",
)
@click.option("--content", "include_content", is_flag=True, help="Include bodies and excerpts.")
@click.option("--limit", default=None, type=int, help="Max results.")
@click.option("--json", "output_json", is_flag=True, help="Output as JSON.")
@_project_option
def search(
    query: str,
    *,
    category: str | None,
    subcategory: str | None,
    include_content: bool,
    limit: int | None,
    output_json: bool,
    project: Path | None,
) -> None:
    """Search documents by content, title, description and tags.

    All terms must match.  Use '*' to list every document.
    """
    from jane.index.search import SearchFilters

    _config, _store, index = _load(project)
    filters = SearchFilters(
        category=category,
        subcategory=subcategory,
        include_content=include_content,
    )
    try:
        results = index.search(query, filters)
    except JaneIndexError as exc:
        index.close()
        _fail(str(exc))
    index.close()
    if limit is not None:
        results = results[:limit]

    if output_json:
        click.echo(json.dumps([r.to_dict() for r in results], ensure_ascii=False, indent=2))
        return
    if not results:
        click.echo("No results found.")
        return
    for r in results:
        doc = r.document
        click.echo(f"  [{doc.category.value}] {doc.path}: {doc.meta.title}")
        for match in r.matches:
            click.echo(f"    {match}")


@main.command()
@click.argument("category", type=_CATEGORY_CHOICE)
@click.argument("path")
@click.option("--json", "output_json", is_flag=True, help="Output as JSON.")
@_project_option
def get(category: str, path: str, *, output_json: bool, project: Path | None) -> None:
    """Print one document from the document store."""
    from jane.documents.frontmatter import render_document

    _config, store = _load_store(project)
    try:
        doc = store.read(Category(category), path)
    except ValueError as exc:
        _fail(str(exc))
    if doc is None:
        _fail(f"document not found: {category}://{path}")

    if output_json:
        click.echo(json.dumps(doc.to_dict(), ensure_ascii=False, indent=2))
    else:
        click.echo(render_document(doc))


@main.command("list")
@click.argument("category", type=_CATEGORY_CHOICE)
@click.option("--subcategory", default="", help="Language (stdlib) or project (spec).")
@_project_option
def list_cmd(category: str, *, subcategory: str, project: Path | None) -> None:
    """List documents in a category."""
    _config, store = _load_store(project)
    cat = Category(category)
    try:
        paths = store.list(cat, subcategory)
    except (ValueError, OSError) as exc:
        _fail(str(exc))
    if not subcategory:
        for name in store.list_subcategories(cat):
            click.echo(f"{name}/")
    for path in paths:
        click.echo(path)


def _write_and_index(
    store: DocumentStore,
    index: DocumentIndex,
    category: Category,
    path: str,
    content: str,
    meta: DocumentMeta,
) -> None:
    doc = store.write(category, path, content, meta)
    index.upsert(doc, modified_at=store.last_modified(category, path))


@main.command()
@click.argument("category", type=_CATEGORY_CHOICE)
@click.argument("path")
@click.option("--title", required=True, help="Document title.")
@click.option("--description", default=None, help="Document description.")
@click.option("--author", default=None, help="Document author.")
@click.option("--tag", "tags", multiple=True, help="Tag (repeatable).")
@click.option("--content", default=None, help="Markdown body (default: read stdin).")
@_project_option
def create(
    category: str,
    path: str,
    *,
    title: str,
    description: str | None,
    author: str | None,
    tags: tuple[str, ...],
    content: str | None,
    project: Path | None,
) -> None:
    """Create a document and index it."""
    _config, store, index = _load(project)
    cat = Category(category)
    try:
        if store.document_path(cat, path).exists():
            _fail(f"document already exists: {category}://{path}")
        body = content if content is not None else click.get_text_stream("stdin").read()
        meta = DocumentMeta(title=title, description=description, author=author, tags=list(tags))
        _write_and_index(store, index, cat, path, body, meta)
    except (ValueError, OSError, JaneIndexError) as exc:
        _fail(str(exc))
    finally:
        index.close()
    click.echo(f"Created {category}://{path}")


@main.command()
@click.argument("category", type=_CATEGORY_CHOICE)
@click.argument("path")
@click.option("--title", default=None, help="New title.")
@click.option("--description", default=None, help="New description.")
@click.option("--author", default=None, help="New author.")
@click.option("--tag", "tags", multiple=True, help="Replace tags (repeatable).")
@click.option("--content", default=None, help="New markdown body.")
@_project_option
def update(
    category: str,
    path: str,
    *,
    title: str | None,
    description: str | None,
    author: str | None,
    tags: tuple[str, ...],
    content: str | None,
    project: Path | None,
) -> None:
    """Update a document's content and/or metadata and re-index it."""
    _config, store, index = _load(project)
    cat = Category(category)
    meta_updates = {
        "title": title,
        "description": description,
        "author": author,
        "tags": list(tags) if tags else None,
    }
    try:
        doc = store.update(cat, path, content=content, meta_updates=meta_updates)
        if doc is None:
            _fail(f"document not found: {category}://{path}")
        index.upsert(doc, modified_at=store.last_modified(cat, path))
    except (ValueError, OSError, JaneIndexError) as exc:
        _fail(str(exc))
    finally:
        index.close()
    click.echo(f"Updated {category}://{path}")


@main.command()
@_project_option
def status(*, project: Path | None) -> None:
    """Show index statistics."""
    from rich.console import Console
    from rich.table import Table

    config, _store, index = _load(project)
    stats = index.stats()
    index.close()

    table = Table(title=f"jane v{__version__}", show_header=True)
    table.add_column("Metric", style="bold")
    table.add_column("Value", justify="right")
    table.add_row("Documents", str(stats.documents))
    for category in Category:
        table.add_row(f"  {category.value}", str(stats.by_category.get(category.value, 0)))
    table.add_row("Tags", str(stats.tags))
    table.add_row("Last scan", stats.last_scan_at or "never")
    table.add_row("Schema", stats.schema_version or "?")
    table.add_row("Index", str(config.db_path))
    Console().print(table)


@main.command("mcp-serve")
@_project_option
@click.option("--no-scan", is_flag=True, help="Skip the startup scan.")
def mcp_serve(*, project: Path | None, no_scan: bool) -> None:
    """Run the jane MCP server (stdio transport)."""
    import anyio

    from jane.services.mcp_server import create_server

    _config, store, index = _load(project)
    server = create_server(store, index, scan_on_start=not no_scan)

    async def _run() -> None:
        from mcp import stdio_server

        async with stdio_server() as (read_stream, write_stream):
            await server.run(
                read_stream,
                write_stream,
                server.create_initialization_options(),
            )

    try:
        anyio.run(_run)
    finally:
        index.close()
