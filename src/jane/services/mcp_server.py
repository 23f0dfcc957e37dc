"""MCP server: stdio-based tool server for AI agents."""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any

import mcp
from mcp import types
from mcp.server import Server
from mcp.server.lowlevel.helper_types import ReadResourceContents

from jane import __version__
from jane.documents.models import Category, DocumentMeta
from jane.index.errors import JaneIndexError
from jane.index.scanner import scan_and_index
from jane.index.search import SearchFilters

if TYPE_CHECKING:
    from pydantic import AnyUrl

    from jane.documents.store import DocumentStore
    from jane.index.storage import DocumentIndex

logger = logging.getLogger(__name__)


# --- Tool handler functions (sync, testable without transport) ---


def _subcategory_path(subcategory: str, path: str) -> str:
    if not subcategory or "/" in subcategory:
        msg = f"Invalid language/project name: '{subcategory}'"
        raise ValueError(msg)
    return f"{subcategory}/{path.lstrip('/')}"


def handle_get_document(
    store: DocumentStore,
    *,
    category: Category,
    subcategory: str,
    path: str,
) -> dict[str, Any]:
    """Read one document; raises ``LookupError`` if it does not exist."""
    doc_path = _subcategory_path(subcategory, path)
    doc = store.read(category, doc_path)
    if doc is None:
        msg = f"Document not found: {category.value}://{doc_path}"
        raise LookupError(msg)
    return doc.to_dict()


def handle_list_documents(
    store: DocumentStore,
    *,
    category: Category,
    subcategory: str | None = None,
) -> dict[str, Any]:
    """List documents of a category, grouped by language/project."""
    if subcategory:
        return {subcategory: store.list(category, subcategory)}
    grouped: dict[str, Any] = {}
    for name in store.list_subcategories(category):
        grouped[name] = store.list(category, name)
    return grouped


def handle_search(
    index: DocumentIndex,
    *,
    query: str,
    category: str | None = None,
    language: str | None = None,
    project: str | None = None,
    include_content: bool = False,
) -> list[dict[str, Any]]:
    """Search the index.

    *language* restricts to stdlib documents of that language and
    *project* to spec documents of that project.
    """
    if language and project:
        msg = "Pass either language or project, not both"
        raise ValueError(msg)
    subcategory = language or project
    if language:
        category = category or Category.STDLIB.value
    elif project:
        category = category or Category.SPEC.value
    filters = SearchFilters(
        category=category,
        subcategory=subcategory,
        include_content=include_content,
    )
    return [r.to_dict() for r in index.search(query, filters)]


def handle_create_document(
    store: DocumentStore,
    index: DocumentIndex,
    *,
    category: Category,
    subcategory: str,
    path: str,
    title: str,
    content: str,
    description: str | None = None,
    author: str | None = None,
    tags: list[str] | None = None,
) -> dict[str, Any]:
    """Write a new document and index it directly."""
    doc_path = _subcategory_path(subcategory, path)
    if store.document_path(category, doc_path).exists():
        msg = f"Document already exists: {category.value}://{doc_path}"
        raise ValueError(msg)
    meta = DocumentMeta(title=title, description=description, author=author, tags=list(tags or []))
    doc = store.write(category, doc_path, content, meta)
    index.upsert(doc, modified_at=store.last_modified(category, doc_path))
    return {"created": doc.key}


def handle_update_document(
    store: DocumentStore,
    index: DocumentIndex,
    *,
    category: Category,
    subcategory: str,
    path: str,
    content: str | None = None,
    meta_updates: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Update an existing document and re-index it."""
    doc_path = _subcategory_path(subcategory, path)
    doc = store.update(category, doc_path, content=content, meta_updates=meta_updates)
    if doc is None:
        msg = f"Document not found: {category.value}://{doc_path}"
        raise LookupError(msg)
    index.upsert(doc, modified_at=store.last_modified(category, doc_path))
    return {"updated": doc.key}


def handle_reindex(store: DocumentStore, index: DocumentIndex) -> dict[str, Any]:
    """Run a reconciliation scan and report its summary."""
    result = scan_and_index(store, index)
    return {
        "indexed": result.indexed,
        "skipped": result.skipped,
        "failed": result.failed,
        "errors": result.errors,
    }


def handle_get_status(index: DocumentIndex) -> dict[str, Any]:
    """Get index statistics."""
    stats = index.stats()
    return {
        "documents": stats.documents,
        "by_category": stats.by_category,
        "tags": stats.tags,
        "last_scan_at": stats.last_scan_at,
        "schema_version": stats.schema_version,
        "jane_version": __version__,
    }


_RESOURCE_SCHEMES = {"stdlib": Category.STDLIB, "spec": Category.SPEC}
_OWNER_ARGUMENT = {Category.STDLIB: "language", Category.SPEC: "project"}
_MAX_COMPLETIONS = 100


def parse_resource_uri(uri: str) -> tuple[Category, str]:
    """Split ``stdlib://<language>/<path>`` or ``spec://<project>/<path>``.

    Returns the category and the store path (``<language>/<path>``).
    """
    scheme, sep, rest = uri.partition("://")
    category = _RESOURCE_SCHEMES.get(scheme) if sep else None
    owner, _, path = rest.partition("/")
    if category is None or not owner or not path:
        msg = f"Unsupported resource URI: '{uri}'"
        raise ValueError(msg)
    return category, _subcategory_path(owner, path)


def handle_read_resource(store: DocumentStore, uri: str) -> str:
    """Markdown body of the document addressed by *uri*."""
    category, doc_path = parse_resource_uri(uri)
    doc = store.read(category, doc_path)
    if doc is None:
        msg = f"Document not found: {category.value}://{doc_path}"
        raise LookupError(msg)
    return doc.content


def handle_complete_argument(
    store: DocumentStore,
    *,
    category: Category,
    argument: str,
    value: str,
    owner: str | None = None,
) -> list[str]:
    """Completion values for a resource template argument.

    The owner argument (``language`` / ``project``) completes from the
    existing directories; ``path`` completes from the documents of *owner*.
    Matching is a case-insensitive substring test.
    """
    if argument == _OWNER_ARGUMENT[category]:
        candidates = store.list_subcategories(category)
    elif argument == "path" and owner:
        prefix = f"{owner}/"
        candidates = [p[len(prefix):] for p in store.list(category, owner)]
    else:
        return []
    needle = value.lower()
    return [c for c in candidates if needle in c.lower()]


# --- MCP Server creation ---

_STRING = {"type": "string"}

_TOOLS = [
    mcp.Tool(
        name="get_stdlib",
        description="Retrieve a standard library document for a specific language.",
        inputSchema={
            "type": "object",
            "properties": {
                "language": {
                    "type": "string",
                    "description": "Programming language (e.g. javascript, python)",
                },
                "path": {"type": "string", "description": "Path within the language directory"},
            },
            "required": ["language", "path"],
        },
    ),
    mcp.Tool(
        name="get_spec",
        description="Retrieve a specification document for a specific project.",
        inputSchema={
            "type": "object",
            "properties": {
                "project": {"type": "string", "description": "Project name"},
                "path": {"type": "string", "description": "Path within the project directory"},
            },
            "required": ["project", "path"],
        },
    ),
    mcp.Tool(
        name="list_stdlibs",
        description="List standard library documents, optionally for one language.",
        inputSchema={"type": "object", "properties": {"language": _STRING}},
    ),
    mcp.Tool(
        name="list_specs",
        description="List specification documents, optionally for one project.",
        inputSchema={"type": "object", "properties": {"project": _STRING}},
    ),
    mcp.Tool(
        name="search",
        description=(
            "Search documents by content, title, description and tags. "
            "All terms must match; use '*' to list everything."
        ),
        inputSchema={
            "type": "object",
            "properties": {
                "query": {"type": "string", "description": "Search terms or '*'"},
                "type": {"type": "string", "enum": ["stdlib", "spec"]},
                "language": {"type": "string", "description": "Language filter (stdlib)"},
                "project": {"type": "string", "description": "Project filter (spec)"},
                "includeContent": {"type": "boolean", "default": False},
            },
            "required": ["query"],
        },
    ),
    mcp.Tool(
        name="create_document",
        description="Create a new document with frontmatter metadata and index it.",
        inputSchema={
            "type": "object",
            "properties": {
                "type": {"type": "string", "enum": ["stdlib", "spec"]},
                "language": {"type": "string", "description": "Required for stdlib documents"},
                "project": {"type": "string", "description": "Required for spec documents"},
                "path": _STRING,
                "title": _STRING,
                "description": _STRING,
                "author": _STRING,
                "tags": {"type": "array", "items": _STRING},
                "content": {"type": "string", "description": "Markdown body"},
            },
            "required": ["type", "path", "title", "content"],
        },
    ),
    mcp.Tool(
        name="update_document",
        description="Update an existing document's content and/or metadata.",
        inputSchema={
            "type": "object",
            "properties": {
                "type": {"type": "string", "enum": ["stdlib", "spec"]},
                "language": _STRING,
                "project": _STRING,
                "path": _STRING,
                "title": _STRING,
                "description": _STRING,
                "author": _STRING,
                "tags": {"type": "array", "items": _STRING},
                "content": _STRING,
            },
            "required": ["type", "path"],
        },
    ),
    mcp.Tool(
        name="reindex",
        description="Index new and modified documents; returns indexed/skipped/failed counts.",
        inputSchema={"type": "object", "properties": {}},
    ),
    mcp.Tool(
        name="get_status",
        description="Get document index statistics.",
        inputSchema={"type": "object", "properties": {}},
    ),
]


_RESOURCE_TEMPLATES = [
    types.ResourceTemplate(
        uriTemplate="stdlib://{language}/{path}",
        name="stdlib",
        description="Standard library document for a programming language.",
        mimeType="text/markdown",
    ),
    types.ResourceTemplate(
        uriTemplate="spec://{project}/{path}",
        name="spec",
        description="Specification document for a project.",
        mimeType="text/markdown",
    ),
]

_TEMPLATE_CATEGORY = {t.uriTemplate: _RESOURCE_SCHEMES[t.name] for t in _RESOURCE_TEMPLATES}


def create_server(
    store: DocumentStore,
    index: DocumentIndex,
    *,
    scan_on_start: bool = True,
) -> Server:
    """Create and configure the MCP server around an initialized index."""
    if scan_on_start:
        result = scan_and_index(store, index)
        for err in result.errors:
            logger.warning("Startup scan: %s", err)

    server = Server(
        name="jane",
        version=__version__,
        instructions="Jane - searchable knowledge base of stdlib references and project specs.",
    )

    @server.list_tools()  # type: ignore[misc]
    async def _list_tools() -> list[mcp.Tool]:
        return _TOOLS

    @server.call_tool()  # type: ignore[misc]
    async def _call_tool(
        name: str,
        arguments: dict[str, Any] | None,
    ) -> list[mcp.TextContent]:
        args = arguments or {}
        try:
            result = _dispatch_tool(store, index, name, args)
            return [mcp.TextContent(
                type="text",
                text=json.dumps(result, ensure_ascii=False, indent=2),
            )]
        except (LookupError, ValueError, JaneIndexError) as exc:
            return [mcp.TextContent(type="text", text=f"Error: {exc}")]

    @server.list_resource_templates()  # type: ignore[misc]
    async def _list_resource_templates() -> list[types.ResourceTemplate]:
        return _RESOURCE_TEMPLATES

    @server.read_resource()  # type: ignore[misc]
    async def _read_resource(uri: AnyUrl) -> list[ReadResourceContents]:
        text = handle_read_resource(store, str(uri))
        return [ReadResourceContents(content=text, mime_type="text/markdown")]

    @server.completion()  # type: ignore[misc]
    async def _complete(
        ref: types.PromptReference | types.ResourceTemplateReference,
        argument: types.CompletionArgument,
        context: types.CompletionContext | None,
    ) -> types.Completion | None:
        category = _TEMPLATE_CATEGORY.get(getattr(ref, "uri", ""))
        if category is None:
            return None
        owner = None
        if context is not None and context.arguments:
            owner = context.arguments.get(_OWNER_ARGUMENT[category])
        values = handle_complete_argument(
            store,
            category=category,
            argument=argument.name,
            value=argument.value,
            owner=owner,
        )
        return types.Completion(
            values=values[:_MAX_COMPLETIONS],
            total=len(values),
            hasMore=len(values) > _MAX_COMPLETIONS,
        )

    return server


def _owner(args: dict[str, Any], category: Category) -> str:
    """Language or project argument required by *category*."""
    key = "language" if category is Category.STDLIB else "project"
    value = args.get(key)
    if not value:
        msg = f"'{key}' is required for {category.value} documents"
        raise ValueError(msg)
    return str(value)


def _dispatch_tool(
    store: DocumentStore,
    index: DocumentIndex,
    name: str,
    args: dict[str, Any],
) -> Any:
    """Route tool call to the appropriate handler."""
    if name == "get_stdlib":
        return handle_get_document(
            store, category=Category.STDLIB, subcategory=args["language"], path=args["path"]
        )
    if name == "get_spec":
        return handle_get_document(
            store, category=Category.SPEC, subcategory=args["project"], path=args["path"]
        )
    if name == "list_stdlibs":
        return handle_list_documents(store, category=Category.STDLIB, subcategory=args.get("language"))
    if name == "list_specs":
        return handle_list_documents(store, category=Category.SPEC, subcategory=args.get("project"))
    if name == "search":
        return handle_search(
            index,
            query=args["query"],
            category=args.get("type"),
            language=args.get("language"),
            project=args.get("project"),
            include_content=bool(args.get("includeContent", False)),
        )
    if name == "create_document":
        category = Category.parse(args["type"])
        return handle_create_document(
            store,
            index,
            category=category,
            subcategory=_owner(args, category),
            path=args["path"],
            title=args["title"],
            content=args["content"],
            description=args.get("description"),
            author=args.get("author"),
            tags=args.get("tags"),
        )
    if name == "update_document":
        category = Category.parse(args["type"])
        return handle_update_document(
            store,
            index,
            category=category,
            subcategory=_owner(args, category),
            path=args["path"],
            content=args.get("content"),
            meta_updates={k: args.get(k) for k in ("title", "description", "author", "tags")},
        )
    if name == "reindex":
        return handle_reindex(store, index)
    if name == "get_status":
        return handle_get_status(index)

    msg = f"Unknown tool: {name}"
    raise ValueError(msg)
