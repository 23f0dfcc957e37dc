"""Services: CLI and MCP server."""
