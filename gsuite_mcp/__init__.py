"""Google Workspace MCP server core: dynamic multi-account OAuth2."""

__version__ = "0.1.0"
