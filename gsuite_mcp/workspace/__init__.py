"""Authenticated Google Workspace API clients."""

from gsuite_mcp.workspace.client import StoreBackedCredentials, WorkspaceClient

__all__ = [
    "WorkspaceClient",
    "StoreBackedCredentials",
]
