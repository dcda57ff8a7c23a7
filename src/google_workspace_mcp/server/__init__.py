"""MCP server implementation for Google Workspace.

Provides the stdio MCP server exposing the ``authorize`` tool plus
Drive, Docs, Sheets and Calendar tools.
"""

from google_workspace_mcp.server.google_workspace_server import (
    GoogleWorkspaceServer,
    NotAuthorizedError,
    main,
)


def create_server() -> GoogleWorkspaceServer:
    """Create a server using the default token storage."""
    return GoogleWorkspaceServer()


__all__ = ["GoogleWorkspaceServer", "NotAuthorizedError", "create_server", "main"]
