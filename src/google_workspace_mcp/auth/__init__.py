"""OAuth authentication for Google Workspace MCP.

This package covers the whole credential lifecycle for Google Workspace
services (Docs, Sheets, Drive, Calendar): the interactive authorization
flow, token persistence, and transparent token refresh.

Quick Start:
    ```python
    from google_workspace_mcp.auth import AuthorizationFlow, get_authenticated_client

    # Authorize once (tokens land in ~/.google-workspace-mcp/tokens.json)
    flow = AuthorizationFlow()
    print(flow.start())

    # Later, for API calls
    client = get_authenticated_client()
    if client is None:
        print("Not authorized yet")
    ```
"""

from google_workspace_mcp.auth.authorization_flow import AuthorizationFlow
from google_workspace_mcp.auth.authorized_client import (
    AuthorizedClient,
    get_authenticated_client,
)
from google_workspace_mcp.auth.models import CredentialRecord, FlowState, TokenStatus
from google_workspace_mcp.auth.oauth_client import (
    SCOPES,
    ClientConfigError,
    OAuthClient,
    create_oauth_client,
)
from google_workspace_mcp.auth.token_storage import TokenStorage

__all__ = [
    "AuthorizationFlow",
    "AuthorizedClient",
    "ClientConfigError",
    "CredentialRecord",
    "FlowState",
    "OAuthClient",
    "SCOPES",
    "TokenStatus",
    "TokenStorage",
    "create_oauth_client",
    "get_authenticated_client",
]
