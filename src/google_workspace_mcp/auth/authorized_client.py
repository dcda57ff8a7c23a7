"""Authenticated HTTP client for Google Workspace APIs.

``get_authenticated_client`` combines the token storage and the OAuth client
factory: it loads the stored record, attaches it to google-auth credentials,
and subscribes to token renewals so every refresh is merged back into
tokens.json. API callers never deal with refresh themselves.
"""

import asyncio
import logging
from collections.abc import Callable
from datetime import timezone
from typing import Any

import httpx
from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials

from google_workspace_mcp.auth.oauth_client import create_oauth_client
from google_workspace_mcp.auth.token_storage import TokenStorage

logger = logging.getLogger(__name__)

TokenListener = Callable[[dict[str, Any]], None]


class AuthorizedClient:
    """HTTP client that signs requests with OAuth credentials.

    Refreshes the access token when it is expired and notifies registered
    listeners with the renewed token fields.

    Attributes:
        credentials: google-auth credentials used to sign requests.
    """

    def __init__(
        self,
        credentials: Credentials,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            credentials: Credentials carrying the stored tokens.
            http_client: Shared httpx client. A private one is created
                (and closed by ``aclose``) when not provided.
        """
        self.credentials = credentials
        self._listeners: list[TokenListener] = []
        self._owns_http_client = http_client is None
        self._http_client = http_client or httpx.AsyncClient(
            timeout=httpx.Timeout(30.0, connect=10.0),
        )
        self._refresh_lock = asyncio.Lock()

    def add_token_listener(self, listener: TokenListener) -> None:
        """Register a callback invoked with renewed token fields."""
        self._listeners.append(listener)

    def _refresh(self) -> dict[str, Any]:
        """Refresh the credentials (blocking) and return the new fields."""
        self.credentials.refresh(Request())

        fields: dict[str, Any] = {"access_token": self.credentials.token}
        if self.credentials.expiry is not None:
            fields["expiry"] = self.credentials.expiry.replace(tzinfo=timezone.utc)
        if self.credentials.refresh_token:
            fields["refresh_token"] = self.credentials.refresh_token
        if self.credentials.granted_scopes:
            fields["scopes"] = list(self.credentials.granted_scopes)
        return fields

    def _notify(self, fields: dict[str, Any]) -> None:
        for listener in self._listeners:
            listener(fields)

    async def get_access_token(self) -> str:
        """Get a valid access token, refreshing if necessary.

        Returns:
            Access token string.

        Raises:
            google.auth.exceptions.RefreshError: If the refresh is rejected.
        """
        async with self._refresh_lock:
            if not self.credentials.valid and self.credentials.refresh_token:
                logger.info("Access token expired, refreshing...")
                loop = asyncio.get_running_loop()
                fields = await loop.run_in_executor(None, self._refresh)
                await loop.run_in_executor(None, self._notify, fields)
        return str(self.credentials.token)

    async def request(
        self,
        method: str,
        url: str,
        params: dict[str, Any] | None = None,
        json_data: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Make an authenticated HTTP request to Google APIs.

        Args:
            method: HTTP method (GET, POST, etc.).
            url: Full URL to request.
            params: Optional query parameters.
            json_data: Optional JSON body data.

        Returns:
            JSON response as a dictionary (empty for bodiless responses).

        Raises:
            httpx.HTTPStatusError: If the request fails.
        """
        access_token = await self.get_access_token()

        response = await self._http_client.request(
            method=method,
            url=url,
            params=params,
            json=json_data,
            headers={
                "Authorization": f"Bearer {access_token}",
                "Accept": "application/json",
            },
        )
        response.raise_for_status()
        if not response.content:
            return {}
        result: dict[str, Any] = response.json()
        return result

    async def aclose(self) -> None:
        """Close the HTTP client if this instance created it."""
        if self._owns_http_client:
            await self._http_client.aclose()


def get_authenticated_client(
    storage: TokenStorage | None = None,
    http_client: httpx.AsyncClient | None = None,
) -> AuthorizedClient | None:
    """Build a client from the stored credentials.

    Args:
        storage: Token storage to read from and write refreshes to.
        http_client: Optional shared httpx client.

    Returns:
        AuthorizedClient, or None if no credentials are stored yet.

    Raises:
        ClientConfigError: If the OAuth client ID or secret is not configured.
    """
    storage = storage or TokenStorage()
    record = storage.load()
    if record is None:
        return None

    oauth_client = create_oauth_client()
    client = AuthorizedClient(oauth_client.credentials_for(record), http_client=http_client)

    def persist_tokens(fields: dict[str, Any]) -> None:
        storage.merge(fields)
        logger.info("Persisted refreshed credentials")

    client.add_token_listener(persist_tokens)
    return client
