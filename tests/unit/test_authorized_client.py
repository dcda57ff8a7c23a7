"""Unit tests for the authenticated client provider."""

from datetime import datetime, timedelta, timezone
from typing import Any
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from google_workspace_mcp.auth.authorized_client import (
    AuthorizedClient,
    get_authenticated_client,
)
from google_workspace_mcp.auth.models import CredentialRecord
from google_workspace_mcp.auth.oauth_client import ClientConfigError
from google_workspace_mcp.auth.token_storage import TokenStorage


def create_mock_http_client(json_data: Any = None, content: bytes = b"{}") -> MagicMock:
    """Create a mock httpx.AsyncClient returning a single response."""
    mock_response = MagicMock(spec=httpx.Response)
    mock_response.status_code = 200
    mock_response.content = content
    mock_response.json.return_value = json_data
    mock_response.raise_for_status = MagicMock()

    mock_client = MagicMock(spec=httpx.AsyncClient)
    mock_client.request = AsyncMock(return_value=mock_response)
    return mock_client


@pytest.mark.unit
class TestGetAuthenticatedClient:
    """Tests for get_authenticated_client()."""

    def test_should_return_none_without_stored_credentials(
        self, token_storage: TokenStorage
    ) -> None:
        assert get_authenticated_client(token_storage) is None

    def test_should_return_none_for_corrupt_file_without_config(
        self, token_storage: TokenStorage, no_client_env: None
    ) -> None:
        token_storage.token_path.parent.mkdir(parents=True)
        token_storage.token_path.write_text("{")

        assert get_authenticated_client(token_storage) is None

    def test_should_raise_when_client_not_configured(
        self, token_storage: TokenStorage, no_client_env: None
    ) -> None:
        token_storage.save(CredentialRecord(access_token="tok"))

        with pytest.raises(ClientConfigError):
            get_authenticated_client(token_storage)

    @pytest.mark.asyncio
    async def test_should_use_stored_access_token(
        self, token_storage: TokenStorage, client_env: None
    ) -> None:
        token_storage.save(CredentialRecord(access_token="tok"))

        client = get_authenticated_client(token_storage, http_client=create_mock_http_client())

        assert client is not None
        assert await client.get_access_token() == "tok"

    @pytest.mark.asyncio
    async def test_should_persist_refreshed_tokens(
        self,
        token_storage: TokenStorage,
        expired_record: CredentialRecord,
        client_env: None,
    ) -> None:
        """Verify a refresh is merged into the token file, keeping the refresh token."""
        token_storage.save(expired_record)
        client = get_authenticated_client(token_storage, http_client=create_mock_http_client())
        assert client is not None
        new_expiry = datetime.now(timezone.utc) + timedelta(hours=1)

        def fake_refresh(request: Any) -> None:
            client.credentials.token = "refreshed_access_token"
            client.credentials.expiry = new_expiry.replace(tzinfo=None)

        with patch.object(client.credentials, "refresh", side_effect=fake_refresh) as mock_refresh:
            token = await client.get_access_token()

        assert token == "refreshed_access_token"
        mock_refresh.assert_called_once()

        stored = token_storage.load()
        assert stored is not None
        assert stored.access_token == "refreshed_access_token"
        assert stored.refresh_token == expired_record.refresh_token
        assert stored.scopes == expired_record.scopes
        assert stored.expiry is not None
        assert abs((stored.expiry - new_expiry).total_seconds()) < 1

    @pytest.mark.asyncio
    async def test_should_not_refresh_valid_token(
        self,
        token_storage: TokenStorage,
        valid_record: CredentialRecord,
        client_env: None,
    ) -> None:
        token_storage.save(valid_record)
        client = get_authenticated_client(token_storage, http_client=create_mock_http_client())
        assert client is not None

        with patch.object(client.credentials, "refresh") as mock_refresh:
            token = await client.get_access_token()

        assert token == valid_record.access_token
        mock_refresh.assert_not_called()


@pytest.mark.unit
class TestAuthorizedClientRequest:
    """Tests for AuthorizedClient.request()."""

    def _credentials(self) -> MagicMock:
        creds = MagicMock()
        creds.token = "bearer_token"
        creds.valid = True
        return creds

    @pytest.mark.asyncio
    async def test_should_send_bearer_header(self) -> None:
        http_client = create_mock_http_client({"files": []}, content=b'{"files": []}')
        client = AuthorizedClient(self._credentials(), http_client=http_client)

        result = await client.request(
            "GET", "https://www.googleapis.com/drive/v3/files", params={"q": "x"}
        )

        assert result == {"files": []}
        kwargs = http_client.request.call_args.kwargs
        assert kwargs["method"] == "GET"
        assert kwargs["params"] == {"q": "x"}
        assert kwargs["headers"]["Authorization"] == "Bearer bearer_token"

    @pytest.mark.asyncio
    async def test_should_return_empty_dict_for_empty_body(self) -> None:
        http_client = create_mock_http_client(content=b"")
        client = AuthorizedClient(self._credentials(), http_client=http_client)

        assert await client.request("DELETE", "https://example.invalid/x") == {}

    @pytest.mark.asyncio
    async def test_should_raise_http_errors(self) -> None:
        http_client = create_mock_http_client()
        request = httpx.Request("GET", "https://example.invalid/x")
        error = httpx.HTTPStatusError(
            "403 Forbidden", request=request, response=httpx.Response(403, request=request)
        )
        http_client.request.return_value.raise_for_status.side_effect = error
        client = AuthorizedClient(self._credentials(), http_client=http_client)

        with pytest.raises(httpx.HTTPStatusError):
            await client.request("GET", "https://example.invalid/x")

    @pytest.mark.asyncio
    async def test_should_not_close_shared_http_client(self) -> None:
        http_client = create_mock_http_client()
        http_client.aclose = AsyncMock()
        client = AuthorizedClient(self._credentials(), http_client=http_client)

        await client.aclose()

        http_client.aclose.assert_not_called()

    def test_should_notify_listeners(self) -> None:
        client = AuthorizedClient(self._credentials(), http_client=create_mock_http_client())
        received: list[dict[str, Any]] = []
        client.add_token_listener(received.append)

        client._notify({"access_token": "x"})

        assert received == [{"access_token": "x"}]
