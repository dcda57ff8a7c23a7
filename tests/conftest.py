"""Shared pytest fixtures for google-workspace-mcp tests.

This module provides reusable fixtures for credential records, token
storage in a temporary directory, and OAuth client configuration.
"""

from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from google_workspace_mcp.auth.models import CredentialRecord
from google_workspace_mcp.auth.oauth_client import SCOPES
from google_workspace_mcp.auth.token_storage import TokenStorage

# =============================================================================
# Credential Fixtures
# =============================================================================


@pytest.fixture
def valid_record() -> CredentialRecord:
    """Create a valid, non-expired credential record."""
    return CredentialRecord(
        access_token="test_access_token_abc123",
        refresh_token="test_refresh_token_xyz789",
        expiry=datetime.now(timezone.utc) + timedelta(hours=1),
        scopes=list(SCOPES),
    )


@pytest.fixture
def expired_record() -> CredentialRecord:
    """Create an expired credential record with a refresh token."""
    return CredentialRecord(
        access_token="expired_access_token",
        refresh_token="test_refresh_token",
        expiry=datetime.now(timezone.utc) - timedelta(hours=1),
        scopes=list(SCOPES),
    )


# =============================================================================
# Token Storage Fixtures
# =============================================================================


@pytest.fixture
def temp_token_dir(tmp_path: Path) -> Path:
    """Directory for token storage tests (created on first save)."""
    return tmp_path / ".google-workspace-mcp"


@pytest.fixture
def temp_token_path(temp_token_dir: Path) -> Path:
    """Get the path for a temporary tokens.json file."""
    return temp_token_dir / "tokens.json"


@pytest.fixture
def token_storage(temp_token_path: Path) -> TokenStorage:
    """Create a TokenStorage instance with temporary storage."""
    return TokenStorage(token_path=temp_token_path)


# =============================================================================
# OAuth Client Configuration
# =============================================================================


@pytest.fixture
def client_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Configure the OAuth client ID and secret in the environment."""
    monkeypatch.setenv("GOOGLE_CLIENT_ID", "test-client-id.apps.googleusercontent.com")
    monkeypatch.setenv("GOOGLE_CLIENT_SECRET", "test-client-secret")  # pragma: allowlist secret


@pytest.fixture
def no_client_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Remove any OAuth client configuration from the environment."""
    monkeypatch.delenv("GOOGLE_CLIENT_ID", raising=False)
    monkeypatch.delenv("GOOGLE_CLIENT_SECRET", raising=False)


# =============================================================================
# CLI Test Fixtures
# =============================================================================


@pytest.fixture
def cli_runner():
    """Create a Click CLI test runner."""
    from click.testing import CliRunner

    return CliRunner()
