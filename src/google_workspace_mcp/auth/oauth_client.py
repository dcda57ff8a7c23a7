"""OAuth client factory for Google Workspace authentication.

This module builds OAuth2 clients from the process configuration using
google-auth-oauthlib. A client generates consent URLs, exchanges
authorization codes, and turns stored records into google-auth
credentials that can refresh themselves.

Environment Variables:
    GOOGLE_CLIENT_ID: Google OAuth client ID (required)
    GOOGLE_CLIENT_SECRET: Google OAuth client secret (required)
"""

import os
from datetime import datetime, timezone
from typing import Any

from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import Flow

from google_workspace_mcp.auth.models import CredentialRecord

# Broad scopes are required because drive_list and drive_search need access
# to all user files, not just files created by this app. New scopes are only
# appended; tokens granted before an addition must be re-authorized manually.
SCOPES = [
    "https://www.googleapis.com/auth/documents",
    "https://www.googleapis.com/auth/spreadsheets",
    "https://www.googleapis.com/auth/drive",
    "https://www.googleapis.com/auth/calendar",
]

CLIENT_ID_ENV = "GOOGLE_CLIENT_ID"
CLIENT_SECRET_ENV = "GOOGLE_CLIENT_SECRET"  # nosec B105 - env var name, not a secret

AUTH_URI = "https://accounts.google.com/o/oauth2/auth"
TOKEN_URI = "https://oauth2.googleapis.com/token"  # nosec B105 - public endpoint

# Google may grant a subset of the requested scopes; oauthlib raises unless relaxed.
os.environ.setdefault("OAUTHLIB_RELAX_TOKEN_SCOPE", "1")


class ClientConfigError(ValueError):
    """Raised when the OAuth client ID or secret is not configured."""


class OAuthClient:
    """OAuth2 client for the Google authorization-code flow.

    Attributes:
        client_id: Google OAuth client ID.
        client_secret: Google OAuth client secret.
        redirect_uri: Redirect URI for the interactive flow, if any.
        scopes: Scopes requested at consent time.
    """

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        redirect_uri: str | None = None,
        scopes: list[str] | None = None,
    ) -> None:
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri
        self.scopes = list(scopes or SCOPES)
        self._flow: Flow | None = None

    @property
    def client_config(self) -> dict[str, Any]:
        """Client configuration in Google's client-secrets format."""
        web: dict[str, Any] = {
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "auth_uri": AUTH_URI,
            "token_uri": TOKEN_URI,
        }
        if self.redirect_uri:
            web["redirect_uris"] = [self.redirect_uri]
        return {"web": web}

    @property
    def flow(self) -> Flow:
        """Flow used for both the consent URL and the code exchange.

        The same instance must serve both steps since it carries the
        PKCE code verifier.
        """
        if self._flow is None:
            self._flow = Flow.from_client_config(
                self.client_config,
                scopes=self.scopes,
                redirect_uri=self.redirect_uri,
            )
        return self._flow

    def authorization_url(self, state: str) -> str:
        """Build the consent URL.

        Requests offline access so a refresh token is issued, and forces the
        consent screen so re-requested scopes are always granted again.

        Args:
            state: Anti-forgery token echoed back on the callback.

        Returns:
            URL to open in the user's browser.
        """
        url, _ = self.flow.authorization_url(
            access_type="offline",
            prompt="consent",
            state=state,
        )
        return url

    def exchange_code(self, code: str) -> CredentialRecord:
        """Exchange an authorization code for tokens (blocking).

        Args:
            code: Authorization code from the callback request.

        Returns:
            CredentialRecord built from the token response.
        """
        token = self.flow.fetch_token(code=code)
        return token_response_to_record(token, self.scopes)

    def credentials_for(self, record: CredentialRecord) -> Credentials:
        """Convert a stored record to google-auth credentials.

        Args:
            record: Stored credential record.

        Returns:
            Credentials able to refresh themselves against the token endpoint.
        """
        expiry = None
        if record.expiry is not None:
            # google-auth compares against naive UTC datetimes
            expiry = record.expiry.astimezone(timezone.utc).replace(tzinfo=None)

        return Credentials(  # nosec B106 - token_uri is public Google OAuth endpoint
            token=record.access_token,
            refresh_token=record.refresh_token,
            token_uri=TOKEN_URI,
            client_id=self.client_id,
            client_secret=self.client_secret,
            scopes=record.scopes or None,
            expiry=expiry,
        )


def token_response_to_record(token: dict[str, Any], requested_scopes: list[str]) -> CredentialRecord:
    """Convert an oauthlib token response to a CredentialRecord.

    Args:
        token: Token dictionary returned by the token endpoint.
        requested_scopes: Scopes to record when the response omits them.

    Returns:
        CredentialRecord with expiry as an absolute UTC timestamp.
    """
    scope = token.get("scope")
    if isinstance(scope, str):
        scopes = scope.split()
    elif scope:
        scopes = list(scope)
    else:
        scopes = list(requested_scopes)

    expiry = None
    if token.get("expires_at"):
        expiry = datetime.fromtimestamp(float(token["expires_at"]), tz=timezone.utc)

    return CredentialRecord(  # nosec B106 - "Bearer" is OAuth token type, not a password
        access_token=token["access_token"],
        refresh_token=token.get("refresh_token"),
        token_type=token.get("token_type") or "Bearer",
        expiry=expiry,
        scopes=scopes,
    )


def load_client_secrets() -> tuple[str, str]:
    """Read the OAuth client ID and secret from the environment.

    Returns:
        Tuple of (client_id, client_secret).

    Raises:
        ClientConfigError: If either variable is missing or empty.
    """
    client_id = os.environ.get(CLIENT_ID_ENV)
    client_secret = os.environ.get(CLIENT_SECRET_ENV)
    if not client_id or not client_secret:
        raise ClientConfigError(
            f"{CLIENT_ID_ENV} and {CLIENT_SECRET_ENV} env vars are required. "
            "Create OAuth credentials in the Google Cloud console and export both."
        )
    return client_id, client_secret


def create_oauth_client(redirect_uri: str | None = None) -> OAuthClient:
    """Create an OAuth client configured from the environment.

    No network I/O happens here.

    Args:
        redirect_uri: Redirect URI for the interactive flow. Not needed for
            authenticated API calls.

    Returns:
        Configured OAuthClient.

    Raises:
        ClientConfigError: If the client ID or secret is not configured.
    """
    client_id, client_secret = load_client_secrets()
    return OAuthClient(client_id, client_secret, redirect_uri=redirect_uri)
