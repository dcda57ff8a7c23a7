"""OAuth token storage for Google Workspace MCP.

This module persists a single credential record as JSON. Reads are
forgiving: a missing, empty or corrupted file is reported as "no stored
credentials" so the user is sent back through authorization. Writes are
strict: any failure propagates, because a silently lost token would leave
the user believing they are authorized.

Storage Location: ~/.google-workspace-mcp/tokens.json

Deleting the file is the supported way to force re-authorization, for
example after new scopes are added to the scope set.
"""

import logging
import os
import tempfile
import threading
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from google_workspace_mcp.auth.models import CredentialRecord, TokenStatus

logger = logging.getLogger(__name__)

# Default credentials directory
CREDENTIALS_DIR = Path.home() / ".google-workspace-mcp"
TOKEN_FILE = CREDENTIALS_DIR / "tokens.json"


class TokenStorage:
    """JSON file storage for the OAuth credential record.

    Attributes:
        token_path: Path to the tokens.json file.

    Example:
        ```python
        storage = TokenStorage()

        storage.save(CredentialRecord(access_token="abc", refresh_token="xyz"))

        record = storage.load()
        if record:
            print(f"Token expires at: {record.expiry}")
        ```
    """

    def __init__(self, token_path: Path | None = None) -> None:
        """Initialize token storage.

        Args:
            token_path: Custom path for tokens.json.
                If not provided, uses ~/.google-workspace-mcp/tokens.json.
        """
        self.token_path = token_path or TOKEN_FILE
        self._lock = threading.Lock()

    @property
    def credentials_dir(self) -> Path:
        """Directory holding the token file."""
        return self.token_path.parent

    def _ensure_credentials_dir(self) -> None:
        """Create credentials directory with secure permissions if needed."""
        creds_dir = self.credentials_dir
        if not creds_dir.exists():
            creds_dir.mkdir(parents=True, mode=0o700)
        else:
            # Ensure directory has correct permissions
            creds_dir.chmod(0o700)

    def load(self) -> CredentialRecord | None:
        """Load the stored credential record.

        Returns:
            The stored record, or None if the file is missing or unreadable.
        """
        try:
            data = self.token_path.read_bytes()
        except FileNotFoundError:
            return None
        except OSError as e:
            logger.warning(f"Could not read token file {self.token_path}: {e}")
            return None

        try:
            return CredentialRecord.model_validate_json(data)
        except (ValidationError, ValueError):
            logger.warning(f"Ignoring unparseable token file {self.token_path}")
            return None

    def save(self, record: CredentialRecord) -> None:
        """Persist a credential record, replacing any previous one.

        The record is written to a temporary file (mode 600) next to the
        token file and then moved into place, so a failed write leaves the
        previous file intact.

        Args:
            record: Credential record to store.

        Raises:
            OSError: If the directory or file cannot be written.
        """
        self._ensure_credentials_dir()

        payload = record.model_dump_json(indent=2, exclude_none=True)
        fd, tmp_name = tempfile.mkstemp(
            dir=self.credentials_dir, prefix=".tokens-", suffix=".tmp"
        )
        try:
            # mkstemp already creates the file with owner-only permissions
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(payload)
            os.replace(tmp_name, self.token_path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

        self.token_path.chmod(0o600)
        logger.debug(f"Saved credentials to {self.token_path}")

    def merge(self, fields: Mapping[str, Any]) -> CredentialRecord:
        """Merge newly issued token fields into the stored record.

        The current on-disk record is reloaded first so concurrent refreshes
        each build on the latest file; the last writer wins.

        Args:
            fields: Token fields from a refresh (None values are ignored).

        Returns:
            The record that was written.

        Raises:
            OSError: If the merged record cannot be written.
            pydantic.ValidationError: If nothing is stored and ``fields``
                is not a complete record on its own.
        """
        with self._lock:
            existing = self.load()
            if existing is None:
                record = CredentialRecord.model_validate(
                    {key: value for key, value in fields.items() if value is not None}
                )
            else:
                record = existing.merge(fields)
            self.save(record)
            return record

    def get_status(self) -> TokenStatus:
        """Get the status of the stored credentials.

        Returns:
            TokenStatus indicating the record's current state.
        """
        record = self.load()

        if record is None:
            if self.token_path.exists():
                # File exists but couldn't be parsed
                return TokenStatus.INVALID
            return TokenStatus.MISSING

        if record.is_expired():
            return TokenStatus.EXPIRED

        return TokenStatus.VALID
