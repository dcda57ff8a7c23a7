"""Data models for OAuth credentials and authorization flows.

The credential record mirrors a Google token response. It is treated as an
open mapping: unknown keys returned by the provider are kept as extras so a
later save writes them back unchanged.
"""

from collections.abc import Iterable, Mapping
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class TokenStatus(str, Enum):
    """Status of the stored credentials."""

    VALID = "valid"
    EXPIRED = "expired"
    MISSING = "missing"
    INVALID = "invalid"


class FlowState(str, Enum):
    """Lifecycle states of an authorization flow."""

    IDLE = "idle"
    LISTENING = "listening"
    AWAITING_CALLBACK = "awaiting_callback"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    TIMED_OUT = "timed_out"
    CLOSED = "closed"


class CredentialRecord(BaseModel):
    """OAuth credentials as persisted in tokens.json.

    Attributes:
        access_token: Short-lived bearer token for API calls.
        refresh_token: Long-lived token, issued on the first consent only.
        token_type: Token type reported by the provider.
        expiry: When the access token expires (UTC).
        scopes: Scopes granted with the token.
    """

    model_config = ConfigDict(extra="allow")

    access_token: str = Field(..., min_length=1, description="OAuth access token")
    refresh_token: str | None = Field(default=None, description="OAuth refresh token")
    token_type: str = Field(default="Bearer", description="Token type")
    expiry: datetime | None = Field(default=None, description="Access token expiry (UTC)")
    scopes: list[str] = Field(default_factory=list, description="Granted OAuth scopes")

    @field_validator("expiry")
    @classmethod
    def _ensure_utc(cls, value: datetime | None) -> datetime | None:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    def merge(self, fields: Mapping[str, Any]) -> "CredentialRecord":
        """Return a new record with ``fields`` laid over this one.

        ``None`` values are skipped, so a refresh response without a
        refresh token keeps the one already stored.

        Args:
            fields: Newly issued token fields.

        Returns:
            The merged record.
        """
        merged = self.model_dump()
        merged.update({key: value for key, value in fields.items() if value is not None})
        return CredentialRecord.model_validate(merged)

    def is_expired(self, buffer_seconds: int = 60) -> bool:
        """Check whether the access token is expired or about to expire.

        Records without an expiry are never reported as expired.
        """
        if self.expiry is None:
            return False
        return datetime.now(timezone.utc) >= self.expiry - timedelta(seconds=buffer_seconds)

    def missing_scopes(self, required: Iterable[str]) -> list[str]:
        """List the scopes in ``required`` that this record was not granted."""
        granted = set(self.scopes)
        return [scope for scope in required if scope not in granted]
