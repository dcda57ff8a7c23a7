"""Unit tests for credential and flow models."""

from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from google_workspace_mcp.auth.models import CredentialRecord, FlowState, TokenStatus


@pytest.mark.unit
class TestCredentialRecord:
    """Tests for CredentialRecord model."""

    def test_should_require_access_token(self) -> None:
        """Verify an empty access token is rejected."""
        with pytest.raises(ValidationError):
            CredentialRecord(access_token="")

    def test_should_default_token_type_and_scopes(self) -> None:
        record = CredentialRecord(access_token="abc")

        assert record.token_type == "Bearer"
        assert record.scopes == []
        assert record.refresh_token is None
        assert record.expiry is None

    def test_should_treat_naive_expiry_as_utc(self) -> None:
        """Verify naive datetimes are interpreted as UTC."""
        record = CredentialRecord(access_token="abc", expiry=datetime(2025, 1, 1, 12, 0))

        assert record.expiry == datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)

    def test_should_keep_unknown_provider_fields(self) -> None:
        """Verify extra keys survive a dump/validate cycle."""
        record = CredentialRecord.model_validate({"access_token": "abc", "id_token": "jwt"})

        assert record.model_dump()["id_token"] == "jwt"

    def test_should_report_expired_within_buffer(self) -> None:
        record = CredentialRecord(
            access_token="abc",
            expiry=datetime.now(timezone.utc) + timedelta(seconds=30),
        )

        assert record.is_expired() is True
        assert record.is_expired(buffer_seconds=0) is False

    def test_should_not_report_expired_without_expiry(self) -> None:
        assert CredentialRecord(access_token="abc").is_expired() is False

    def test_should_list_missing_scopes_in_order(self) -> None:
        record = CredentialRecord(access_token="abc", scopes=["b"])

        assert record.missing_scopes(["a", "b", "c"]) == ["a", "c"]


@pytest.mark.unit
class TestCredentialRecordMerge:
    """Tests for CredentialRecord.merge()."""

    def test_should_keep_refresh_token_when_absent_from_fields(self) -> None:
        """Verify a refresh response without refresh_token keeps the stored one."""
        record = CredentialRecord(access_token="old", refresh_token="r")

        merged = record.merge({"access_token": "new"})

        assert merged.access_token == "new"
        assert merged.refresh_token == "r"

    def test_should_ignore_none_values(self) -> None:
        record = CredentialRecord(access_token="old", refresh_token="r")

        merged = record.merge({"access_token": "new", "refresh_token": None})

        assert merged.refresh_token == "r"

    def test_should_not_mutate_original(self) -> None:
        record = CredentialRecord(access_token="old")

        record.merge({"access_token": "new"})

        assert record.access_token == "old"


@pytest.mark.unit
class TestEnums:
    """Tests for status enums."""

    def test_token_status_values(self) -> None:
        assert TokenStatus.VALID.value == "valid"
        assert TokenStatus("missing") is TokenStatus.MISSING

    def test_flow_state_values(self) -> None:
        assert FlowState.AWAITING_CALLBACK.value == "awaiting_callback"
        assert FlowState("timed_out") is FlowState.TIMED_OUT
