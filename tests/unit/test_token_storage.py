"""Unit tests for TokenStorage class.

Tests cover persistence, forgiving reads, secure permissions, and the
reload-merge-save path used after token refresh.
"""

import json
import os
from pathlib import Path
from unittest.mock import patch

import pytest

from google_workspace_mcp.auth.models import CredentialRecord, TokenStatus
from google_workspace_mcp.auth.token_storage import TokenStorage


@pytest.mark.unit
class TestTokenStorageInit:
    """Tests for TokenStorage initialization."""

    def test_should_create_storage_with_default_path(self) -> None:
        """Verify storage uses default path when none provided."""
        storage = TokenStorage()

        assert storage.token_path.name == "tokens.json"
        assert storage.token_path.parent.name == ".google-workspace-mcp"

    def test_should_create_storage_with_custom_path(self, temp_token_path: Path) -> None:
        storage = TokenStorage(token_path=temp_token_path)

        assert storage.token_path == temp_token_path
        assert storage.credentials_dir == temp_token_path.parent

    def test_should_not_touch_disk_on_construction(self, temp_token_path: Path) -> None:
        TokenStorage(token_path=temp_token_path)

        assert not temp_token_path.parent.exists()


@pytest.mark.unit
class TestTokenStorageLoad:
    """Tests for TokenStorage.load()."""

    def test_should_return_none_when_file_missing(self, token_storage: TokenStorage) -> None:
        assert token_storage.load() is None

    def test_should_return_none_for_empty_file(self, token_storage: TokenStorage) -> None:
        token_storage.token_path.parent.mkdir(parents=True)
        token_storage.token_path.write_text("")

        assert token_storage.load() is None

    def test_should_return_none_for_invalid_json(self, token_storage: TokenStorage) -> None:
        token_storage.token_path.parent.mkdir(parents=True)
        token_storage.token_path.write_text("{not json")

        assert token_storage.load() is None

    def test_should_return_none_for_invalid_utf8(self, token_storage: TokenStorage) -> None:
        token_storage.token_path.parent.mkdir(parents=True)
        token_storage.token_path.write_bytes(b"\xff\xfe\x00garbage")

        assert token_storage.load() is None
        assert token_storage.get_status() == TokenStatus.INVALID

    def test_should_return_none_when_access_token_missing(
        self, token_storage: TokenStorage
    ) -> None:
        token_storage.token_path.parent.mkdir(parents=True)
        token_storage.token_path.write_text(json.dumps({"refresh_token": "r"}))

        assert token_storage.load() is None

    def test_should_return_none_when_path_is_directory(
        self, token_storage: TokenStorage
    ) -> None:
        token_storage.token_path.mkdir(parents=True)

        assert token_storage.load() is None


@pytest.mark.unit
class TestTokenStorageSave:
    """Tests for TokenStorage.save()."""

    def test_should_round_trip_record(
        self, token_storage: TokenStorage, valid_record: CredentialRecord
    ) -> None:
        """Verify save then load returns an equal record."""
        token_storage.save(valid_record)

        assert token_storage.load() == valid_record

    def test_should_write_json_without_null_fields(self, token_storage: TokenStorage) -> None:
        token_storage.save(CredentialRecord(access_token="a"))

        data = json.loads(token_storage.token_path.read_text())
        assert data["access_token"] == "a"
        assert "refresh_token" not in data
        assert "expiry" not in data

    def test_should_set_secure_permissions(
        self, token_storage: TokenStorage, valid_record: CredentialRecord
    ) -> None:
        token_storage.save(valid_record)

        assert token_storage.token_path.stat().st_mode & 0o777 == 0o600
        assert token_storage.credentials_dir.stat().st_mode & 0o777 == 0o700

    def test_should_fix_directory_permissions(self, tmp_path: Path) -> None:
        """Verify save corrects insecure directory permissions."""
        creds_dir = tmp_path / "creds"
        creds_dir.mkdir(mode=0o755)
        storage = TokenStorage(token_path=creds_dir / "tokens.json")

        storage.save(CredentialRecord(access_token="a"))

        assert creds_dir.stat().st_mode & 0o777 == 0o700

    def test_should_replace_previous_record(self, token_storage: TokenStorage) -> None:
        token_storage.save(CredentialRecord(access_token="first"))
        token_storage.save(CredentialRecord(access_token="second"))

        record = token_storage.load()
        assert record is not None
        assert record.access_token == "second"

    def test_should_propagate_write_error_and_keep_old_file(
        self, token_storage: TokenStorage
    ) -> None:
        """Verify a failed write raises and leaves the previous file intact."""
        token_storage.save(CredentialRecord(access_token="first"))

        with patch("os.replace", side_effect=OSError("disk full")):
            with pytest.raises(OSError, match="disk full"):
                token_storage.save(CredentialRecord(access_token="second"))

        record = token_storage.load()
        assert record is not None
        assert record.access_token == "first"
        leftovers = [p for p in os.listdir(token_storage.credentials_dir) if p.endswith(".tmp")]
        assert leftovers == []


@pytest.mark.unit
class TestTokenStorageMerge:
    """Tests for TokenStorage.merge()."""

    def test_should_keep_refresh_token_and_update_access_token(
        self, token_storage: TokenStorage
    ) -> None:
        token_storage.save(CredentialRecord(access_token="a", refresh_token="r"))

        token_storage.merge({"access_token": "b"})

        record = token_storage.load()
        assert record is not None
        assert record.access_token == "b"
        assert record.refresh_token == "r"

    def test_should_add_refresh_token_to_record_without_one(
        self, token_storage: TokenStorage
    ) -> None:
        token_storage.save(CredentialRecord(access_token="a"))

        merged = token_storage.merge({"access_token": "b", "refresh_token": "r"})

        assert merged.access_token == "b"
        assert merged.refresh_token == "r"
        assert token_storage.load() == merged

    def test_should_store_fields_when_nothing_saved(self, token_storage: TokenStorage) -> None:
        token_storage.merge({"access_token": "fresh", "refresh_token": None})

        record = token_storage.load()
        assert record is not None
        assert record.access_token == "fresh"
        assert record.refresh_token is None

    def test_should_preserve_extra_fields(self, token_storage: TokenStorage) -> None:
        token_storage.save(CredentialRecord.model_validate({"access_token": "a", "id_token": "j"}))

        token_storage.merge({"access_token": "b"})

        data = json.loads(token_storage.token_path.read_text())
        assert data["id_token"] == "j"
        assert data["access_token"] == "b"


@pytest.mark.unit
class TestTokenStorageStatus:
    """Tests for TokenStorage.get_status()."""

    def test_should_return_missing(self, token_storage: TokenStorage) -> None:
        assert token_storage.get_status() == TokenStatus.MISSING

    def test_should_return_invalid_for_corrupt_file(self, token_storage: TokenStorage) -> None:
        token_storage.token_path.parent.mkdir(parents=True)
        token_storage.token_path.write_text("garbage")

        assert token_storage.get_status() == TokenStatus.INVALID

    def test_should_return_valid(
        self, token_storage: TokenStorage, valid_record: CredentialRecord
    ) -> None:
        token_storage.save(valid_record)

        assert token_storage.get_status() == TokenStatus.VALID

    def test_should_return_expired(
        self, token_storage: TokenStorage, expired_record: CredentialRecord
    ) -> None:
        token_storage.save(expired_record)

        assert token_storage.get_status() == TokenStatus.EXPIRED
