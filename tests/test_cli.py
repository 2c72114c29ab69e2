"""Tests for the envsync command line with a mocked API."""

from datetime import datetime, timezone
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
from click.testing import CliRunner

from envsync import config
from envsync.api.client import EnvSyncAPI
from envsync.auth.credentials import CredentialsStore
from envsync.crypto.envelope import encrypt
from envsync.crypto.hashing import compute_hash
from envsync.errors import ApiError
from envsync.main import cli
from envsync.models import RemoteFile, RestoredVersion, VersionRecord


@pytest.fixture
def workspace(tmp_path: Path) -> Path:
    ws = tmp_path / "my-app"
    ws.mkdir()
    return ws


@pytest.fixture
def api():
    """EnvSyncAPI instance used by the CLI."""
    mock_api = MagicMock(spec=EnvSyncAPI)
    with patch("envsync.main.EnvSyncAPI", return_value=mock_api):
        yield mock_api


@pytest.fixture
def logged_in(memory_keyring) -> None:
    CredentialsStore().set_stored("test@example.com", "token-abc")


def _run(workspace: Path, *args: str, input: str = None):
    return CliRunner().invoke(cli, ["-w", str(workspace), *args], input=input)


def test_version() -> None:
    result = CliRunner().invoke(cli, ["--version"])
    assert result.exit_code == 0
    assert "envsync" in result.output


def test_config_shows_and_updates(workspace: Path) -> None:
    result = _run(workspace, "config", "--api-url", "https://self.example.com", "--auto-sync", "--pattern", ".env")
    assert result.exit_code == 0, result.output
    assert "api_url: https://self.example.com" in result.output
    assert "auto_sync: True" in result.output
    assert config.get_file_patterns() == [".env"]


def test_login_flow(workspace: Path, api, memory_keyring) -> None:
    api.verify_otp.return_value = {"access_token": "fresh", "email": "test@example.com"}
    result = _run(workspace, "login", "--email", "test@example.com", input="123456\n")

    assert result.exit_code == 0, result.output
    api.send_magic_link.assert_called_once_with("test@example.com")
    api.verify_otp.assert_called_once_with("test@example.com", "123456")
    assert CredentialsStore().get_stored() == ("test@example.com", "fresh")


def test_login_rejects_bad_email(workspace: Path, api, memory_keyring) -> None:
    result = _run(workspace, "login", "--email", "nope")
    assert result.exit_code != 0
    assert "valid email" in result.output
    api.send_magic_link.assert_not_called()


def test_commands_require_login(workspace: Path, api, memory_keyring) -> None:
    result = _run(workspace, "sync")
    assert result.exit_code != 0
    assert "login" in result.output


def test_link_with_argument(workspace: Path, api, logged_in) -> None:
    result = _run(workspace, "link", "alice/app")
    assert result.exit_code == 0, result.output
    assert config.read_project_id(workspace) == "alice/app"


def test_link_prompt_uses_suggestion(workspace: Path, api, logged_in) -> None:
    api.list_projects.return_value = []
    result = _run(workspace, "link", input="\n")
    assert result.exit_code == 0, result.output
    assert config.read_project_id(workspace) == "test/my-app"


def test_link_rejects_invalid_name(workspace: Path, api, logged_in) -> None:
    result = _run(workspace, "link", "bad name!")
    assert result.exit_code != 0
    assert config.read_project_id(workspace) is None


def test_sync_requires_link(workspace: Path, api, logged_in) -> None:
    (workspace / ".env").write_text("A=1\n", encoding="utf-8")
    result = _run(workspace, "sync", "--yes")
    assert result.exit_code != 0
    assert "not linked" in result.output


def test_sync_creates_remote_after_confirmation(workspace: Path, api, logged_in) -> None:
    config.write_project_id(workspace, "alice/app")
    (workspace / ".env").write_text("A=1\n", encoding="utf-8")
    api.get_file.return_value = None

    result = _run(workspace, "sync", input="y\n")
    assert result.exit_code == 0, result.output
    assert "not found in cloud" in result.output
    api.put_file.assert_called_once()
    assert api.put_file.call_args[0][3] == compute_hash("A=1\n")


def test_sync_declined_does_nothing(workspace: Path, api, logged_in) -> None:
    config.write_project_id(workspace, "alice/app")
    (workspace / ".env").write_text("A=1\n", encoding="utf-8")
    api.get_file.return_value = None

    result = _run(workspace, "sync", input="n\n")
    assert result.exit_code == 0, result.output
    api.put_file.assert_not_called()


def test_sync_failure_sets_exit_code(workspace: Path, api, logged_in) -> None:
    config.write_project_id(workspace, "alice/app")
    (workspace / ".env").write_text("A=1\n", encoding="utf-8")
    api.get_file.side_effect = OSError("disk")

    result = _run(workspace, "sync", "--yes")
    assert result.exit_code == 1
    assert "failed" in result.output


def test_pull_writes_file(workspace: Path, api, logged_in, session) -> None:
    config.write_project_id(workspace, "alice/app")
    (workspace / ".env").write_text("OLD=1\n", encoding="utf-8")
    api.get_file_content.return_value = RemoteFile(
        ".env", hash=compute_hash("NEW=1\n"), content=encrypt("NEW=1\n", session.passphrase())
    )

    result = _run(workspace, "pull", ".env")
    assert result.exit_code == 0, result.output
    assert (workspace / ".env").read_text(encoding="utf-8") == "NEW=1\n"


def test_history_lists_versions(workspace: Path, api, logged_in) -> None:
    config.write_project_id(workspace, "alice/app")
    (workspace / ".env").write_text("A=1\n", encoding="utf-8")
    api.get_file_history.return_value = [
        VersionRecord("current", datetime(2024, 1, 2, tzinfo=timezone.utc), True),
        VersionRecord("v1", datetime(2024, 1, 1, tzinfo=timezone.utc), False),
    ]

    result = _run(workspace, "history")
    assert result.exit_code == 0, result.output
    assert "current  2024-01-02 00:00:00 (current)" in result.output
    assert "v1  2024-01-01 00:00:00" in result.output


def test_restore_not_found(workspace: Path, api, logged_in) -> None:
    config.write_project_id(workspace, "alice/app")
    (workspace / ".env").write_text("A=1\n", encoding="utf-8")
    api.restore_version.return_value = RestoredVersion(success=False, content=None, hash=None)

    result = _run(workspace, "restore", ".env", "v9")
    assert result.exit_code != 0
    assert "Nothing to restore" in result.output
    assert (workspace / ".env").read_text(encoding="utf-8") == "A=1\n"


def test_watch_requires_auto_sync(workspace: Path, api, logged_in) -> None:
    result = _run(workspace, "watch")
    assert result.exit_code != 0
    assert "Auto-sync is disabled" in result.output


def test_push_rejected_token_clears_session(workspace: Path, api, logged_in) -> None:
    config.write_project_id(workspace, "alice/app")
    (workspace / ".env").write_text("A=1\n", encoding="utf-8")
    api.put_file.side_effect = ApiError("401 Unauthorized", status_code=401)

    result = _run(workspace, "push", ".env")
    assert result.exit_code != 0
    assert "Session expired" in result.output
    assert CredentialsStore().get_stored() is None


def test_sync_rejected_token_clears_session(workspace: Path, api, logged_in) -> None:
    config.write_project_id(workspace, "alice/app")
    (workspace / ".env").write_text("A=1\n", encoding="utf-8")
    api.get_file.side_effect = ApiError("401 Unauthorized", status_code=401)

    result = _run(workspace, "sync", "--yes")
    assert result.exit_code == 1
    assert "Session expired" in result.output
    assert CredentialsStore().get_stored() is None


def test_sync_reports_duplicate_names(workspace: Path, api, logged_in) -> None:
    config.write_project_id(workspace, "alice/app")
    for sub in ("a", "b"):
        (workspace / sub).mkdir()
        (workspace / sub / ".env").write_text("A=1\n", encoding="utf-8")

    result = _run(workspace, "sync", "--yes")
    assert result.exit_code == 1
    assert "DuplicateFileNameError" in result.output
    api.get_file.assert_not_called()
    api.put_file.assert_not_called()
