"""Tests for workspace file helpers."""

import json
from pathlib import Path

import pytest

from envsync import files
from envsync.config import DEFAULT_FILE_PATTERNS


def test_read_local_file(tmp_path: Path) -> None:
    path = tmp_path / ".env"
    path.write_bytes(b"A=1\n")
    local = files.read_local_file(path)
    assert local.file_name == ".env"
    assert local.content == b"A=1\n"
    assert local.mtime_millis == path.stat().st_mtime_ns // 1_000_000


def test_read_missing_file_raises(tmp_path: Path) -> None:
    with pytest.raises(OSError):
        files.read_local_file(tmp_path / "missing")


@pytest.mark.parametrize(
    "path_str, expected",
    [
        (".env.backup-1700000000000", True),
        ("/w/sub/.env.backup-1", True),
        ("C:\\w\\.env.backup-1", True),
        (".env", False),
        ("/w/.backup-dir/.env", False),
    ],
)
def test_is_backup_path(path_str: str, expected: bool) -> None:
    assert files.is_backup_path(path_str) is expected


def test_backup_path_for() -> None:
    assert files.backup_path_for(Path("/w/.env"), 1234) == Path("/w/.env.backup-1234")


def test_write_with_backup_copies_old_content(tmp_path: Path) -> None:
    path = tmp_path / ".env"
    path.write_text("OLD\n", encoding="utf-8")
    backup = files.write_with_backup(path, "NEW\n")
    assert backup is not None and files.is_backup_path(str(backup))
    assert backup.read_text(encoding="utf-8") == "OLD\n"
    assert path.read_text(encoding="utf-8") == "NEW\n"


def test_write_with_backup_new_file(tmp_path: Path) -> None:
    path = tmp_path / "config" / "dev.exs"
    assert files.write_with_backup(path, "x") is None
    assert path.read_text(encoding="utf-8") == "x"


@pytest.mark.parametrize(
    "rel_path, expected",
    [
        (".env", True),
        ("sub/.env.local", True),
        ("application-dev.yml", True),
        ("appsettings.Production.json", True),
        ("config/dev.exs", True),
        ("app/config/prod.exs", True),
        ("dev.exs", False),
        (".env.production", False),
        ("README.md", False),
    ],
)
def test_matches_default_patterns(rel_path: str, expected: bool) -> None:
    assert files.matches_patterns(rel_path, DEFAULT_FILE_PATTERNS) is expected


def test_find_env_files(tmp_path: Path) -> None:
    (tmp_path / ".env").write_text("A=1")
    (tmp_path / ".env.backup-123").write_text("A=0")
    (tmp_path / "README.md").write_text("hi")
    (tmp_path / "svc").mkdir()
    (tmp_path / "svc" / ".env.local").write_text("B=1")
    (tmp_path / "node_modules" / "pkg").mkdir(parents=True)
    (tmp_path / "node_modules" / "pkg" / ".env").write_text("C=1")

    found = files.find_env_files(tmp_path, DEFAULT_FILE_PATTERNS)
    assert found == [tmp_path / ".env", tmp_path / "svc" / ".env.local"]


@pytest.mark.parametrize(
    "value, expected",
    [("alice/app", True), ("my-project_1", True), ("a", False), ("/app", False), ("bad id", False), ("", False)],
)
def test_is_valid_project_id(value: str, expected: bool) -> None:
    assert files.is_valid_project_id(value) is expected


def test_suggest_project_id_from_package_json(tmp_path: Path) -> None:
    (tmp_path / "package.json").write_text(json.dumps({"name": "@Acme/Web App"}), encoding="utf-8")
    assert files.suggest_project_id("alice", tmp_path) == "alice/-acme-web-app"


def test_suggest_project_id_from_folder(tmp_path: Path) -> None:
    workspace = tmp_path / "My_Service"
    workspace.mkdir()
    assert files.suggest_project_id("alice", workspace) == "alice/my-service"


def test_write_with_backup_keeps_bytes_as_is(tmp_path: Path) -> None:
    path = tmp_path / "application.properties"
    content = "greeting=Grüße\n".encode("latin-1")
    files.write_with_backup(path, content)
    assert path.read_bytes() == content


@pytest.mark.parametrize(
    "rel_path, expected",
    [
        (".env", True),
        ("svc/.env.local", True),
        ("node_modules/pkg/.env", False),
        (".git/.env", False),
        ("svc\\.venv\\.env", False),
        ("svc/.env.backup-1700000000000", False),
        ("svc/notes.txt", False),
    ],
)
def test_is_synced_path(rel_path: str, expected: bool) -> None:
    assert files.is_synced_path(rel_path, DEFAULT_FILE_PATTERNS) is expected
