"""Workspace files: discovery by pattern, backups before overwrite, project id helpers."""

import json
import logging
import re
import shutil
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Optional, Union

log = logging.getLogger(__name__)

BACKUP_MARKER = ".backup-"

# Directories never searched for env files
SKIP_DIRS: frozenset[str] = frozenset({".git", "node_modules", ".venv", "__pycache__"})

_PROJECT_ID_RE = re.compile(r"^[a-zA-Z0-9][a-zA-Z0-9/_-]*$")


@dataclass(frozen=True)
class LocalFile:
    """A synced file as read from disk."""

    path: Path
    content: bytes
    mtime_millis: int

    @property
    def file_name(self) -> str:
        return self.path.name


def read_local_file(path: Path) -> LocalFile:
    """Read bytes and mtime (ms). Raises OSError if the file is gone."""
    stat_result = path.stat()
    return LocalFile(
        path=path,
        content=path.read_bytes(),
        mtime_millis=stat_result.st_mtime_ns // 1_000_000,
    )


def is_backup_path(path_str: str) -> bool:
    """True for backup copies written before an overwrite (<name>.backup-<millis>)."""
    name = path_str.replace("\\", "/").rsplit("/", 1)[-1]
    return BACKUP_MARKER in name


def backup_path_for(path: Path, now_millis: Optional[int] = None) -> Path:
    """Sibling path tagged with the creation time in epoch milliseconds."""
    stamp = now_millis if now_millis is not None else int(time.time() * 1000)
    return path.with_name(f"{path.name}{BACKUP_MARKER}{stamp}")


def write_with_backup(path: Path, content: Union[str, bytes]) -> Optional[Path]:
    """
    Copy the current file to a timestamped backup (never rename), then overwrite it.
    Bytes are written as they are; str is UTF-8 encoded.
    Returns the backup path, or None when there was nothing to back up.
    """
    backup: Optional[Path] = None
    if path.exists():
        backup = backup_path_for(path)
        shutil.copy2(path, backup)
        log.info("Backed up %s to %s", path.name, backup.name)
    path.parent.mkdir(parents=True, exist_ok=True)
    if isinstance(content, str):
        content = content.encode("utf-8")
    path.write_bytes(content)
    return backup


def _pattern_regex(pattern: str) -> "re.Pattern[str]":
    return re.compile("^" + re.escape(pattern).replace(r"\*", ".*") + "$")


def matches_patterns(rel_path: str, patterns: Iterable[str]) -> bool:
    """
    True if the file matches any pattern. Patterns without '/' match the file
    name; patterns with '/' match the end of the workspace-relative path.
    """
    normalized = rel_path.replace("\\", "/")
    name = normalized.rsplit("/", 1)[-1]
    for pattern in patterns:
        if "/" in pattern:
            parts = normalized.split("/")
            depth = pattern.count("/") + 1
            target = "/".join(parts[-depth:])
        else:
            target = name
        if "*" in pattern:
            if _pattern_regex(pattern).match(target):
                return True
        elif pattern == target:
            return True
    return False


def is_synced_path(rel_path: str, patterns: Iterable[str]) -> bool:
    """Whether envsync manages a workspace-relative path: a non-backup pattern match outside SKIP_DIRS."""
    normalized = rel_path.replace("\\", "/")
    parts = normalized.split("/")
    if any(part in SKIP_DIRS for part in parts[:-1]):
        return False
    return not is_backup_path(normalized) and matches_patterns(normalized, patterns)


def find_env_files(root: Path, patterns: Iterable[str]) -> List[Path]:
    """Files under root matching the patterns, backups excluded, sorted by path."""
    patterns = list(patterns)
    out: List[Path] = []
    try:
        for f in root.rglob("*"):
            try:
                rel = f.relative_to(root)
            except ValueError:
                continue
            if not is_synced_path(str(rel), patterns):
                continue
            try:
                if f.is_file():
                    out.append(f)
            except OSError:
                continue
    except OSError as e:
        log.warning("Could not scan %s: %s", root, e)
    return sorted(out)


def is_valid_project_id(value: str) -> bool:
    """At least 2 characters: letters, digits, '-', '_' and '/', not starting with a symbol."""
    return len(value) >= 2 and bool(_PROJECT_ID_RE.match(value))


def _package_json_name(root: Path) -> Optional[str]:
    package_json = root / "package.json"
    if not package_json.exists():
        return None
    try:
        name = json.loads(package_json.read_text(encoding="utf-8")).get("name")
    except (json.JSONDecodeError, OSError, AttributeError):
        return None
    return name if isinstance(name, str) and name.strip() else None


def suggest_project_id(username: str, root: Path) -> str:
    """Suggested id "<username>/<project>", project name from package.json or the folder name."""
    project_name = _package_json_name(root) or root.resolve().name
    sanitized = re.sub(r"[^a-z0-9-]", "-", project_name.lower())
    sanitized = re.sub(r"-+", "-", sanitized)
    return f"{username}/{sanitized}"
