"""Client configuration: API URL, file patterns, auto-sync flag, workspace project link."""

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

log = logging.getLogger(__name__)

DEFAULT_API_URL = "https://bryhohgvcdntkgakggzb.supabase.co/functions/v1"

DEFAULT_FILE_PATTERNS: List[str] = [
    ".env",
    ".env.local",
    ".env.development",
    ".envrc",
    "application.properties",
    "application.yml",
    "application.yaml",
    "application-*.properties",
    "application-*.yml",
    "application-*.yaml",
    "appsettings.json",
    "appsettings.*.json",
    "config/*.exs",
]

# Per-workspace file linking a folder to a remote project: {"projectId": "..."}
PROJECT_CONFIG_FILE = ".envsync.json"


def _config_dir() -> Path:
    """Platform-specific config directory (ENVSYNC_CONFIG_DIR overrides)."""
    override = os.environ.get("ENVSYNC_CONFIG_DIR", "").strip()
    if override:
        return Path(override)
    if os.name == "nt":
        base = os.environ.get("APPDATA", os.path.expanduser("~"))
        return Path(base) / "EnvSync"
    if os.environ.get("XDG_CONFIG_HOME"):
        return Path(os.environ["XDG_CONFIG_HOME"]) / "envsync"
    return Path.home() / ".config" / "envsync"


def get_config_path() -> Path:
    """Path to the user config file (config.json)."""
    d = _config_dir()
    d.mkdir(parents=True, exist_ok=True)
    return d / "config.json"


def get_log_path() -> Path:
    """Path to the client log file."""
    return get_config_path().parent / "envsync.log"


def _load() -> Dict[str, Any]:
    path = get_config_path()
    if not path.exists():
        return {}
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, OSError) as e:
        log.warning("Ignoring unreadable config %s: %s", path, e)
        return {}
    return data if isinstance(data, dict) else {}


def _update(key: str, value: Any) -> None:
    data = _load()
    data[key] = value
    get_config_path().write_text(json.dumps(data, indent=2), encoding="utf-8")


def get_api_url() -> str:
    """Service base URL. ENVSYNC_API_URL wins over the config file."""
    override = os.environ.get("ENVSYNC_API_URL", "").strip()
    if override:
        return override.rstrip("/")
    url = (_load().get("api_url") or "").strip()
    return (url or DEFAULT_API_URL).rstrip("/")


def set_api_url(url: str) -> None:
    """Persist the service base URL."""
    _update("api_url", (url or "").strip())


def get_file_patterns() -> List[str]:
    """File-name patterns that select synced files; '*' matches any run of characters."""
    patterns = _load().get("file_patterns")
    if isinstance(patterns, list) and all(isinstance(p, str) for p in patterns) and patterns:
        return list(patterns)
    return list(DEFAULT_FILE_PATTERNS)


def set_file_patterns(patterns: List[str]) -> None:
    """Persist file patterns."""
    _update("file_patterns", [p.strip() for p in patterns if p.strip()])


def get_auto_sync() -> bool:
    """Whether file changes trigger a sync automatically. Default False."""
    return bool(_load().get("auto_sync", False))


def set_auto_sync(enabled: bool) -> None:
    """Persist the auto-sync preference."""
    _update("auto_sync", bool(enabled))


def get_project_config_path(workspace: Path) -> Path:
    """Path of the project-link file inside a workspace."""
    return workspace / PROJECT_CONFIG_FILE


def read_project_id(workspace: Path) -> Optional[str]:
    """Remote project linked to the workspace, or None when unlinked or unreadable."""
    path = get_project_config_path(workspace)
    if not path.exists():
        return None
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, OSError) as e:
        log.warning("Could not read %s: %s", path, e)
        return None
    project_id = data.get("projectId") if isinstance(data, dict) else None
    return project_id if isinstance(project_id, str) and project_id.strip() else None


def write_project_id(workspace: Path, project_id: str) -> None:
    """Link the workspace to a remote project."""
    path = get_project_config_path(workspace)
    path.write_text(json.dumps({"projectId": project_id}, indent=2), encoding="utf-8")
    log.info("Linked %s to project %s", workspace, project_id)
