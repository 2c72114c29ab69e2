"""Records returned by the EnvSync service."""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional

CURRENT_VERSION_ID = "current"


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp from the service. Returns None when missing or invalid."""
    if not value:
        return None
    try:
        # fromisoformat on older interpreters does not accept a trailing Z
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def to_epoch_millis(value: Optional[datetime]) -> int:
    """Milliseconds since the epoch; 0 for a missing timestamp."""
    if value is None:
        return 0
    return int(value.timestamp() * 1000)


@dataclass(frozen=True)
class RemoteFile:
    """Metadata (and optionally content) of a file stored in a project."""

    file_name: str
    hash: Optional[str] = None
    updated_at: Optional[datetime] = None
    content: Optional[str] = None

    @property
    def updated_at_millis(self) -> int:
        return to_epoch_millis(self.updated_at)

    @classmethod
    def from_json(cls, file_name: str, data: Dict[str, Any]) -> "RemoteFile":
        return cls(
            file_name=data.get("file_name") or file_name,
            hash=data.get("hash") or None,
            updated_at=parse_timestamp(data.get("updated_at")),
            content=data.get("content"),
        )


@dataclass(frozen=True)
class VersionRecord:
    """One entry of a file's version history, newest first as returned by the service."""

    id: str
    timestamp: Optional[datetime]
    is_current: bool
    hash: Optional[str] = None

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> "VersionRecord":
        return cls(
            id=str(data["id"]),
            timestamp=parse_timestamp(data.get("timestamp")),
            is_current=bool(data.get("isCurrent", data.get("id") == CURRENT_VERSION_ID)),
            hash=data.get("hash"),
        )


@dataclass(frozen=True)
class RestoredVersion:
    """Response of a restore call: the restored envelope and its plaintext hash."""

    success: bool
    content: Optional[str]
    hash: Optional[str]


@dataclass(frozen=True)
class Project:
    """A remote project the user has access to."""

    id: Optional[str]
    name: str
    updated_at: Optional[datetime] = None

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> "Project":
        return cls(
            id=data.get("id"),
            name=data["name"],
            updated_at=parse_timestamp(data.get("updated_at")),
        )
