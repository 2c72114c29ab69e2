"""Version history of synced files and restoring an older version."""

import logging
import threading
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Callable, Iterable, List, Optional

import httpx

from envsync.api.client import EnvSyncAPI
from envsync.auth.session import Session
from envsync.crypto.codec import decrypt_envelope
from envsync.errors import NotFoundError
from envsync.files import write_with_backup
from envsync.models import VersionRecord
from envsync.sync.engine import SHARED_PATH_LOCKS, PathLocks, verify_integrity

log = logging.getLogger(__name__)

# Called after a successful restore: (file_name, version_id)
RestoreListener = Callable[[str, str], None]


@dataclass(frozen=True)
class FileHistory:
    """A local file with its remote last-sync time and version list."""

    file_name: str
    path: Path
    last_synced: Optional[datetime]
    versions: List[VersionRecord]


def current_version(versions: List[VersionRecord]) -> Optional[VersionRecord]:
    """The live version: the record flagged current, else the first (newest) one."""
    for version in versions:
        if version.is_current:
            return version
    return versions[0] if versions else None


class HistoryManager:
    """Lists versions and restores one into the live local file."""

    def __init__(
        self,
        api: EnvSyncAPI,
        session: Session,
        project_id: str,
        locks: Optional[PathLocks] = None,
    ) -> None:
        self._api = api
        self._session = session
        self._project_id = project_id
        self._locks = locks if locks is not None else SHARED_PATH_LOCKS
        self._listeners: List[RestoreListener] = []
        self._listeners_lock = threading.Lock()

    def add_listener(self, listener: RestoreListener) -> None:
        with self._listeners_lock:
            self._listeners.append(listener)

    def remove_listener(self, listener: RestoreListener) -> None:
        with self._listeners_lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def _notify(self, file_name: str, version_id: str) -> None:
        with self._listeners_lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(file_name, version_id)
            except Exception:
                log.exception("Restore listener failed")

    def list_versions(self, file_name: str) -> List[VersionRecord]:
        """Versions as returned by the service (newest first, live version included)."""
        return self._api.get_file_history(self._project_id, file_name)

    def file_entries(self, paths: Iterable[Path]) -> List[FileHistory]:
        """History overview for local files. A file whose lookup fails shows no versions."""
        entries: List[FileHistory] = []
        for path in paths:
            try:
                info = self._api.get_file(self._project_id, path.name)
                versions = self.list_versions(path.name)
            except httpx.HTTPError as e:
                log.warning("Could not load history for %s: %s", path.name, e)
                info, versions = None, []
            entries.append(
                FileHistory(
                    file_name=path.name,
                    path=path,
                    last_synced=info.updated_at if info else None,
                    versions=versions,
                )
            )
        return entries

    def restore(self, path: Path, version_id: str) -> bytes:
        """
        Restore version_id of the file and write it to path (with backup).

        Raises NotFoundError when the service has no such file/version or sends
        no content, DecryptionError/FormatError when the envelope cannot be
        opened, IntegrityError when the decrypted content does not match its
        hash. The local file is only touched after all checks passed, and
        never while a push or pull of the same path is running.
        """
        file_name = path.name
        with self._locks.lock_for(path):
            response = self._api.restore_version(self._project_id, file_name, version_id)
            if not response.success or not response.content:
                raise NotFoundError(f"Version {version_id} of {file_name} has no content to restore")
            plaintext = decrypt_envelope(response.content, self._session.email, self._session.device_id)
            verify_integrity(plaintext, response.hash, file_name)
            write_with_backup(path, plaintext)
        log.info("Restored %s to version %s", file_name, version_id)
        self._notify(file_name, version_id)
        return plaintext
