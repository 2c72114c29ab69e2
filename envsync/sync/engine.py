"""Sync logic: per-file push / pull / no-op / create decision and its execution.

Each file is compared with its remote record on every pass; nothing about the
decision is persisted. Content hashes decide whether the two sides differ,
modification times decide who wins:

- no remote record            -> create_remote (upload after confirmation)
- equal hashes                -> noop
- local mtime > remote time   -> push
- local mtime <= remote time  -> pull (remote wins a tie)

Robustness principles:
- Hashes are always computed over plaintext, never over ciphertext.
- A pulled file is verified against its recorded hash before anything on
  disk changes, and the previous local version is kept as a backup copy.
- One file's failure is reported and never aborts the rest of a batch.
- At most one push/pull runs per file path at a time.
"""

import enum
import logging
import threading
from collections import Counter
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Union

import httpx

from envsync.api.client import EnvSyncAPI
from envsync.auth.session import Session
from envsync.crypto.codec import decrypt_envelope
from envsync.crypto.envelope import encrypt
from envsync.crypto.hashing import compute_hash
from envsync.errors import DuplicateFileNameError, EnvSyncError, IntegrityError
from envsync.files import read_local_file, write_with_backup
from envsync.models import RemoteFile

log = logging.getLogger(__name__)


class SyncAction(enum.Enum):
    """What a sync pass should do with one file."""

    PUSH = "push"
    PULL = "pull"
    NOOP = "noop"
    CREATE_REMOTE = "create_remote"


# Asked before any push/pull/create: (action, file_name) -> proceed?
ConfirmCallback = Callable[[SyncAction, str], bool]
# Status line updates for the UI/CLI
StatusCallback = Callable[[str], None]


@dataclass(frozen=True)
class SyncReport:
    """Outcome of syncing one file. action is None when the check itself failed."""

    file_name: str
    action: Optional[SyncAction]
    performed: bool = False
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def decide(local_hash: str, local_mtime_millis: int, remote: Optional[RemoteFile]) -> SyncAction:
    """Decision table for one file. Ties on time resolve to pull (remote is authoritative)."""
    if remote is None:
        return SyncAction.CREATE_REMOTE
    if not remote.hash or remote.hash == local_hash:
        return SyncAction.NOOP
    if local_mtime_millis > remote.updated_at_millis:
        return SyncAction.PUSH
    return SyncAction.PULL


class PathLocks:
    """One lock per resolved file path, created on first use."""

    def __init__(self) -> None:
        self._locks: Dict[str, threading.Lock] = {}
        self._guard = threading.Lock()

    def lock_for(self, path: Path) -> threading.Lock:
        key = str(path.resolve())
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.Lock()
                self._locks[key] = lock
            return lock


# Shared by SyncEngine and HistoryManager so a restore never interleaves with a pull
SHARED_PATH_LOCKS = PathLocks()


def verify_integrity(plaintext: Union[str, bytes], expected_hash: Optional[str], file_name: str) -> None:
    """Raise IntegrityError when decrypted content does not match its recorded hash."""
    if not expected_hash:
        return
    if compute_hash(plaintext) != expected_hash:
        raise IntegrityError(f"Integrity check failed for {file_name}: content hash mismatch")


class SyncEngine:
    """
    Runs sync passes for the files of one workspace against one remote project.
    Safe to call from several threads (e.g. debounce timers and a manual sync):
    operations on the same file path are serialized.
    """

    def __init__(
        self,
        api: EnvSyncAPI,
        session: Session,
        project_id: str,
        on_status: Optional[StatusCallback] = None,
        locks: Optional[PathLocks] = None,
    ) -> None:
        self._api = api
        self._session = session
        self._project_id = project_id
        self._on_status = on_status
        self._locks = locks if locks is not None else SHARED_PATH_LOCKS

    @property
    def project_id(self) -> str:
        return self._project_id

    def _status(self, msg: str) -> None:
        if self._on_status:
            self._on_status(msg)

    def _lock_for(self, path: Path) -> threading.Lock:
        return self._locks.lock_for(path)

    def check_file(self, path: Path) -> SyncAction:
        """Compare the local file with its remote record and return the decision."""
        local = read_local_file(path)
        remote = self._api.get_file(self._project_id, local.file_name)
        action = decide(compute_hash(local.content), local.mtime_millis, remote)
        log.debug(
            "check %s: local_mtime=%d remote_time=%s -> %s",
            local.file_name,
            local.mtime_millis,
            remote.updated_at_millis if remote else None,
            action.value,
        )
        return action

    def push_file(self, path: Path) -> None:
        """Encrypt the local file and upload it together with its plaintext hash."""
        with self._lock_for(path):
            self._push_locked(path)

    def _push_locked(self, path: Path) -> None:
        local = read_local_file(path)
        self._status(f"Pushing {local.file_name}…")
        envelope = encrypt(local.content, self._session.passphrase())
        content_hash = compute_hash(local.content)
        self._api.put_file(self._project_id, local.file_name, envelope, content_hash)
        log.info("Pushed %s", local.file_name)

    def pull_file(self, path: Path) -> bool:
        """
        Download, decrypt and verify the remote content, then overwrite the local
        file (after a backup copy). Returns False when there is nothing remote.
        """
        with self._lock_for(path):
            return self._pull_locked(path)

    def _pull_locked(self, path: Path) -> bool:
        file_name = path.name
        self._status(f"Pulling {file_name}…")
        remote = self._api.get_file_content(self._project_id, file_name)
        if remote is None or not remote.content:
            log.info("No %s found in project %s", file_name, self._project_id)
            return False
        plaintext = decrypt_envelope(remote.content, self._session.email, self._session.device_id)
        verify_integrity(plaintext, remote.hash, file_name)
        write_with_backup(path, plaintext)
        log.info("Pulled %s", file_name)
        return True

    def sync_file(self, path: Path, confirm: Optional[ConfirmCallback] = None) -> SyncReport:
        """
        One sync pass for one file. The decision is confirmed through the
        callback (if given) before anything is uploaded or overwritten.
        Failures come back as a report instead of being raised.
        """
        file_name = path.name
        with self._lock_for(path):
            try:
                action = self.check_file(path)
            except (EnvSyncError, httpx.HTTPError, OSError) as e:
                log.error("Error checking %s: %s", file_name, e)
                return SyncReport(file_name, None, error=e)
            if action is SyncAction.NOOP:
                return SyncReport(file_name, action)
            if confirm is not None and not confirm(action, file_name):
                log.info("Skipped %s for %s (not confirmed)", action.value, file_name)
                return SyncReport(file_name, action)
            try:
                if action is SyncAction.PULL:
                    performed = self._pull_locked(path)
                else:
                    self._push_locked(path)
                    performed = True
            except (EnvSyncError, httpx.HTTPError, OSError) as e:
                log.error("%s %s failed: %s", action.value, file_name, e)
                return SyncReport(file_name, action, error=e)
            return SyncReport(file_name, action, performed=performed)

    def sync_all(self, paths: Iterable[Path], confirm: Optional[ConfirmCallback] = None) -> List[SyncReport]:
        """
        Sync files one after another; a failing file does not stop the others.
        The remote record is keyed by file name only, so files sharing a name
        (e.g. apps/a/.env and apps/b/.env) are refused instead of overwriting
        each other remotely.
        """
        paths = list(paths)
        log.info("Sync started (%d files, project=%s)", len(paths), self._project_id)
        by_name = Counter(p.name for p in paths)
        reports = []
        for p in paths:
            if by_name[p.name] > 1:
                log.warning("Skipping %s: %d files in the workspace are named %s", p, by_name[p.name], p.name)
                error = DuplicateFileNameError(f"{by_name[p.name]} files named {p.name}; sync them one at a time")
                reports.append(SyncReport(p.name, None, error=error))
                continue
            reports.append(self.sync_file(p, confirm=confirm))
        failed = [r for r in reports if not r.ok]
        if failed:
            log.warning("Sync finished with %d failure(s): %s", len(failed), [r.file_name for r in failed])
        else:
            log.info("Sync finished")
        return reports

    def auto_sync(self, path: Path) -> SyncReport:
        """Entry point for file-change triggers: sync without asking."""
        if not path.exists():
            log.debug("auto_sync: %s no longer exists", path)
            return SyncReport(path.name, None)
        return self.sync_file(path)
