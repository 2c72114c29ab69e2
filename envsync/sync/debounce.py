"""Coalesce bursts of file-change events into one delayed sync per path."""

import logging
import threading
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

from envsync.files import is_backup_path

log = logging.getLogger(__name__)

# Quiet period after the last change before a file is synced
AUTO_SYNC_DELAY_SECONDS = 1.0


@dataclass
class _Pending:
    """A scheduled call plus its cancellation token."""

    cancelled: threading.Event = field(default_factory=threading.Event)
    timer: Optional[threading.Timer] = None

    def cancel(self) -> None:
        self.cancelled.set()
        if self.timer is not None:
            self.timer.cancel()


class Debouncer:
    """
    At most one pending call per key. A new event for a key cancels the pending
    call and schedules a fresh one, so N events inside the quiet period run the
    action exactly once.
    """

    def __init__(self, delay: float = AUTO_SYNC_DELAY_SECONDS) -> None:
        self._delay = delay
        self._pending: Dict[str, _Pending] = {}
        self._lock = threading.Lock()
        self._closed = False

    def schedule(self, key: str, action: Callable[[], object]) -> bool:
        """
        (Re)schedule action for key. Returns False when the event is ignored
        (backup files, or the debouncer was shut down).
        """
        if is_backup_path(key):
            log.debug("Ignoring change on backup file %s", key)
            return False
        entry = _Pending()
        timer = threading.Timer(self._delay, self._fire, args=(key, entry, action))
        timer.daemon = True
        entry.timer = timer
        with self._lock:
            if self._closed:
                return False
            previous = self._pending.pop(key, None)
            if previous is not None:
                previous.cancel()
            self._pending[key] = entry
            timer.start()
        return True

    def _fire(self, key: str, entry: _Pending, action: Callable[[], object]) -> None:
        with self._lock:
            if entry.cancelled.is_set():
                return
            if self._pending.get(key) is entry:
                del self._pending[key]
        try:
            action()
        except Exception:
            log.exception("Debounced action for %s failed", key)

    def cancel(self, key: str) -> bool:
        """Drop the pending call for key. True if one was pending."""
        with self._lock:
            entry = self._pending.pop(key, None)
        if entry is None:
            return False
        entry.cancel()
        return True

    def pending_keys(self) -> List[str]:
        with self._lock:
            return sorted(self._pending)

    def shutdown(self) -> None:
        """Cancel everything pending and refuse new events."""
        with self._lock:
            self._closed = True
            entries = list(self._pending.values())
            self._pending.clear()
        for entry in entries:
            entry.cancel()
