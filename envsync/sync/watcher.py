"""Watch a workspace and auto-sync env files shortly after they change."""

import logging
from pathlib import Path
from typing import Callable, Iterable, List, Optional

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from envsync.files import is_synced_path
from envsync.sync.debounce import AUTO_SYNC_DELAY_SECONDS, Debouncer
from envsync.sync.engine import SyncEngine, SyncReport

log = logging.getLogger(__name__)

ReportCallback = Callable[[SyncReport], None]


class EnvFileChangeHandler(FileSystemEventHandler):
    """Forwards created/modified env files to the debouncer, filtered like find_env_files."""

    def __init__(
        self,
        root: Path,
        patterns: Iterable[str],
        debouncer: Debouncer,
        on_change: Callable[[Path], None],
    ) -> None:
        self._root = root.resolve()
        self._patterns: List[str] = list(patterns)
        self._debouncer = debouncer
        self._on_change = on_change

    def _handle(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            return
        raw = event.dest_path if getattr(event, "dest_path", "") else event.src_path
        path = Path(raw if isinstance(raw, str) else raw.decode())
        try:
            rel = path.resolve().relative_to(self._root)
        except ValueError:
            return
        if not is_synced_path(str(rel), self._patterns):
            return
        log.debug("Change on %s; scheduling sync", rel)
        self._debouncer.schedule(str(path), lambda: self._on_change(path))

    def on_modified(self, event: FileSystemEvent) -> None:
        self._handle(event)

    def on_created(self, event: FileSystemEvent) -> None:
        self._handle(event)

    def on_moved(self, event: FileSystemEvent) -> None:
        # editors that save via rename-over show up as moves onto the env file
        self._handle(event)


class AutoSyncWatcher:
    """
    Observes the workspace with watchdog and runs SyncEngine.auto_sync for a
    changed file once it has been quiet for the debounce delay. The observer
    and timers run on their own threads; the caller stays free.
    """

    def __init__(
        self,
        engine: SyncEngine,
        root: Path,
        patterns: Iterable[str],
        delay: float = AUTO_SYNC_DELAY_SECONDS,
        on_report: Optional[ReportCallback] = None,
    ) -> None:
        self._engine = engine
        self._root = root
        self._on_report = on_report
        self.debouncer = Debouncer(delay)
        self.handler = EnvFileChangeHandler(root, patterns, self.debouncer, self._sync)
        self._observer: Optional[Observer] = None

    def _sync(self, path: Path) -> None:
        report = self._engine.auto_sync(path)
        if report.action is not None:
            log.info("Auto-sync %s: %s%s", report.file_name, report.action.value,
                     "" if report.ok else f" failed ({report.error})")
        if self._on_report:
            self._on_report(report)

    def start(self) -> None:
        if self._observer is not None:
            return
        observer = Observer()
        observer.schedule(self.handler, str(self._root), recursive=True)
        observer.start()
        self._observer = observer
        log.info("Watching %s for changes", self._root)

    def stop(self) -> None:
        self.debouncer.shutdown()
        if self._observer is not None:
            self._observer.stop()
            self._observer.join(timeout=5)
            self._observer = None
        log.info("Stopped watching %s", self._root)
