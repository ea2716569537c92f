"""Filesystem source: watchdog events plus a periodic safety-net rescan.

Events can be lost (overflowing kernel queues, directories created faster than
they are registered), so every ``rescan_interval_s`` the tree is walked again.
Only directories modified within ``recent_dir_window_s`` are listed, and each
at most once per ``dir_scan_cooldown_s``.
"""

import logging
import os
import threading
import time
from datetime import datetime
from pathlib import Path
from typing import Callable, Optional
from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer
from ibt.config.models import WatchConfig
from ibt.domain.models import DiscoveredFile, DiscoveryMethod
from ibt.infrastructure.file_scanner import FileScanner, is_ignored, is_temp_artifact
from ibt.pipeline.dedup import RecentPathIndex

Dispatch = Callable[[DiscoveredFile], None]


def _created_at(path: Path) -> Optional[datetime]:
    try:
        return datetime.fromtimestamp(os.stat(path).st_mtime)
    except OSError:
        return None


class _DispatchingHandler(FileSystemEventHandler):
    def __init__(self, watcher: "DirectoryWatcher"):
        super().__init__()
        self.watcher = watcher

    def on_created(self, event: FileSystemEvent):
        if event.is_directory:
            self.watcher.directory_created(Path(event.src_path))
            return
        self.watcher.observe(Path(event.src_path), DiscoveryMethod.WATCH)

    def on_modified(self, event: FileSystemEvent):
        if event.is_directory:
            return
        self.watcher.observe(Path(event.src_path), DiscoveryMethod.WATCH)

    def on_moved(self, event: FileSystemEvent):
        # Our own temp files being renamed into place are finished conversions.
        if event.is_directory or is_temp_artifact(Path(event.src_path)):
            return
        self.watcher.observe(Path(event.dest_path), DiscoveryMethod.WATCH)


class DirectoryWatcher:
    """Recursive watch of ``root`` feeding every candidate file to ``dispatch``."""

    def __init__(
        self,
        root: Path,
        dispatch: Dispatch,
        config: Optional[WatchConfig] = None,
        scanner: Optional[FileScanner] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.root = Path(root)
        self.dispatch = dispatch
        self.config = config or WatchConfig()
        self.scanner = scanner or FileScanner()
        self._clock = clock
        self._scanned_dirs = RecentPathIndex(self.config.dir_scan_cooldown_s, self.config.max_tracked_dirs)
        self._observer = None
        self._rescan_thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()
        self.logger = logging.getLogger(__name__)

    def observe(self, path: Path, method: DiscoveryMethod) -> None:
        if self._stop_event.is_set() or is_ignored(path):
            return
        self.dispatch(DiscoveredFile(path=path, discovery_method=method, created_at=_created_at(path)))

    def directory_created(self, directory: Path) -> None:
        """Files may land in a new directory before its watch is active."""
        self.logger.debug(f"WATCH_DIR_ADDED: {directory}")
        self._scan_directory(directory)

    def _scan_directory(self, directory: Path) -> int:
        self._scanned_dirs.touch(directory, self._clock())
        count = 0
        for file_path in self.scanner.scan_directory(directory):
            if self._stop_event.is_set():
                break
            self.observe(file_path, DiscoveryMethod.SCAN)
            count += 1
        return count

    def scan_existing(self) -> int:
        count = 0
        for file_path in self.scanner.scan(self.root):
            if self._stop_event.is_set():
                break
            self.observe(file_path, DiscoveryMethod.SCAN)
            count += 1
        self.logger.info(f"Initial scan dispatched {count} existing files under {self.root}")
        return count

    def rescan_once(self, wall_now: Optional[float] = None) -> int:
        """Lists directories that changed recently and were not listed lately."""
        wall_now = time.time() if wall_now is None else wall_now
        now = self._clock()
        count = 0
        for directory, _ in self.scanner.walk(self.root):
            if self._stop_event.is_set():
                break
            try:
                mtime = os.stat(directory).st_mtime
            except OSError:
                continue
            if wall_now - mtime > self.config.recent_dir_window_s:
                continue
            if self._scanned_dirs.seen_within(directory, now):
                continue
            count += self._scan_directory(directory)
        if count:
            self.logger.debug(f"RESCAN: dispatched {count} files")
        return count

    def _rescan_loop(self) -> None:
        while not self._stop_event.wait(self.config.rescan_interval_s):
            try:
                self.rescan_once()
            except OSError as e:
                self.logger.warning(f"Periodic rescan of {self.root} failed: {e}")

    def start(self) -> None:
        if not self.root.is_dir():
            raise NotADirectoryError(f"Watch directory does not exist: {self.root}")
        self._stop_event.clear()
        self._observer = Observer()
        self._observer.schedule(_DispatchingHandler(self), str(self.root), recursive=True)
        self._observer.start()
        self.logger.info(f"Watching {self.root} (recursive)")

        if self.config.scan_existing:
            self.scan_existing()

        self._rescan_thread = threading.Thread(target=self._rescan_loop, name="ibt-rescan", daemon=True)
        self._rescan_thread.start()

    def stop(self) -> None:
        """Stops event delivery and joins the observer and rescan threads."""
        self._stop_event.set()
        if self._observer is not None:
            self._observer.stop()
            self._observer.join()
            self._observer = None
        if self._rescan_thread is not None:
            self._rescan_thread.join()
            self._rescan_thread = None
        self.logger.info("Watcher stopped")
