"""
Watcher - Real-time change notifications for a single directory.

Uses watchdog for cross-platform file system monitoring. Raw watchdog
events are normalized into FileChange objects and handed, in delivery
order, to one callback running on the observer's dispatch thread.
"""

import logging
import os
import threading
from pathlib import Path
from typing import Callable, Optional

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from .config import get_config, WatcherConfig
from .models import FileChange


logger = logging.getLogger(__name__)


def _event_path(raw) -> Path:
    return Path(os.fsdecode(raw))


class _ChangeHandler(FileSystemEventHandler):
    """Translates watchdog callbacks into FileChange objects."""

    def __init__(self, on_change: Callable[[FileChange], None]):
        super().__init__()
        self._on_change = on_change

    def on_created(self, event: FileSystemEvent):
        if not event.is_directory:
            self._on_change(FileChange.created(_event_path(event.src_path)))

    def on_modified(self, event: FileSystemEvent):
        if not event.is_directory:
            self._on_change(FileChange.modified(_event_path(event.src_path)))

    def on_closed(self, event: FileSystemEvent):
        # Close after write: the content is final, re-read it
        if not event.is_directory:
            self._on_change(FileChange.modified(_event_path(event.src_path)))

    def on_deleted(self, event: FileSystemEvent):
        if not event.is_directory:
            self._on_change(FileChange.deleted(_event_path(event.src_path)))

    def on_moved(self, event: FileSystemEvent):
        if not event.is_directory:
            self._on_change(FileChange.moved(
                _event_path(event.src_path),
                _event_path(event.dest_path),
            ))


class Watcher:
    """
    Non-recursive watcher for one directory.

    The observer is acquired by start() and released exactly once by
    stop(); stop() is idempotent and safe to call from any thread,
    including from inside the callback.
    """

    def __init__(
        self,
        directory: Path,
        on_change: Callable[[FileChange], None],
        config: WatcherConfig | None = None,
    ):
        self.directory = Path(directory)
        self.on_change = on_change
        self.config = config or get_config()

        self._observer: Optional[Observer] = None
        self._lock = threading.Lock()
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    def start(self):
        """Start watching. Raises if the directory cannot be watched."""
        with self._lock:
            if self._observer is not None:
                return

            observer = Observer(timeout=self.config.observer_timeout)
            observer.schedule(
                _ChangeHandler(self._deliver),
                str(self.directory),
                recursive=False,
            )
            observer.daemon = True
            observer.start()

            self._observer = observer
            self._running = True

        logger.info(f"Watching: {self.directory}")

    def stop(self):
        """Stop watching and wait for the dispatch thread to exit."""
        with self._lock:
            observer = self._observer
            self._observer = None
            self._running = False

        if observer is None:
            return

        observer.stop()
        if threading.current_thread() is not observer:
            observer.join(timeout=self.config.stop_timeout)
            if observer.is_alive():
                logger.warning(f"Observer for {self.directory} did not stop in time")

        logger.info(f"Stopped watching: {self.directory}")

    def _deliver(self, change: FileChange):
        # Events still queued inside watchdog after stop() are dropped
        if not self._running:
            return
        self.on_change(change)
