"""
DirectoryIndex - Live, persisted index of derived data for one directory.

Ties together the relevance filter, the durable IndexStore, the in-memory
Cache, the startup Reconciler and the watchdog-backed Watcher.

Every update goes through three primitives that keep the cache and the
on-disk records in lock-step:

    add(path)          extract, persist, then commit to the cache
    remove(path)       delete the record, then the cache entry
    rename(old, new)   move the record and re-key the cached value

Usage:
    from dirwatch import DirectoryIndex, summarize_file

    with DirectoryIndex(path, "txt", extract_value=summarize_file) as index:
        for name in index.keys():
            print(name, index[name].first_line)
"""

import logging
import threading
from pathlib import Path
from typing import Callable, Dict, Generic, Hashable, List, Optional, Tuple, TypeVar

from .cache import Cache, KeyLocks
from .codec import Codec, JsonCodec
from .config import get_config, WatcherConfig
from .errors import ConfigurationError, DirWatchError, handle_error
from .extractors import name_key
from .models import ChangeType, FileChange, ReconcileStats
from .reconciler import Reconciler
from .relevance import RelevanceFilter, RelevancePredicate
from .store import IndexStore
from .watcher import Watcher


logger = logging.getLogger(__name__)

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")


class DirectoryIndex(Generic[K, V]):
    """
    Queryable key -> value map mirroring the relevant files of a directory.

    Construction validates the arguments, reconciles the on-disk index with
    the directory contents and starts watching (unless start=False).

    Args:
        directory: Directory to index (not recursive)
        extension: Relevant file extension, without the leading dot
        extract_value: Builds the value for a file; may raise
        derive_key: Stable identity of a file (default: its name)
        is_relevant: Replaces the default extension match
        codec: Record serialization (default: JSON)
        config: Settings (default: global config)
        start: Reconcile and watch immediately
    """

    def __init__(
        self,
        directory: Path,
        extension: str,
        *,
        extract_value: Callable[[Path], V],
        derive_key: Callable[[Path], K] = name_key,
        is_relevant: Optional[RelevancePredicate] = None,
        codec: Optional[Codec] = None,
        config: Optional[WatcherConfig] = None,
        start: bool = True,
    ):
        self.config = config or get_config()
        self._filter = RelevanceFilter(extension, self.config.index_dir_name, is_relevant)

        directory = Path(directory).expanduser()
        if not directory.is_dir():
            raise ConfigurationError(f"Not a directory: {directory}")
        self.directory = directory.resolve()
        self.extension = extension

        self.extract_value = extract_value
        self.derive_key = derive_key
        self.store = IndexStore(
            self.directory / self.config.index_dir_name,
            codec or JsonCodec(),
            fsync=self.config.fsync,
        )
        self.cache: Cache[K, V] = Cache()
        self.last_stats: Optional[ReconcileStats] = None

        self._key_locks = KeyLocks(self.config.lock_stripes)
        # (mtime_ns, size) of each file as of its last extraction
        self.stamps: Dict[K, Tuple[int, int]] = {}
        self._watcher = Watcher(self.directory, self._on_change, self.config)

        self._lifecycle_lock = threading.Lock()
        self._dispatch_lock = threading.Lock()
        self._pending: Optional[List[FileChange]] = None
        self._started = False
        self._closed = False

        if start:
            self.start()

    @property
    def index_path(self) -> Path:
        return self.store.root

    # --- Query surface ---

    def keys(self) -> List[K]:
        """Snapshot of the cached keys."""
        return self.cache.keys()

    def values(self) -> List[V]:
        """Snapshot of the cached values."""
        return self.cache.values()

    def __getitem__(self, key: K) -> V:
        """Value for key. Raises KeyError if the key is not indexed."""
        return self.cache[key]

    def __contains__(self, key: object) -> bool:
        return key in self.cache

    def __len__(self) -> int:
        return len(self.cache)

    # --- Lifecycle ---

    def start(self):
        """
        Reconcile and begin watching.

        The watcher is attached before reconciliation; events that arrive
        meanwhile are held back and replayed in order once it finishes.
        """
        with self._lifecycle_lock:
            if self._closed:
                raise DirWatchError("DirectoryIndex is closed")
            if self._started:
                return

            self.store.ensure()
            with self._dispatch_lock:
                self._pending = []

            try:
                self._watcher.start()
                self.reconcile()
            except BaseException:
                self._watcher.stop()
                with self._dispatch_lock:
                    self._pending = None
                raise

            self._replay_pending()
            self._started = True

    def close(self):
        """Stop watching. Idempotent; in-flight updates finish, no new ones start."""
        with self._lifecycle_lock:
            if self._closed:
                return
            self._closed = True
        self._watcher.stop()

    @property
    def closed(self) -> bool:
        return self._closed

    def __enter__(self) -> "DirectoryIndex[K, V]":
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def reconcile(self) -> ReconcileStats:
        """
        Converge cache and records with the directory contents.

        Live events are held back for the duration of the run and replayed
        afterwards, so a file appearing after the scan is not pruned.
        """
        with self._dispatch_lock:
            owns_buffer = self._pending is None
            if owns_buffer:
                self._pending = []

        try:
            stats = Reconciler(self).run()
        finally:
            if owns_buffer:
                self._replay_pending()

        self.last_stats = stats
        return stats

    def _replay_pending(self):
        """Apply buffered events in arrival order and resume live delivery."""
        with self._dispatch_lock:
            pending, self._pending = self._pending or [], None
            if pending:
                logger.debug(f"Replaying {len(pending)} events received during reconciliation")
            for change in pending:
                self._apply_logged(change)

    # --- Relevance ---

    def is_relevant(self, path: Path) -> bool:
        """True if path is a direct child of the directory and passes the filter."""
        path = Path(path)
        return path.parent == self.directory and self._filter(path)

    # --- Update primitives ---

    def locked(self, *keys: K):
        """Context manager serializing updates to the given keys."""
        return self._key_locks.hold(*keys)

    def add(self, path: Path, only_if_changed: bool = False) -> K:
        """
        Extract and index a file, replacing any previous value.

        The record is stamped with the mtime observed before extraction, so
        a write racing with extraction leaves the record stale rather than
        wrong. The cache is only updated after the record is on disk.

        With only_if_changed, a cached file whose mtime and size match the
        last extraction is left alone.
        """
        path = Path(path)
        key = self.derive_key(path)
        with self._key_locks.hold(key):
            stat = path.stat()
            stamp = (stat.st_mtime_ns, stat.st_size)
            if only_if_changed and key in self.cache and self.stamps.get(key) == stamp:
                logger.debug(f"Unchanged {path.name}")
                return key

            value = self.extract_value(path)
            self.store.write(path.name, value, stat.st_mtime_ns)
            self.cache.put(key, value)
            self.stamps[key] = stamp
        logger.debug(f"Indexed {path.name}")
        return key

    def remove(self, path: Path) -> bool:
        """Drop a file's record and cache entry. Returns whether it was cached."""
        path = Path(path)
        key = self.derive_key(path)
        with self._key_locks.hold(key):
            self.store.delete(path.name)
            removed = self.cache.pop(key)
            self.stamps.pop(key, None)
        logger.debug(f"Removed {path.name}")
        return removed

    def rename(self, old_path: Path, new_path: Path) -> K:
        """
        Carry a cached value from old_path to new_path without re-extracting.

        Overwrites whatever is indexed under the new key. Falls back to add()
        when there is nothing to carry over.
        """
        old_path, new_path = Path(old_path), Path(new_path)
        old_key = self.derive_key(old_path)
        new_key = self.derive_key(new_path)
        with self._key_locks.hold(old_key, new_key):
            if old_key not in self.cache:
                self.store.delete(old_path.name)
                return self.add(new_path)

            try:
                self.store.rename(old_path.name, new_path.name)
            except FileNotFoundError:
                self.cache.pop(old_key)
                self.stamps.pop(old_key, None)
                return self.add(new_path)

            self.cache.move(old_key, new_key)
            stamp = self.stamps.pop(old_key, None)
            if stamp is None:
                self.stamps.pop(new_key, None)
            else:
                self.stamps[new_key] = stamp
        logger.debug(f"Renamed {old_path.name} -> {new_path.name}")
        return new_key

    # --- Event synchronization ---

    def apply(self, change: FileChange) -> None:
        """Apply one file system change. Errors propagate to the caller."""
        if change.change_type is ChangeType.MOVED:
            was_relevant = change.old_path is not None and self.is_relevant(change.old_path)
            is_relevant_now = self.is_relevant(change.path)

            if was_relevant and is_relevant_now:
                self.rename(change.old_path, change.path)
            elif is_relevant_now:
                self.add(change.path)
            elif was_relevant:
                self.remove(change.old_path)
            return

        if not self.is_relevant(change.path):
            return

        if change.change_type is ChangeType.CREATED:
            self.add(change.path)
        elif change.change_type is ChangeType.MODIFIED:
            self.add(change.path, only_if_changed=True)
        elif change.change_type is ChangeType.DELETED:
            self.remove(change.path)

    def _on_change(self, change: FileChange):
        """Watcher callback (observer thread)."""
        with self._dispatch_lock:
            if self._pending is not None:
                self._pending.append(change)
                return
            self._apply_logged(change)

    def _apply_logged(self, change: FileChange):
        try:
            self.apply(change)
        except Exception as e:
            handle_error(e, change.path, f"event:{change.change_type.value}")
