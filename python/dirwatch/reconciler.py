"""
Reconciler - Startup convergence of the persisted index and the directory.

Three passes:
1. LOAD: reuse every record whose source still exists, is relevant and
   has the exact mtime stamped on the record; delete everything else.
2. SCAN: list the directory and add (extract + persist) each relevant file
   that was not loaded, in parallel.
3. PRUNE: drop cached keys whose file was not seen by the scan.

When nothing changed while the watcher was down, pass 1 satisfies every
file and no extraction happens.
"""

import logging
import os
import stat
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from pathlib import Path
from typing import TYPE_CHECKING, Hashable, List, Set

from .errors import CorruptRecordError, handle_error
from .models import ReconcileStats

if TYPE_CHECKING:
    from .index import DirectoryIndex


logger = logging.getLogger(__name__)


class Reconciler:
    """One reconciliation run over a DirectoryIndex."""

    def __init__(self, index: "DirectoryIndex"):
        self.index = index
        self.store = index.store
        self.cache = index.cache
        self.directory = index.directory

    def run(self) -> ReconcileStats:
        start_time = time.monotonic()
        stats = ReconcileStats()

        self.store.ensure()
        self.store.purge_temporaries()

        satisfied = self._load_records(stats)
        existing = self._scan_directory(satisfied, stats)
        self._prune_obsolete(existing, stats)

        stats.duration_seconds = time.monotonic() - start_time
        logger.info(f"{self.directory}: {stats}")
        return stats

    def _load_records(self, stats: ReconcileStats) -> Set[Hashable]:
        """Pass 1: load valid records, delete stale, orphaned and corrupt ones."""
        satisfied: Set[Hashable] = set()

        for name in self.store.names():
            source = self.directory / name
            try:
                source_stat = os.stat(source)
            except FileNotFoundError:
                self._discard(name, "source deleted", stats)
                continue

            if not stat.S_ISREG(source_stat.st_mode) or not self.index.is_relevant(source):
                self._discard(name, "source not relevant", stats)
                continue

            if not self.store.is_valid(name, source_stat.st_mtime_ns):
                self._discard(name, "stale", stats)
                continue

            try:
                value = self.store.read(name)
            except (CorruptRecordError, OSError) as e:
                handle_error(e, self.store.record_path(name), "reconcile")
                self._discard(name, "unreadable", stats)
                continue

            key = self.index.derive_key(source)
            with self.index.locked(key):
                self.cache.put(key, value)
                self.index.stamps[key] = (source_stat.st_mtime_ns, source_stat.st_size)
            satisfied.add(key)
            stats.records_loaded += 1

        return satisfied

    def _scan_directory(self, satisfied: Set[Hashable], stats: ReconcileStats) -> Set[Hashable]:
        """Pass 2: add every relevant file not satisfied by pass 1."""
        existing: Set[Hashable] = set()
        to_add: List[Path] = []

        with os.scandir(self.directory) as entries:
            for entry in entries:
                try:
                    if not entry.is_file():
                        continue
                except OSError as e:
                    handle_error(e, Path(entry.path), "scan_entry")
                    continue

                path = Path(entry.path)
                if not self.index.is_relevant(path):
                    continue

                key = self.index.derive_key(path)
                existing.add(key)
                if key not in satisfied:
                    to_add.append(path)

        if not to_add:
            return existing

        logger.debug(f"Extracting {len(to_add)} files")
        with ThreadPoolExecutor(
            max_workers=self.index.config.scan_concurrency,
            thread_name_prefix="reconcile",
        ) as executor:
            futures = {executor.submit(self.index.add, path): path for path in to_add}
            for future in as_completed(futures):
                path = futures[future]
                try:
                    future.result()
                    stats.files_extracted += 1
                except Exception as e:
                    stats.errors += 1
                    handle_error(e, path, "reconcile")

        return existing

    def _prune_obsolete(self, existing: Set[Hashable], stats: ReconcileStats):
        """Pass 3: remove cached keys whose source file is gone."""
        obsolete = set(self.cache.keys()) - existing
        if not obsolete:
            return

        for name in self.store.names():
            key = self.index.derive_key(self.directory / name)
            if key in obsolete:
                with self.index.locked(key):
                    self.store.delete(name)

        for key in obsolete:
            with self.index.locked(key):
                self.index.stamps.pop(key, None)
                if self.cache.pop(key):
                    stats.keys_removed += 1

        logger.debug(f"Pruned {len(obsolete)} obsolete keys")

    def _discard(self, name: str, reason: str, stats: ReconcileStats):
        self.store.delete(name)
        stats.records_discarded += 1
        logger.debug(f"Discarded index record {name} ({reason})")
