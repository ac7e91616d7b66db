"""
dirwatch - Persisted, self-updating index of one directory's files.

Modules:
    - config: Centralized configuration
    - errors: Error policies and exceptions
    - relevance: Which files participate in the index
    - extractors: Stock key/value functions (xxHash file summaries)
    - codec: Record serialization (JSON)
    - store: Atomic, mtime-stamped index records on disk
    - cache: Thread-safe in-memory map and per-key locks
    - reconciler: Startup convergence of records and directory
    - watcher: watchdog-backed change notifications
    - index: DirectoryIndex, the main entry point

Flow:
    Load records → Scan directory → Prune obsolete → Watch

Usage:
    from dirwatch import DirectoryIndex, summarize_file

    index = DirectoryIndex("~/notes", "txt", extract_value=summarize_file)
    print(index.keys())
    index.close()
"""

from .codec import JsonCodec
from .config import WatcherConfig, get_config, set_config
from .errors import ConfigurationError, CorruptRecordError, DirWatchError
from .extractors import FileSummary, name_key, summarize_file
from .index import DirectoryIndex
from .models import ChangeType, FileChange, ReconcileStats

__all__ = [
    "ChangeType",
    "ConfigurationError",
    "CorruptRecordError",
    "DirWatchError",
    "DirectoryIndex",
    "FileChange",
    "FileSummary",
    "JsonCodec",
    "ReconcileStats",
    "WatcherConfig",
    "get_config",
    "name_key",
    "set_config",
    "summarize_file",
]
