"""
Watcher Configuration - Centralized settings for directory indexes.

Uses environment variables with sensible defaults. Values are validated
on construction so a bad setting fails before any watching starts.
"""

import os
from dataclasses import dataclass

from .errors import ConfigurationError


@dataclass
class WatcherConfig:
    """
    Configuration for a DirectoryIndex.

    Concurrency limits are tuned for typical desktop hardware.
    """

    # --- Storage ---
    index_dir_name: str = ".watcherindex"   # Sidecar directory inside the watched dir
    fsync: bool = True                      # Flush records to disk before the rename

    # --- Concurrency ---
    scan_concurrency: int = 8     # Parallel extractions during reconciliation
    lock_stripes: int = 64        # Per-key lock pool size

    # --- Watcher ---
    observer_timeout: float = 0.1   # watchdog emitter polling timeout (seconds)
    stop_timeout: float = 5.0       # Max wait for the observer thread on close

    def __post_init__(self):
        """Reject settings that would break the on-disk layout or the pools."""
        name = self.index_dir_name
        separators = {"/", os.sep, os.altsep} - {None}
        if not name or name in {".", ".."} or any(s in name for s in separators):
            raise ConfigurationError(f"Invalid index directory name: {name!r}")

        if self.scan_concurrency < 1:
            raise ConfigurationError("scan_concurrency must be at least 1")
        if self.lock_stripes < 1:
            raise ConfigurationError("lock_stripes must be at least 1")
        if self.observer_timeout <= 0 or self.stop_timeout <= 0:
            raise ConfigurationError("Watcher timeouts must be positive")

    @classmethod
    def from_env(cls) -> "WatcherConfig":
        """
        Create config from environment variables.

        Supported env vars:
            DIRWATCH_INDEX_DIR: Name of the sidecar index directory
            DIRWATCH_SCAN_CONCURRENCY: Parallel extractions at startup
            DIRWATCH_LOCK_STRIPES: Number of per-key locks
            DIRWATCH_OBSERVER_TIMEOUT: watchdog polling timeout in seconds
            DIRWATCH_STOP_TIMEOUT: Max seconds to wait for the observer on close
            DIRWATCH_FSYNC: "0" disables fsync of index records
        """
        config = cls()

        if index_dir := os.environ.get("DIRWATCH_INDEX_DIR"):
            config.index_dir_name = index_dir

        try:
            if scan := os.environ.get("DIRWATCH_SCAN_CONCURRENCY"):
                config.scan_concurrency = int(scan)

            if stripes := os.environ.get("DIRWATCH_LOCK_STRIPES"):
                config.lock_stripes = int(stripes)

            if timeout := os.environ.get("DIRWATCH_OBSERVER_TIMEOUT"):
                config.observer_timeout = float(timeout)

            if stop := os.environ.get("DIRWATCH_STOP_TIMEOUT"):
                config.stop_timeout = float(stop)
        except ValueError as e:
            raise ConfigurationError(f"Invalid DIRWATCH_* setting: {e}") from e

        if (fsync := os.environ.get("DIRWATCH_FSYNC")) is not None:
            config.fsync = fsync.strip().lower() not in {"0", "false", "no", "off"}

        config.__post_init__()
        return config


# Singleton default config
_default_config: WatcherConfig | None = None


def get_config() -> WatcherConfig:
    """Get the default configuration (singleton)."""
    global _default_config
    if _default_config is None:
        _default_config = WatcherConfig.from_env()
    return _default_config


def set_config(config: WatcherConfig | None) -> None:
    """Override the default configuration (for testing)."""
    global _default_config
    _default_config = config
