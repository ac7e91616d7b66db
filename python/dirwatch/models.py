"""
Data Models - Type definitions for directory index events and runs.

Filesystem notifications are normalized into a small closed set of
FileChange variants before they reach the index.
"""

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional


class ChangeType(Enum):
    """Type of file system change."""
    CREATED = "created"
    MODIFIED = "modified"
    DELETED = "deleted"
    MOVED = "moved"


@dataclass(frozen=True)
class FileChange:
    """A single file system change for the watched directory."""
    path: Path
    change_type: ChangeType
    old_path: Optional[Path] = None  # For MOVED events

    @classmethod
    def created(cls, path: Path) -> "FileChange":
        return cls(path=Path(path), change_type=ChangeType.CREATED)

    @classmethod
    def modified(cls, path: Path) -> "FileChange":
        return cls(path=Path(path), change_type=ChangeType.MODIFIED)

    @classmethod
    def deleted(cls, path: Path) -> "FileChange":
        return cls(path=Path(path), change_type=ChangeType.DELETED)

    @classmethod
    def moved(cls, old_path: Path, new_path: Path) -> "FileChange":
        return cls(
            path=Path(new_path),
            change_type=ChangeType.MOVED,
            old_path=Path(old_path),
        )


@dataclass
class ReconcileStats:
    """Statistics from a reconciliation run."""
    records_loaded: int = 0      # Valid records reused without extraction
    records_discarded: int = 0   # Stale, orphaned or corrupt records deleted
    files_extracted: int = 0     # Files added through a full extraction
    keys_removed: int = 0        # Obsolete cache keys dropped in the final pass
    errors: int = 0
    duration_seconds: float = 0.0

    def __str__(self) -> str:
        return (
            f"Reconciled {self.records_loaded + self.files_extracted} files "
            f"({self.records_loaded} from index, "
            f"{self.files_extracted} extracted, "
            f"{self.records_discarded} records discarded, "
            f"{self.keys_removed} obsolete, "
            f"{self.errors} errors) "
            f"in {self.duration_seconds:.2f}s"
        )
