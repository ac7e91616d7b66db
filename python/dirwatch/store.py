"""
Index Store - Durable, crash-tolerant persistence of cached values.

One record file per indexed source file, named like the source file, in a
sidecar directory. Records are written to a temporary file and renamed into
place, so readers only ever see a complete old record or a complete new one.
Each record's mtime is set to the source file's mtime at extraction time;
exact equality of the two is what makes a record valid.
"""

import logging
import os
import tempfile
from pathlib import Path
from typing import Any, List

from .codec import Codec
from .errors import CorruptRecordError


logger = logging.getLogger(__name__)

TEMP_PREFIX = ".~dirwatch-"
TEMP_SUFFIX = ".tmp"


class IndexStore:
    """Sidecar directory of serialized values."""

    def __init__(self, root: Path, codec: Codec, fsync: bool = True):
        self.root = Path(root)
        self.codec = codec
        self.fsync = fsync
        self.file_mode = 0o666 & ~current_umask()

    def ensure(self) -> bool:
        """Create the storage area if needed. Returns True if it was created."""
        if self.root.is_dir():
            return False
        self.root.mkdir(parents=True, exist_ok=True)
        logger.info(f"Created index directory: {self.root}")
        return True

    def record_path(self, name: str) -> Path:
        return self.root / name

    def names(self) -> List[str]:
        """Names of all persisted records (temporaries excluded)."""
        try:
            entries = list(os.scandir(self.root))
        except FileNotFoundError:
            return []
        return [
            entry.name for entry in entries
            if entry.is_file(follow_symlinks=False) and not _is_temporary(entry.name)
        ]

    def purge_temporaries(self) -> int:
        """Delete temp files left behind by an interrupted write."""
        removed = 0
        try:
            entries = list(os.scandir(self.root))
        except FileNotFoundError:
            return 0
        for entry in entries:
            if _is_temporary(entry.name) and entry.is_file(follow_symlinks=False):
                try:
                    os.unlink(entry.path)
                    removed += 1
                except FileNotFoundError:
                    pass
        if removed:
            logger.info(f"Removed {removed} leftover temporary records")
        return removed

    def write(self, name: str, value: Any, source_mtime_ns: int) -> None:
        """
        Atomically persist a value and stamp it with the source mtime.

        Raises whatever the codec or the filesystem raises; a failed write
        never leaves a partial record under the final name.
        """
        data = self.codec.encode(value)
        target = self.record_path(name)

        fd, temp_path = tempfile.mkstemp(
            dir=self.root, prefix=TEMP_PREFIX, suffix=TEMP_SUFFIX
        )
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(data)
                if self.fsync:
                    f.flush()
                    os.fsync(f.fileno())
            # mkstemp creates 0600; records get the mode open() would have given
            os.chmod(temp_path, self.file_mode)
            # Stamp before the rename so the record never appears with a wrong mtime
            os.utime(temp_path, ns=(source_mtime_ns, source_mtime_ns))
            os.replace(temp_path, target)
        except BaseException:
            try:
                os.unlink(temp_path)
            except OSError:
                pass
            raise

    def read(self, name: str) -> Any:
        """Decode a record. Raises CorruptRecordError if it cannot be decoded."""
        path = self.record_path(name)
        data = path.read_bytes()
        try:
            return self.codec.decode(data)
        except Exception as e:
            raise CorruptRecordError(path, e) from e

    def is_valid(self, name: str, source_mtime_ns: int) -> bool:
        """True iff the record exists and its mtime equals the source mtime."""
        try:
            stat = self.record_path(name).stat()
        except FileNotFoundError:
            return False
        return stat.st_mtime_ns == source_mtime_ns

    def delete(self, name: str) -> bool:
        """Remove a record. Returns False if there was none."""
        try:
            self.record_path(name).unlink()
            return True
        except FileNotFoundError:
            return False

    def rename(self, old_name: str, new_name: str) -> None:
        """Move a record, replacing any record under the new name."""
        os.replace(self.record_path(old_name), self.record_path(new_name))


def current_umask() -> int:
    """The process umask. os.umask can only be read by setting it, so restore it."""
    mask = os.umask(0o022)
    os.umask(mask)
    return mask


def _is_temporary(name: str) -> bool:
    return name.startswith(TEMP_PREFIX) and name.endswith(TEMP_SUFFIX)
