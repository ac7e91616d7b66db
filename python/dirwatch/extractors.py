"""
Extractors - Stock key and value functions.

Applications normally supply their own `extract_value`; `summarize_file`
is a ready-made one that records size, mtime, first line and an xxHash
digest of the raw bytes.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict

import xxhash


FIRST_LINE_MAX = 200
CHUNK_SIZE = 65536


def name_key(path: Path) -> str:
    """Default key: the file name (stable across edits, unique per directory)."""
    return Path(path).name


@dataclass(frozen=True)
class FileSummary:
    """Derived state of a single file."""
    name: str
    first_line: str
    size: int
    mtime_ns: int
    digest: str                # xxh64 hex digest of the raw bytes

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FileSummary":
        return cls(
            name=data["name"],
            first_line=data["first_line"],
            size=int(data["size"]),
            mtime_ns=int(data["mtime_ns"]),
            digest=data["digest"],
        )


def compute_digest(path: Path) -> str:
    """xxh64 of the file bytes, read in 64KB chunks."""
    hasher = xxhash.xxh64()
    with open(path, "rb") as f:
        while chunk := f.read(CHUNK_SIZE):
            hasher.update(chunk)
    return hasher.hexdigest()


def read_first_line(path: Path) -> str:
    with open(path, "r", encoding="utf-8", errors="replace") as f:
        line = f.readline()
    return line.rstrip("\r\n")[:FIRST_LINE_MAX]


def summarize_file(path: Path) -> FileSummary:
    """Extract a FileSummary. Raises OSError if the file cannot be read."""
    path = Path(path)
    stat = path.stat()
    return FileSummary(
        name=path.name,
        first_line=read_first_line(path),
        size=stat.st_size,
        mtime_ns=stat.st_mtime_ns,
        digest=compute_digest(path),
    )
