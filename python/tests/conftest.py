"""
Test Configuration - Shared fixtures for directory index tests.

Uses pytest fixtures to create isolated test environments.
"""

import os
import shutil
import tempfile
import threading
import time
from pathlib import Path
from typing import Callable, Generator

import pytest

from dirwatch.codec import JsonCodec
from dirwatch.config import WatcherConfig, set_config
from dirwatch.extractors import FileSummary, summarize_file
from dirwatch.index import DirectoryIndex


DEFAULT_CONTENT = "TEST\nHello World"


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files."""
    tmp = tempfile.mkdtemp(prefix="dirwatch_test_")
    # Resolve to handle macOS /var -> /private/var symlink
    resolved = Path(tmp).resolve()
    yield resolved
    shutil.rmtree(str(resolved), ignore_errors=True)


@pytest.fixture
def watched_dir(temp_dir: Path) -> Path:
    """The directory under index."""
    path = temp_dir / "watched"
    path.mkdir()
    return path


@pytest.fixture
def test_config() -> Generator[WatcherConfig, None, None]:
    """Create an isolated test configuration."""
    config = WatcherConfig(
        scan_concurrency=4,
        lock_stripes=8,
        observer_timeout=0.05,
        stop_timeout=2.0,
        fsync=False,
    )
    set_config(config)
    yield config
    set_config(None)


class CountingExtractor:
    """summarize_file that counts its calls and can be told to fail."""

    def __init__(self):
        self.calls = 0
        self.seen: list[str] = []
        self.fail_on: set[str] = set()
        self._lock = threading.Lock()

    def __call__(self, path: Path) -> FileSummary:
        with self._lock:
            self.calls += 1
            self.seen.append(path.name)
        if path.name in self.fail_on:
            raise ValueError(f"cannot parse {path.name}")
        return summarize_file(path)


@pytest.fixture
def extractor() -> CountingExtractor:
    return CountingExtractor()


@pytest.fixture
def make_index(
    watched_dir: Path, test_config: WatcherConfig, extractor: CountingExtractor
) -> Generator[Callable[..., DirectoryIndex], None, None]:
    """Factory for indexes over watched_dir; every index is closed at teardown."""
    created: list[DirectoryIndex] = []

    def factory(**kwargs) -> DirectoryIndex:
        kwargs.setdefault("extract_value", extractor)
        kwargs.setdefault("codec", JsonCodec(decode=FileSummary.from_dict))
        kwargs.setdefault("config", test_config)
        extension = kwargs.pop("extension", "txt")
        index = DirectoryIndex(watched_dir, extension, **kwargs)
        created.append(index)
        return index

    yield factory

    for index in created:
        index.close()


class FsHelper:
    """File operations that mimic how editors and tools touch files."""

    def __init__(self, directory: Path, staging: Path):
        self.directory = directory
        self.staging = staging

    def touch(self, name: str, content: str = DEFAULT_CONTENT) -> Path:
        """Write content to a staging file, then move it into place atomically."""
        fd, temp = tempfile.mkstemp(dir=self.staging)
        with os.fdopen(fd, "w") as f:
            f.write(content)
        target = self.directory / name
        os.replace(temp, target)
        return target

    def overwrite(self, name: str, content: str) -> Path:
        """Rewrite a file in place and push its mtime forward."""
        path = self.directory / name
        before = path.stat().st_mtime_ns
        path.write_text(content)
        # Coarse filesystem clocks may not move the mtime on a quick rewrite
        bumped = max(path.stat().st_mtime_ns, before + 1_000_000_000)
        os.utime(path, ns=(bumped, bumped))
        return path

    def delete(self, name: str):
        (self.directory / name).unlink()

    def move(self, old_name: str, new_name: str):
        os.rename(self.directory / old_name, self.directory / new_name)


@pytest.fixture
def fs(watched_dir: Path, temp_dir: Path) -> FsHelper:
    staging = temp_dir / "staging"
    staging.mkdir()
    return FsHelper(watched_dir, staging)


def wait_until(predicate: Callable[[], bool], timeout: float = 5.0) -> bool:
    """Poll until predicate() holds or the timeout passes."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.02)
    return predicate()


@pytest.fixture
def wait_for() -> Callable[..., bool]:
    return wait_until


@pytest.fixture
def sample_files(fs: FsHelper) -> dict[str, Path]:
    """Ten relevant files plus a few that must be ignored."""
    files = {}
    for i in range(10):
        files[f"File{i}.txt"] = fs.touch(f"File{i}.txt", f"Line {i}\nbody")

    files["notes.md"] = fs.touch("notes.md", "# not indexed")
    files["archive.txt.bak"] = fs.touch("archive.txt.bak", "not indexed")
    (fs.directory / "subdir.txt").mkdir()
    return files
