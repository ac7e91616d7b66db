"""
Store Tests - Verify durable index record behavior.

Tests:
- Write/read round trip and mtime stamping
- Exact-equality staleness check
- Atomic write (no partial records, old record survives failures)
- Leftover temporary cleanup
"""

import os
import stat
from pathlib import Path
from unittest.mock import patch

import pytest

from dirwatch.codec import JsonCodec
from dirwatch.errors import CorruptRecordError
from dirwatch.extractors import FileSummary
from dirwatch.store import IndexStore, TEMP_PREFIX, TEMP_SUFFIX, current_umask


MTIME_NS = 1_700_000_000_123_456_789


@pytest.fixture
def store(temp_dir: Path) -> IndexStore:
    s = IndexStore(temp_dir / ".watcherindex", JsonCodec(decode=FileSummary.from_dict))
    s.ensure()
    return s


@pytest.fixture
def summary() -> FileSummary:
    return FileSummary(
        name="a.txt", first_line="TEST", size=16, mtime_ns=MTIME_NS, digest="abc123"
    )


class TestIndexStore:
    """Tests for IndexStore."""

    def test_ensure_creates_directory(self, temp_dir):
        """ensure() creates a missing storage area once."""
        s = IndexStore(temp_dir / "idx", JsonCodec())
        assert s.ensure() is True
        assert (temp_dir / "idx").is_dir()
        assert s.ensure() is False

    def test_round_trip(self, store, summary):
        """A written value reads back equal."""
        store.write("a.txt", summary, MTIME_NS)
        assert store.read("a.txt") == summary

    def test_round_trip_plain_json(self, temp_dir):
        """Values without a decode hook come back as JSON objects."""
        s = IndexStore(temp_dir / "idx", JsonCodec())
        s.ensure()
        value = {"size": 3, "tags": ["x", "ü"], "nested": {"ok": True}}
        s.write("b.txt", value, MTIME_NS)
        assert s.read("b.txt") == value

    def test_write_stamps_source_mtime(self, store, summary):
        """The record's mtime mirrors the source mtime exactly."""
        store.write("a.txt", summary, MTIME_NS)
        assert store.record_path("a.txt").stat().st_mtime_ns == MTIME_NS

    def test_is_valid_exact_match_only(self, store, summary):
        """Only an exactly equal mtime is valid, newer is stale too."""
        store.write("a.txt", summary, MTIME_NS)
        assert store.is_valid("a.txt", MTIME_NS)
        assert not store.is_valid("a.txt", MTIME_NS + 1)
        assert not store.is_valid("a.txt", MTIME_NS - 1)

    def test_is_valid_missing_record(self, store):
        """A missing record is never valid."""
        assert not store.is_valid("missing.txt", MTIME_NS)

    def test_overwrite_replaces_record(self, store, summary):
        """Writing again replaces the previous record."""
        store.write("a.txt", summary, MTIME_NS)
        changed = FileSummary("a.txt", "CHANGED", 7, MTIME_NS + 5, "def")
        store.write("a.txt", changed, MTIME_NS + 5)

        assert store.read("a.txt") == changed
        assert store.is_valid("a.txt", MTIME_NS + 5)
        assert store.names() == ["a.txt"]

    def test_failed_encode_leaves_nothing(self, store):
        """A value the codec rejects leaves no record and no temp file."""
        with pytest.raises(TypeError):
            store.write("a.txt", {"bad": object()}, MTIME_NS)

        assert list(store.root.iterdir()) == []

    def test_failed_rename_keeps_old_record(self, store, summary):
        """If the final rename fails, the old complete record is untouched."""
        store.write("a.txt", summary, MTIME_NS)
        changed = FileSummary("a.txt", "CHANGED", 7, MTIME_NS + 5, "def")

        with patch("dirwatch.store.os.replace", side_effect=OSError("disk full")):
            with pytest.raises(OSError):
                store.write("a.txt", changed, MTIME_NS + 5)

        assert store.read("a.txt") == summary
        assert store.is_valid("a.txt", MTIME_NS)
        assert [p.name for p in store.root.iterdir()] == ["a.txt"]

    def test_read_corrupt_record(self, store):
        """Undecodable content raises CorruptRecordError."""
        store.record_path("a.txt").write_text("{not json")
        with pytest.raises(CorruptRecordError) as info:
            store.read("a.txt")
        assert info.value.path == store.record_path("a.txt")

    def test_read_wrong_shape_is_corrupt(self, store):
        """Valid JSON that the decode hook rejects is also corrupt."""
        store.record_path("a.txt").write_text('{"name": "a.txt"}')
        with pytest.raises(CorruptRecordError):
            store.read("a.txt")

    def test_delete(self, store, summary):
        """delete() removes a record and tolerates a missing one."""
        store.write("a.txt", summary, MTIME_NS)
        assert store.delete("a.txt") is True
        assert store.delete("a.txt") is False
        assert store.names() == []

    def test_rename_preserves_mtime(self, store, summary):
        """Renaming a record keeps its stamped mtime."""
        store.write("a.txt", summary, MTIME_NS)
        store.rename("a.txt", "b.txt")

        assert store.names() == ["b.txt"]
        assert store.is_valid("b.txt", MTIME_NS)

    def test_rename_overwrites_destination(self, store, summary):
        """Renaming onto an existing record replaces it."""
        other = FileSummary("b.txt", "OTHER", 5, MTIME_NS + 9, "fff")
        store.write("a.txt", summary, MTIME_NS)
        store.write("b.txt", other, MTIME_NS + 9)

        store.rename("a.txt", "b.txt")

        assert store.read("b.txt") == summary
        assert store.names() == ["b.txt"]

    def test_rename_missing_raises(self, store):
        """Renaming a record that does not exist raises FileNotFoundError."""
        with pytest.raises(FileNotFoundError):
            store.rename("nope.txt", "b.txt")

    def test_names_skip_temporaries_and_dirs(self, store, summary):
        """names() lists only real records."""
        store.write("a.txt", summary, MTIME_NS)
        (store.root / f"{TEMP_PREFIX}abc{TEMP_SUFFIX}").write_text("partial")
        (store.root / "nested").mkdir()

        assert store.names() == ["a.txt"]

    def test_purge_temporaries(self, store, summary):
        """Leftovers from an interrupted write are removed."""
        store.write("a.txt", summary, MTIME_NS)
        leftover = store.root / f"{TEMP_PREFIX}abc{TEMP_SUFFIX}"
        leftover.write_text("partial")

        assert store.purge_temporaries() == 1
        assert not leftover.exists()
        assert store.record_path("a.txt").exists()

    def test_missing_root_is_empty(self, temp_dir):
        """A storage area that does not exist has no records."""
        s = IndexStore(temp_dir / "absent", JsonCodec())
        assert s.names() == []
        assert s.purge_temporaries() == 0

    def test_fsync_enabled(self, store, summary):
        """Records are fsynced before the rename when enabled."""
        with patch("dirwatch.store.os.fsync", wraps=os.fsync) as fsync:
            store.write("a.txt", summary, MTIME_NS)
        assert fsync.call_count == 1

    def test_record_mode_follows_umask(self, store, summary):
        """Records get the umask-derived mode, not the 0600 of the temp file."""
        old_mask = os.umask(0o022)
        try:
            s = IndexStore(store.root, store.codec)
            s.write("a.txt", summary, MTIME_NS)
        finally:
            os.umask(old_mask)

        assert stat.S_IMODE(s.record_path("a.txt").stat().st_mode) == 0o644

    def test_current_umask_is_restored(self):
        old_mask = os.umask(0o027)
        try:
            assert current_umask() == 0o027
            assert current_umask() == 0o027
        finally:
            os.umask(old_mask)
