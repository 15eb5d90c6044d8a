"""
Tests for the snapshot history store — capture and quota eviction.
"""

import hashlib
import os
from pathlib import Path

import pytest

from gdf.core.engine.errors import UnsupportedModeError
from gdf.core.engine.history import DEFAULT_MAX_BYTES, HistoryManager


@pytest.fixture
def store(tmp_path: Path) -> HistoryManager:
    return HistoryManager(tmp_path / ".history", 1024)


class TestCapture:
    def test_missing_path_returns_none(self, store, tmp_path):
        assert store.capture(tmp_path / "absent") is None
        assert not store.directory.exists()

    def test_regular_file(self, store, tmp_path):
        target = tmp_path / ".zshrc"
        target.write_text("export A=1\n")
        os.chmod(target, 0o600)

        snap = store.capture(target)

        assert snap is not None
        assert snap.kind == "file"
        assert snap.stored_path.parent == store.directory
        assert snap.stored_path.name.endswith(".snap")
        assert snap.stored_path.read_text() == "export A=1\n"
        assert snap.mode & 0o777 == 0o600
        assert snap.mode_octal == "0600"
        assert snap.size_bytes == len("export A=1\n")
        assert snap.checksum == hashlib.sha256(b"export A=1\n").hexdigest()
        assert snap.original_path == target

    def test_symlink_stores_destination_text(self, store, tmp_path):
        link = tmp_path / "link"
        os.symlink("/etc/hosts", link)

        snap = store.capture(link)

        assert snap is not None
        assert snap.kind == "symlink"
        assert snap.link_target == "/etc/hosts"
        assert snap.stored_path.read_text() == "/etc/hosts"
        assert snap.mode == 0o777

    def test_dangling_symlink_is_captured(self, store, tmp_path):
        link = tmp_path / "dangling"
        os.symlink(tmp_path / "nowhere", link)
        snap = store.capture(link)
        assert snap is not None
        assert snap.link_target == str(tmp_path / "nowhere")

    def test_directory_is_unsupported(self, store, tmp_path):
        d = tmp_path / "somedir"
        d.mkdir()
        with pytest.raises(UnsupportedModeError):
            store.capture(d)

    def test_to_details_keys(self, store, tmp_path):
        target = tmp_path / "f"
        target.write_text("x")
        details = store.capture(target).to_details()
        assert set(details) == {
            "snapshot_id",
            "snapshot_path",
            "snapshot_kind",
            "snapshot_link_target",
            "snapshot_mode",
            "snapshot_checksum",
            "snapshot_size_bytes",
            "snapshot_captured_at",
        }
        assert details["snapshot_captured_at"].endswith("Z")


class TestQuota:
    def test_defaults_when_non_positive(self, tmp_path):
        assert HistoryManager(tmp_path, 0).max_bytes == DEFAULT_MAX_BYTES
        assert HistoryManager(tmp_path, -5).max_bytes == DEFAULT_MAX_BYTES
        assert HistoryManager.for_root(tmp_path, 0).max_bytes == DEFAULT_MAX_BYTES
        assert HistoryManager.for_root(tmp_path, 2).max_bytes == 2 * 1024 * 1024
        assert HistoryManager.for_root(tmp_path).directory == tmp_path / ".history"

    def test_evicts_oldest_first(self, tmp_path):
        store = HistoryManager(tmp_path / ".history", 250)
        store.directory.mkdir()
        old = store.directory / "1.snap"
        mid = store.directory / "2.snap"
        old.write_bytes(b"a" * 100)
        mid.write_bytes(b"b" * 100)
        os.utime(old, (1_000, 1_000))
        os.utime(mid, (2_000, 2_000))

        target = tmp_path / "new"
        target.write_bytes(b"c" * 100)
        snap = store.capture(target)

        assert not old.exists()
        assert mid.exists()
        assert snap.stored_path.exists()
        assert store.total_bytes() <= 250

    def test_fresh_snapshot_is_never_evicted(self, tmp_path):
        store = HistoryManager(tmp_path / ".history", 10)
        target = tmp_path / "big"
        target.write_bytes(b"x" * 100)

        snap = store.capture(target)

        assert snap.stored_path.exists()
        assert store.total_bytes() == 100

    def test_under_quota_keeps_everything(self, store, tmp_path):
        for i in range(3):
            f = tmp_path / f"f{i}"
            f.write_text("small")
            store.capture(f)
        assert len(list(store.directory.iterdir())) == 3

    def test_total_bytes_empty_store(self, tmp_path):
        assert HistoryManager(tmp_path / "nope").total_bytes() == 0
