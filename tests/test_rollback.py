"""
Tests for the rollback executor — log walking, snapshot restore, candidates.
"""

import json
import os
import stat
from pathlib import Path

import pytest

from gdf.core.engine.errors import InputValidationError, SnapshotMissingError
from gdf.core.engine.history import HistoryManager
from gdf.core.engine.linker import Linker
from gdf.core.engine.oplog import OperationLog
from gdf.core.engine.rollback import (
    find_candidates,
    latest_operation_log,
    list_operation_logs,
    load_operation_log,
    parse_mode,
    remove_symlink_if_managed,
    restore_snapshot,
    rollback_operations,
    rollback_target,
)
from gdf.core.models.bundle import Dotfile
from gdf.core.models.operation import Operation, SnapshotCandidate


def _write_log(root: Path, name: str, ops: list[dict]) -> Path:
    directory = root / ".operations"
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / name
    path.write_text(json.dumps(ops, indent=2))
    return path


def _link_and_log(root: Path, dotfile: Dotfile, strategy: str = "replace") -> Operation:
    """Link the way the engine does and return the logged operation."""
    linker = Linker(strategy, HistoryManager.for_root(root))
    result = linker.link(dotfile, root)
    details = {"source": dotfile.source, "source_abs": os.path.normpath(result.source)}
    if result.snapshot is not None:
        details.update(result.snapshot.to_details())
    return Operation(type="link", target=str(result.target), details=details)


# ── Operation logs ───────────────────────────────────────────────


class TestOperationLogs:
    def test_none_yet(self, gdf_root):
        assert list_operation_logs(gdf_root) == []
        assert latest_operation_log(gdf_root) == (None, [])

    def test_latest_by_name(self, gdf_root):
        _write_log(gdf_root, "20250101-000000.json", [{"type": "link", "target": "/a"}])
        _write_log(gdf_root, "20250102-000000.json", [{"type": "link", "target": "/b"}])
        (gdf_root / ".operations" / "notes.txt").write_text("ignored")

        path, ops = latest_operation_log(gdf_root)

        assert path.name == "20250102-000000.json"
        assert ops[0].target == "/b"
        assert len(list_operation_logs(gdf_root)) == 2

    def test_invalid_json(self, gdf_root):
        path = _write_log(gdf_root, "bad.json", [])
        path.write_text("{not json")
        with pytest.raises(InputValidationError):
            load_operation_log(path)

    def test_not_an_array(self, gdf_root):
        path = _write_log(gdf_root, "obj.json", [])
        path.write_text('{"type": "link"}')
        with pytest.raises(InputValidationError):
            load_operation_log(path)


# ── Rollback ─────────────────────────────────────────────────────


class TestRollbackOperations:
    def test_restores_replaced_file(self, gdf_root, home, write_source):
        write_source("zsh/.zshrc", "managed")
        target = home / ".zshrc"
        target.write_text("original")
        os.chmod(target, 0o640)
        op = _link_and_log(gdf_root, Dotfile(source="zsh/.zshrc", target="~/.zshrc"))
        assert target.is_symlink()

        result = rollback_operations(gdf_root, [op])

        assert result.ok
        assert result.restored == 1
        assert result.removed == 0
        assert not target.is_symlink()
        assert target.read_text() == "original"
        assert stat.S_IMODE(target.stat().st_mode) == 0o640

    def test_removes_link_without_snapshot(self, gdf_root, home, write_source):
        write_source("git/.gitconfig", "[user]")
        op = _link_and_log(gdf_root, Dotfile(source="git/.gitconfig", target="~/.gitconfig"))
        assert op.snapshot_path == ""

        result = rollback_operations(gdf_root, [op])

        assert result.removed == 1
        assert not os.path.lexists(home / ".gitconfig")

    def test_restores_foreign_symlink(self, gdf_root, home, write_source):
        write_source("zsh/.zshrc", "managed")
        os.symlink("/etc/zshrc", home / ".zshrc")
        op = _link_and_log(gdf_root, Dotfile(source="zsh/.zshrc", target="~/.zshrc"))

        rollback_operations(gdf_root, [op])

        assert os.readlink(home / ".zshrc") == "/etc/zshrc"

    def test_reverse_order_restores_earliest_state(self, gdf_root, home, write_source):
        write_source("a", "A")
        write_source("b", "B")
        target = home / ".rc"
        target.write_text("original")
        first = _link_and_log(gdf_root, Dotfile(source="a", target="~/.rc"))
        second = _link_and_log(gdf_root, Dotfile(source="b", target="~/.rc"))

        result = rollback_operations(gdf_root, [first, second])

        assert result.restored == 2
        assert target.read_text() == "original"

    def test_skips_non_link_operations(self, gdf_root):
        ops = [
            Operation(type="package_install", target="ripgrep", details={"manager": "brew"}),
            Operation(type="hook_run", target="echo hi"),
            Operation(type="shell_generate", target="/x/init.sh"),
        ]
        result = rollback_operations(gdf_root, ops)
        assert (result.restored, result.removed, result.failed) == (0, 0, [])

    def test_missing_snapshot_is_reported_and_walk_continues(self, gdf_root, home, write_source):
        write_source("a", "A")
        write_source("b", "B")
        (home / ".a").write_text("old-a")
        op_a = _link_and_log(gdf_root, Dotfile(source="a", target="~/.a"))
        op_b = _link_and_log(gdf_root, Dotfile(source="b", target="~/.b"))
        Path(op_a.snapshot_path).unlink()

        result = rollback_operations(gdf_root, [op_a, op_b])

        assert not result.ok
        assert len(result.failed) == 1
        assert result.failed[0].startswith(str(home / ".a"))
        assert result.removed == 1
        assert not os.path.lexists(home / ".b")

    def test_leaves_link_repointed_by_user(self, gdf_root, home, write_source):
        write_source("a", "A")
        op = _link_and_log(gdf_root, Dotfile(source="a", target="~/.a"))
        os.remove(home / ".a")
        os.symlink("/elsewhere", home / ".a")

        result = rollback_operations(gdf_root, [op])

        assert result.removed == 1
        assert os.readlink(home / ".a") == "/elsewhere"


class TestRemoveSymlinkIfManaged:
    def test_relative_link_resolved_against_its_directory(self, tmp_path):
        (tmp_path / "src").mkdir()
        (tmp_path / "src" / "file").write_text("x")
        link = tmp_path / "link"
        os.symlink("src/file", link)

        assert remove_symlink_if_managed(str(link), str(tmp_path / "src" / "file")) is True
        assert not os.path.lexists(link)

    def test_regular_file_untouched(self, tmp_path):
        f = tmp_path / "f"
        f.write_text("x")
        assert remove_symlink_if_managed(str(f)) is False
        assert f.exists()

    def test_absent(self, tmp_path):
        assert remove_symlink_if_managed(str(tmp_path / "nope")) is False


class TestRestoreSnapshot:
    def test_missing_snapshot_file(self, tmp_path):
        candidate = SnapshotCandidate(target=str(tmp_path / "t"), snapshot_path=str(tmp_path / "gone.snap"))
        with pytest.raises(SnapshotMissingError):
            restore_snapshot(str(tmp_path / "t"), candidate)

    def test_empty_kind_is_a_file(self, tmp_path):
        snap = tmp_path / "1.snap"
        snap.write_text("content")
        target = tmp_path / "deep" / "t"
        restore_snapshot(str(target), SnapshotCandidate(target=str(target), snapshot_path=str(snap)))
        assert target.read_text() == "content"
        assert stat.S_IMODE(target.stat().st_mode) == 0o644

    def test_symlink_kind_without_recorded_target(self, tmp_path):
        snap = tmp_path / "1.snap"
        snap.write_text("/etc/hosts")
        target = tmp_path / "t"
        candidate = SnapshotCandidate(target=str(target), snapshot_path=str(snap), snapshot_kind="symlink")
        restore_snapshot(str(target), candidate)
        assert os.readlink(target) == "/etc/hosts"

    @pytest.mark.parametrize("text, expected", [
        ("0644", 0o644),
        ("600", 0o600),
        ("0755", 0o755),
        ("", 0o644),
        ("rw-r--r--", 0o644),
    ])
    def test_parse_mode(self, text, expected):
        assert parse_mode(text) == expected


# ── Candidates and single-target rollback ────────────────────────


def _snapshot_op(target: str, snap: Path, captured_at: str, timestamp: str = "2025-01-01T00:00:00Z") -> dict:
    return {
        "type": "link",
        "timestamp": timestamp,
        "target": target,
        "details": {
            "snapshot_path": str(snap),
            "snapshot_kind": "file",
            "snapshot_mode": "0644",
            "snapshot_captured_at": captured_at,
        },
    }


class TestCandidates:
    def _setup(self, gdf_root: Path, target: str) -> tuple[Path, Path]:
        history = gdf_root / ".history"
        history.mkdir()
        old = history / "1.snap"
        new = history / "2.snap"
        old.write_text("old")
        new.write_text("new")
        _write_log(gdf_root, "20250101-000000.json", [_snapshot_op(target, old, "2025-01-01T00:00:00Z")])
        _write_log(gdf_root, "20250102-000000.json", [
            {"type": "link", "target": "/other"},
            _snapshot_op(target, new, "2025-01-02T00:00:00.5Z"),
        ])
        return old, new

    def test_newest_first(self, gdf_root):
        old, new = self._setup(gdf_root, "/home/u/.zshrc")

        candidates = find_candidates(gdf_root, "/home/u/.zshrc")

        assert [c.snapshot_path for c in candidates] == [str(new), str(old)]
        assert candidates[0].operation_index == 1
        assert candidates[0].operation_log.endswith("20250102-000000.json")

    def test_captured_at_falls_back_to_timestamp(self, gdf_root):
        snap = gdf_root / "x.snap"
        snap.write_text("x")
        op = _snapshot_op("/t", snap, "garbage", timestamp="2024-06-01T12:00:00Z")
        _write_log(gdf_root, "20240601-120000.json", [op])

        (candidate,) = find_candidates(gdf_root, "/t")

        assert candidate.captured_at.year == 2024

    def test_unreadable_logs_skipped(self, gdf_root):
        self._setup(gdf_root, "/t")
        (gdf_root / ".operations" / "20250103-000000.json").write_text("nope")
        assert len(find_candidates(gdf_root, "/t")) == 2

    def test_rollback_target_newest(self, gdf_root, tmp_path):
        target = tmp_path / "t"
        self._setup(gdf_root, str(target))

        result = rollback_target(gdf_root, str(target))

        assert result.restored == 1
        assert target.read_text() == "new"

    def test_rollback_target_with_selector(self, gdf_root, tmp_path):
        target = tmp_path / "t"
        self._setup(gdf_root, str(target))
        seen = []

        def pick_oldest(name, candidates):
            seen.append((name, len(candidates)))
            return candidates[-1]

        rollback_target(gdf_root, str(target), pick_oldest)

        assert seen == [(str(target), 2)]
        assert target.read_text() == "old"

    def test_rollback_target_expands_home(self, gdf_root, home):
        self._setup(gdf_root, str(home / ".zshrc"))
        rollback_target(gdf_root, "~/.zshrc")
        assert (home / ".zshrc").read_text() == "new"

    def test_rollback_target_without_snapshots(self, gdf_root):
        with pytest.raises(SnapshotMissingError):
            rollback_target(gdf_root, "/nothing/here")

    def test_selector_used_during_log_rollback(self, gdf_root, tmp_path):
        target = tmp_path / "t"
        self._setup(gdf_root, str(target))
        _path, ops = latest_operation_log(gdf_root)

        result = rollback_operations(gdf_root, ops, lambda name, cands: cands[-1])

        assert result.restored == 1
        assert target.read_text() == "old"


def test_engine_style_log_round_trip(gdf_root, home, write_source):
    """A saved log of a replace can be loaded back and rolled back."""
    write_source("zsh/.zshrc", "managed")
    (home / ".zshrc").write_text("original")
    log = OperationLog()
    op = _link_and_log(gdf_root, Dotfile(source="zsh/.zshrc", target="~/.zshrc"))
    log.log(op.type, op.target, op.details)
    log.save(gdf_root)

    _path, ops = latest_operation_log(gdf_root)
    result = rollback_operations(gdf_root, ops)

    assert result.restored == 1
    assert (home / ".zshrc").read_text() == "original"
