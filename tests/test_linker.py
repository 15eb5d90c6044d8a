"""
Tests for the linker — the per-target conflict state machine.
"""

import os
from pathlib import Path

import pytest

from gdf.core.engine.errors import (
    SourceMissingError,
    TargetExistsError,
    UnknownStrategyError,
    UnsupportedModeError,
)
from gdf.core.engine.history import HistoryManager
from gdf.core.engine.linker import Linker, LinkResult, remove_all, resolve_symlink_destination, resolve_target
from gdf.core.models.bundle import Dotfile, TargetMap
from gdf.core.models.platform import Platform


@pytest.fixture
def history(gdf_root: Path) -> HistoryManager:
    return HistoryManager.for_root(gdf_root)


@pytest.fixture
def zshrc(home, write_source) -> Dotfile:
    write_source("zsh/.zshrc", "export EDITOR=vim\n")
    return Dotfile(source="zsh/.zshrc", target="~/.zshrc")


# ── Link ─────────────────────────────────────────────────────────


class TestLink:
    def test_creates_symlink_when_absent(self, gdf_root, home, zshrc):
        result = Linker().link(zshrc, gdf_root)

        target = home / ".zshrc"
        assert result == LinkResult(target=target, source=gdf_root / "dotfiles" / "zsh/.zshrc", action="created")
        assert target.is_symlink()
        assert os.readlink(target) == str(gdf_root / "dotfiles" / "zsh" / ".zshrc")
        assert result.changed

    def test_creates_parent_directories(self, gdf_root, home, write_source):
        write_source("nvim/init.lua", "-- nvim")
        df = Dotfile(source="nvim/init.lua", target="~/.config/nvim/init.lua")
        Linker().link(df, gdf_root)
        assert (home / ".config" / "nvim" / "init.lua").is_symlink()

    def test_second_link_is_unchanged(self, gdf_root, home, zshrc, history):
        linker = Linker("replace", history)
        linker.link(zshrc, gdf_root)
        before = os.lstat(home / ".zshrc")

        again = linker.link(zshrc, gdf_root)

        assert again.action == "unchanged"
        assert again.snapshot is None
        assert not again.changed
        assert os.lstat(home / ".zshrc").st_ino == before.st_ino
        assert not history.directory.exists()

    def test_source_missing(self, gdf_root, home):
        df = Dotfile(source="nope/.rc", target="~/.rc")
        with pytest.raises(SourceMissingError):
            Linker().link(df, gdf_root)
        assert not (home / ".rc").exists()

    def test_conflict_error_strategy(self, gdf_root, home, zshrc):
        (home / ".zshrc").write_text("mine")
        with pytest.raises(TargetExistsError) as exc:
            Linker("error").link(zshrc, gdf_root)
        assert exc.value.path == str(home / ".zshrc")
        assert (home / ".zshrc").read_text() == "mine"

    def test_conflict_unknown_strategy(self, gdf_root, home, zshrc):
        (home / ".zshrc").write_text("mine")
        with pytest.raises(UnknownStrategyError):
            Linker("prompt").link(zshrc, gdf_root)
        assert (home / ".zshrc").read_text() == "mine"

    @pytest.mark.parametrize("strategy", ["replace", "force"])
    def test_replace_snapshots_then_links(self, gdf_root, home, zshrc, history, strategy):
        (home / ".zshrc").write_text("mine")

        result = Linker(strategy, history).link(zshrc, gdf_root)

        assert result.action == "replaced"
        assert result.snapshot is not None
        assert result.snapshot.stored_path.read_text() == "mine"
        assert (home / ".zshrc").is_symlink()

    def test_replace_directory_target(self, gdf_root, home, write_source, history):
        write_source("app/config", "x")
        (home / "config").mkdir()
        (home / "config" / "inner").write_text("y")
        df = Dotfile(source="app/config", target="~/config")
        # a directory cannot be snapshotted
        with pytest.raises(UnsupportedModeError):
            Linker("replace", history).link(df, gdf_root)
        result = Linker("replace").link(df, gdf_root)
        assert result.action == "replaced"
        assert (home / "config").is_symlink()

    def test_replace_foreign_symlink(self, gdf_root, home, zshrc, history):
        os.symlink("/somewhere/else", home / ".zshrc")

        result = Linker("replace", history).link(zshrc, gdf_root)

        assert result.snapshot.kind == "symlink"
        assert result.snapshot.link_target == "/somewhere/else"
        assert os.readlink(home / ".zshrc") == str(gdf_root / "dotfiles" / "zsh" / ".zshrc")

    def test_secret_dotfile_warns(self, gdf_root, home, write_source, caplog):
        write_source("ssh/config", "Host *")
        df = Dotfile(source="ssh/config", target="~/.ssh/config", secret=True)
        with caplog.at_level("WARNING"):
            Linker().link(df, gdf_root)
        assert "secret" in caplog.text


class TestBackupAndReplace:
    def test_single_backup(self, gdf_root, home, zshrc, history):
        (home / ".zshrc").write_text("v1")

        result = Linker("backup_and_replace", history).link(zshrc, gdf_root)

        assert result.action == "backed_up"
        assert (home / ".zshrc.gdf.bak").read_text() == "v1"
        assert result.snapshot.stored_path.read_text() == "v1"

    def test_rotation_keeps_three(self, gdf_root, home, zshrc):
        target = home / ".zshrc"
        (home / ".zshrc.gdf.bak").write_text("A")
        (home / ".zshrc.gdf.bak.1").write_text("B")
        (home / ".zshrc.gdf.bak.2").write_text("C")
        target.write_text("D")

        Linker("backup_and_replace").link(zshrc, gdf_root)

        assert (home / ".zshrc.gdf.bak").read_text() == "D"
        assert (home / ".zshrc.gdf.bak.1").read_text() == "A"
        assert (home / ".zshrc.gdf.bak.2").read_text() == "B"
        assert not (home / ".zshrc.gdf.bak.3").exists()
        assert target.is_symlink()

    def test_rotation_with_gap(self, gdf_root, home, zshrc):
        (home / ".zshrc.gdf.bak").write_text("A")
        (home / ".zshrc").write_text("B")

        Linker("backup_and_replace").link(zshrc, gdf_root)

        assert (home / ".zshrc.gdf.bak").read_text() == "B"
        assert (home / ".zshrc.gdf.bak.1").read_text() == "A"
        assert not (home / ".zshrc.gdf.bak.2").exists()


# ── Plan ─────────────────────────────────────────────────────────


class TestPlan:
    def test_states(self, gdf_root, home, zshrc):
        linker = Linker("error")
        assert linker.plan(zshrc, gdf_root) == "create"
        linker.link(zshrc, gdf_root)
        assert linker.plan(zshrc, gdf_root) == "unchanged"

        os.remove(home / ".zshrc")
        (home / ".zshrc").write_text("mine")
        assert linker.plan(zshrc, gdf_root) == "conflict:error"

        missing = Dotfile(source="none", target="~/.none")
        assert linker.plan(missing, gdf_root) == "source_missing"

    def test_plan_touches_nothing(self, gdf_root, home, zshrc):
        Linker("replace").plan(zshrc, gdf_root)
        assert not (home / ".zshrc").exists()

    def test_directory_target_unsupported_when_snapshotting(self, gdf_root, home, zshrc, history):
        (home / ".zshrc").mkdir()
        assert Linker("replace", history=history).plan(zshrc, gdf_root) == "unsupported_mode"
        assert Linker("backup_and_replace", history=history).plan(zshrc, gdf_root) == "unsupported_mode"
        # nothing is snapshotted here
        assert Linker("replace").plan(zshrc, gdf_root) == "conflict:replace"
        assert Linker("error", history=history).plan(zshrc, gdf_root) == "conflict:error"


# ── Unlink / restore ─────────────────────────────────────────────


class TestUnlink:
    def test_link_unlink_round_trip(self, gdf_root, home, zshrc):
        linker = Linker()
        linker.link(zshrc, gdf_root)
        linker.unlink(zshrc)
        assert not os.path.lexists(home / ".zshrc")

    def test_unlink_managed_snapshots(self, gdf_root, home, zshrc, history):
        linker = Linker(history=history)
        linker.link(zshrc, gdf_root)

        snap = linker.unlink_managed(zshrc, gdf_root)

        assert snap is not None
        assert snap.kind == "symlink"
        assert not os.path.lexists(home / ".zshrc")

    def test_unlink_managed_leaves_real_file(self, gdf_root, home, zshrc):
        (home / ".zshrc").write_text("mine")
        assert Linker().unlink_managed(zshrc, gdf_root) is None
        assert (home / ".zshrc").read_text() == "mine"

    def test_unlink_managed_leaves_foreign_link(self, gdf_root, home, zshrc):
        os.symlink("/etc/hosts", home / ".zshrc")
        assert Linker().unlink_managed(zshrc, gdf_root) is None
        assert (home / ".zshrc").is_symlink()

    def test_unlink_absent_is_noop(self, gdf_root, home, zshrc):
        assert Linker().unlink_managed(zshrc, gdf_root) is None


class TestRestore:
    def test_converts_link_to_copy(self, gdf_root, home, zshrc):
        linker = Linker()
        linker.link(zshrc, gdf_root)

        assert linker.restore(zshrc, gdf_root) is True

        target = home / ".zshrc"
        assert not target.is_symlink()
        assert target.read_text() == "export EDITOR=vim\n"

    def test_leaves_real_file(self, gdf_root, home, zshrc):
        (home / ".zshrc").write_text("mine")
        assert Linker().restore(zshrc, gdf_root) is False

    def test_leaves_foreign_link(self, gdf_root, home, zshrc):
        os.symlink("/etc/hosts", home / ".zshrc")
        assert Linker().restore(zshrc, gdf_root) is False


# ── Helpers ──────────────────────────────────────────────────────


class TestHelpers:
    def test_resolve_target_per_platform(self, home):
        df = Dotfile(
            source="code/settings.json",
            target=TargetMap(default="~/.config/Code/settings.json", macos="~/Library/Code/settings.json"),
        )
        assert resolve_target(df, Platform.macos()) == home / "Library/Code/settings.json"
        assert resolve_target(df, Platform.linux("arch")) == home / ".config/Code/settings.json"

    def test_relative_symlink_destination(self, tmp_path):
        (tmp_path / "a").mkdir()
        link = tmp_path / "a" / "link"
        os.symlink("../b/file", link)
        assert resolve_symlink_destination(link) == tmp_path / "b" / "file"

    def test_remove_all(self, tmp_path):
        d = tmp_path / "d"
        (d / "nested").mkdir(parents=True)
        (d / "nested" / "f").write_text("x")
        remove_all(d)
        assert not d.exists()
        remove_all(tmp_path / "missing")
