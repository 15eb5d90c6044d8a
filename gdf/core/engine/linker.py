"""
Linker — reconciles a desired symlink with whatever occupies the target.

State machine per target (``lstat``):

    absent                         → create symlink
    symlink, readlink == source    → nothing to do
    anything else                  → conflict policy, then create symlink

The conflict policy is picked at construction:

    error               fail with TargetExistsError
    replace / force     snapshot, remove, link
    backup_and_replace  snapshot, rotate <target>.gdf.bak[.N], rename, link

``link()`` returns the snapshot it captured (if any) as part of its
result, so callers can log it next to the link operation.
"""

from __future__ import annotations

import logging
import os
import shutil
import stat
from dataclasses import dataclass
from pathlib import Path

from gdf.core.engine.errors import (
    FilesystemError,
    SourceMissingError,
    TargetExistsError,
    UnknownStrategyError,
)
from gdf.core.engine.history import HistoryManager
from gdf.core.models.bundle import Dotfile
from gdf.core.models.operation import Snapshot
from gdf.core.models.platform import Platform
from gdf.core.paths import expand_path, source_path

logger = logging.getLogger(__name__)

STRATEGY_ERROR = "error"
STRATEGY_REPLACE = "replace"
STRATEGY_FORCE = "force"
STRATEGY_BACKUP = "backup_and_replace"

STRATEGIES = (STRATEGY_ERROR, STRATEGY_REPLACE, STRATEGY_FORCE, STRATEGY_BACKUP)

BACKUP_SUFFIX = ".gdf.bak"
MAX_BACKUPS = 3


@dataclass(frozen=True)
class LinkResult:
    """What ``Linker.link`` did to one target.

    ``action`` is ``created`` (target was absent), ``unchanged`` (already
    linked), ``replaced`` or ``backed_up`` (conflict resolved, then linked).
    """

    target: Path
    source: Path
    action: str
    snapshot: Snapshot | None = None

    @property
    def changed(self) -> bool:
        return self.action != "unchanged"


def resolve_target(dotfile: Dotfile, platform: Platform | None = None) -> Path:
    """Expanded target path of *dotfile* on *platform*."""
    if platform is not None:
        raw = dotfile.target_for(platform.os)
    else:
        raw = dotfile.target_for("")
    return Path(expand_path(raw))


def resolve_symlink_destination(link: Path) -> Path:
    """Where *link* points, made absolute against the link's own directory."""
    dest = os.readlink(link)
    if not os.path.isabs(dest):
        dest = os.path.join(os.path.dirname(link), dest)
    return Path(os.path.normpath(dest))


def remove_all(path: Path) -> None:
    """Remove a file, symlink or directory tree. Missing paths are fine."""
    try:
        st = os.lstat(path)
    except FileNotFoundError:
        return
    if stat.S_ISDIR(st.st_mode):
        shutil.rmtree(path)
    else:
        os.remove(path)


class Linker:
    """Creates and removes dotfile symlinks.

    Args:
        strategy: Conflict policy, one of ``STRATEGIES``. Unknown values
            are rejected when a conflict actually needs resolving.
        history: Snapshot store. Without one, conflicts are still
            resolved but nothing is captured for rollback.
    """

    def __init__(self, strategy: str = STRATEGY_ERROR, history: HistoryManager | None = None):
        self.strategy = strategy
        self._history = history

    @property
    def history(self) -> HistoryManager | None:
        return self._history

    # ── Link ────────────────────────────────────────────────────

    def link(self, dotfile: Dotfile, root: Path, platform: Platform | None = None) -> LinkResult:
        """Make ``target`` a symlink to ``<root>/dotfiles/<source>``.

        Raises:
            SourceMissingError: The source file is not in the repository.
            TargetExistsError: Conflict under the ``error`` strategy.
            UnknownStrategyError: Conflict under an unrecognised strategy.
            FilesystemError: Any syscall along the way failed.
        """
        source = source_path(root, dotfile.source)
        target = resolve_target(dotfile, platform)

        if dotfile.secret:
            logger.warning("Linking secret file %s - ensure it's gitignored", target)

        if not source.exists():
            raise SourceMissingError(str(source))

        try:
            target.parent.mkdir(mode=0o755, parents=True, exist_ok=True)
        except OSError as e:
            raise FilesystemError("creating directory for target", str(target.parent), e) from e

        action = "created"
        snapshot: Snapshot | None = None
        try:
            st = os.lstat(target)
        except FileNotFoundError:
            st = None
        except OSError as e:
            raise FilesystemError("checking target", str(target), e) from e

        if st is not None:
            if stat.S_ISLNK(st.st_mode) and self._readlink(target) == str(source):
                logger.debug("Already linked: %s → %s", target, source)
                return LinkResult(target=target, source=source, action="unchanged")
            snapshot, action = self._resolve_conflict(target)

        try:
            os.symlink(source, target)
        except OSError as e:
            raise FilesystemError("creating symlink", str(target), e) from e

        logger.debug("Linked %s → %s (%s)", target, source, action)
        return LinkResult(target=target, source=source, action=action, snapshot=snapshot)

    def plan(self, dotfile: Dotfile, root: Path, platform: Platform | None = None) -> str:
        """Describe what ``link()`` would do, touching nothing.

        Returns one of ``create``, ``unchanged``, ``source_missing``,
        ``unsupported_mode`` (the target cannot be snapshotted) or
        ``conflict:<strategy>``.
        """
        source = source_path(root, dotfile.source)
        target = resolve_target(dotfile, platform)
        if not source.exists():
            return "source_missing"
        try:
            st = os.lstat(target)
        except FileNotFoundError:
            return "create"
        except OSError as e:
            raise FilesystemError("checking target", str(target), e) from e
        if stat.S_ISLNK(st.st_mode) and self._readlink(target) == str(source):
            return "unchanged"
        snapshotted = self.strategy != STRATEGY_ERROR and self._history is not None
        if snapshotted and not (stat.S_ISLNK(st.st_mode) or stat.S_ISREG(st.st_mode)):
            return "unsupported_mode"
        return f"conflict:{self.strategy}"

    # ── Unlink / restore ────────────────────────────────────────

    def unlink(self, dotfile: Dotfile, platform: Platform | None = None) -> None:
        """Remove the target symlink whatever it points to."""
        self.unlink_managed(dotfile, None, platform)

    def unlink_managed(
        self,
        dotfile: Dotfile,
        root: Path | None,
        platform: Platform | None = None,
    ) -> Snapshot | None:
        """Remove a managed symlink, snapshotting it first.

        Real files are left alone. When *root* and ``dotfile.source`` are
        both given, only a link that resolves to the managed source is
        removed.

        Returns:
            The snapshot of the removed link, or None (nothing removed,
            or no history store attached).
        """
        target = resolve_target(dotfile, platform)
        try:
            st = os.lstat(target)
        except FileNotFoundError:
            return None
        except OSError as e:
            raise FilesystemError("checking target", str(target), e) from e

        if not stat.S_ISLNK(st.st_mode):
            return None

        if root is not None and dotfile.source:
            expected = Path(os.path.normpath(source_path(root, dotfile.source)))
            try:
                actual = resolve_symlink_destination(target)
            except OSError as e:
                raise FilesystemError("reading symlink destination", str(target), e) from e
            if actual != expected:
                logger.debug("Not removing %s: points at %s, not %s", target, actual, expected)
                return None

        snapshot = self._capture(target)
        try:
            os.remove(target)
        except OSError as e:
            raise FilesystemError("removing symlink", str(target), e) from e
        return snapshot

    def restore(self, dotfile: Dotfile, root: Path, platform: Platform | None = None) -> bool:
        """Replace a managed symlink with a real copy of its source.

        The inverse of ``link()`` when no snapshot exists. Targets that are
        absent, not symlinks, or pointing elsewhere are left alone.

        Returns:
            True if the target was converted to a regular file.
        """
        source = Path(os.path.abspath(source_path(root, dotfile.source)))
        target = resolve_target(dotfile, platform)
        try:
            st = os.lstat(target)
        except FileNotFoundError:
            return False
        except OSError as e:
            raise FilesystemError("checking target", str(target), e) from e

        if not stat.S_ISLNK(st.st_mode):
            return False

        try:
            actual = Path(os.path.abspath(resolve_symlink_destination(target)))
        except OSError as e:
            raise FilesystemError("reading symlink", str(target), e) from e
        if actual != source:
            return False

        try:
            os.remove(target)
        except OSError as e:
            raise FilesystemError("removing symlink", str(target), e) from e
        try:
            shutil.copy(source, target)
        except OSError as e:
            raise FilesystemError("copying source file", str(source), e) from e
        logger.debug("Restored %s from %s", target, source)
        return True

    # ── Conflict policy ─────────────────────────────────────────

    def _resolve_conflict(self, target: Path) -> tuple[Snapshot | None, str]:
        if self.strategy == STRATEGY_ERROR:
            raise TargetExistsError(str(target))

        if self.strategy in (STRATEGY_REPLACE, STRATEGY_FORCE):
            snapshot = self._capture(target)
            try:
                remove_all(target)
            except OSError as e:
                raise FilesystemError("removing existing target", str(target), e) from e
            return snapshot, "replaced"

        if self.strategy == STRATEGY_BACKUP:
            snapshot = self._capture(target)
            self._rotate_backups(target)
            backup = Path(f"{target}{BACKUP_SUFFIX}")
            try:
                os.rename(target, backup)
            except OSError as e:
                raise FilesystemError("backing up existing target", str(target), e) from e
            logger.info("Backed up %s → %s", target, backup)
            return snapshot, "backed_up"

        raise UnknownStrategyError(self.strategy, path=str(target))

    @staticmethod
    def _rotate_backups(target: Path) -> None:
        """Shift ``.gdf.bak`` → ``.gdf.bak.1`` → ... keeping ``MAX_BACKUPS``."""
        for i in range(MAX_BACKUPS - 1, -1, -1):
            old = Path(f"{target}{BACKUP_SUFFIX}") if i == 0 else Path(f"{target}{BACKUP_SUFFIX}.{i}")
            if not os.path.lexists(old):
                continue
            try:
                if i == MAX_BACKUPS - 1:
                    remove_all(old)
                else:
                    os.rename(old, Path(f"{target}{BACKUP_SUFFIX}.{i + 1}"))
            except OSError as e:
                raise FilesystemError("rotating backup", str(old), e) from e

    # ── Helpers ─────────────────────────────────────────────────

    def _capture(self, path: Path) -> Snapshot | None:
        if self._history is None:
            return None
        return self._history.capture(path)

    @staticmethod
    def _readlink(path: Path) -> str:
        try:
            return os.readlink(path)
        except OSError as e:
            raise FilesystemError("reading symlink", str(path), e) from e
