"""
History store — size-bounded snapshots of targets before mutation.

Every destructive change the engine makes to a target (replace, backup
rotation, unlink) is preceded by a ``capture()``. The copy lands in
``<root>/.history/<nanos>.snap``; the store then evicts the oldest
snapshots (by mtime) until the directory fits ``max_bytes`` again.
The snapshot just captured is never evicted, so a single snapshot
larger than the quota may leave the store temporarily over budget.
"""

from __future__ import annotations

import hashlib
import logging
import os
import stat
import time
from datetime import UTC, datetime
from pathlib import Path

from gdf.core.engine.errors import FilesystemError, QuotaEvictionError, UnsupportedModeError
from gdf.core.models.operation import SNAPSHOT_KIND_FILE, SNAPSHOT_KIND_SYMLINK, Snapshot
from gdf.core.paths import absolute_root, history_dir

logger = logging.getLogger(__name__)

DEFAULT_MAX_BYTES = 512 * 1024 * 1024
SNAPSHOT_SUFFIX = ".snap"
_CHUNK = 64 * 1024


class HistoryManager:
    """Stores and evicts file snapshots.

    Args:
        directory: Where snapshots live (by convention ``<root>/.history``).
        max_bytes: Quota for the directory. Zero or negative means default.
    """

    def __init__(self, directory: Path, max_bytes: int = DEFAULT_MAX_BYTES):
        self._dir = Path(directory)
        self._max_bytes = max_bytes if max_bytes > 0 else DEFAULT_MAX_BYTES

    @classmethod
    def for_root(cls, root: Path, max_size_mb: int = 0) -> HistoryManager:
        """History store at ``<root>/.history`` with a quota in MiB."""
        max_bytes = max_size_mb * 1024 * 1024 if max_size_mb > 0 else DEFAULT_MAX_BYTES
        return cls(history_dir(absolute_root(root)), max_bytes)

    @property
    def directory(self) -> Path:
        return self._dir

    @property
    def max_bytes(self) -> int:
        return self._max_bytes

    def capture(self, path: Path | str) -> Snapshot | None:
        """Snapshot *path* as it is right now.

        Returns:
            The snapshot, or None if *path* does not exist.

        Raises:
            UnsupportedModeError: *path* is neither a regular file nor a symlink.
            FilesystemError: Reading the target or writing the copy failed.
            QuotaEvictionError: Evicting older snapshots failed.
        """
        path = Path(path)
        try:
            st = os.lstat(path)
        except FileNotFoundError:
            return None
        except OSError as e:
            raise FilesystemError("stat target for snapshot", str(path), e) from e

        is_link = stat.S_ISLNK(st.st_mode)
        if not is_link and not stat.S_ISREG(st.st_mode):
            raise UnsupportedModeError(str(path))

        try:
            self._dir.mkdir(mode=0o755, parents=True, exist_ok=True)
        except OSError as e:
            raise FilesystemError("create history directory", str(self._dir), e) from e

        snap_id = str(time.time_ns())
        stored = self._dir / f"{snap_id}{SNAPSHOT_SUFFIX}"
        captured_at = datetime.now(UTC)

        if is_link:
            snapshot = self._capture_symlink(path, stored, snap_id, captured_at)
        else:
            snapshot = self._capture_file(path, stored, snap_id, captured_at)

        logger.debug(
            "Captured %s snapshot of %s → %s (%d bytes)",
            snapshot.kind, path, stored, snapshot.size_bytes,
        )
        self.enforce_quota(protected=stored)
        return snapshot

    def _capture_symlink(self, path: Path, stored: Path, snap_id: str, captured_at: datetime) -> Snapshot:
        try:
            dest = os.readlink(path)
        except OSError as e:
            raise FilesystemError("reading symlink target", str(path), e) from e

        data = os.fsencode(dest)
        try:
            fd = os.open(stored, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o644)
            with os.fdopen(fd, "wb") as out:
                out.write(data)
        except OSError as e:
            raise FilesystemError("writing symlink snapshot", str(stored), e) from e

        return Snapshot(
            id=snap_id,
            original_path=path,
            stored_path=stored,
            kind=SNAPSHOT_KIND_SYMLINK,
            link_target=dest,
            mode=0o777,
            size_bytes=len(data),
            checksum=hashlib.sha256(data).hexdigest(),
            captured_at=captured_at,
        )

    def _capture_file(self, path: Path, stored: Path, snap_id: str, captured_at: datetime) -> Snapshot:
        digest = hashlib.sha256()
        copied = 0
        try:
            with path.open("rb") as src:
                mode = stat.S_IMODE(os.fstat(src.fileno()).st_mode)
                fd = os.open(stored, os.O_WRONLY | os.O_CREAT | os.O_EXCL, mode)
                with os.fdopen(fd, "wb") as out:
                    while chunk := src.read(_CHUNK):
                        out.write(chunk)
                        digest.update(chunk)
                        copied += len(chunk)
        except OSError as e:
            raise FilesystemError("copying file snapshot", str(path), e) from e

        return Snapshot(
            id=snap_id,
            original_path=path,
            stored_path=stored,
            kind=SNAPSHOT_KIND_FILE,
            mode=mode,
            size_bytes=copied,
            checksum=digest.hexdigest(),
            captured_at=captured_at,
        )

    def enforce_quota(self, protected: Path | None = None) -> None:
        """Evict oldest snapshots until the store fits ``max_bytes``.

        Raises:
            FilesystemError: The directory could not be listed.
            QuotaEvictionError: Deleting a snapshot failed.
        """
        entries: list[tuple[float, int, Path]] = []
        total = 0
        try:
            with os.scandir(self._dir) as it:
                for entry in it:
                    if not entry.is_file(follow_symlinks=False):
                        continue
                    st = entry.stat(follow_symlinks=False)
                    entries.append((st.st_mtime, st.st_size, Path(entry.path)))
                    total += st.st_size
        except OSError as e:
            raise FilesystemError("read history directory", str(self._dir), e) from e

        if total <= self._max_bytes:
            return

        entries.sort(key=lambda item: item[0])
        for _mtime, size, path in entries:
            if total <= self._max_bytes:
                break
            if protected is not None and path == protected:
                continue
            try:
                path.unlink()
            except OSError as e:
                raise QuotaEvictionError(str(path), e) from e
            total -= size
            logger.info("Evicted snapshot %s (%d bytes) to stay under quota", path.name, size)

    def total_bytes(self) -> int:
        """Current size of all regular files in the store."""
        if not self._dir.is_dir():
            return 0
        return sum(p.stat().st_size for p in self._dir.iterdir() if p.is_file() and not p.is_symlink())
