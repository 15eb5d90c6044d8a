"""
Apply lock — ``<root>/.locks/apply.lock``, one mutating apply at a time.

Created with O_CREAT|O_EXCL so two processes can't both win. The file
records the owner's pid and start time for humans; a stale lock left by
a crashed run has to be removed by hand.
"""

from __future__ import annotations

import logging
import os
from datetime import datetime
from pathlib import Path

from gdf.core.engine.errors import ErrorKind, FilesystemError, GdfError
from gdf.core.models.operation import format_rfc3339
from gdf.core.paths import LOCKS_DIR

logger = logging.getLogger(__name__)

LOCK_FILE = "apply.lock"


class ApplyLockHeldError(GdfError):
    kind = ErrorKind.CONFLICT

    def __init__(self, path: str) -> None:
        super().__init__(f"another apply operation is already in progress (lock file: {path})", path=path)


class ApplyLock:
    """Context manager holding the apply lock for *root*."""

    def __init__(self, root: Path):
        self.path = root / LOCKS_DIR / LOCK_FILE
        self._held = False

    def acquire(self) -> None:
        """Take the lock.

        Raises:
            ApplyLockHeldError: Another run holds it.
            FilesystemError: The lock file could not be created.
        """
        try:
            self.path.parent.mkdir(mode=0o755, parents=True, exist_ok=True)
            fd = os.open(self.path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
        except FileExistsError as e:
            raise ApplyLockHeldError(str(self.path)) from e
        except OSError as e:
            raise FilesystemError("acquiring apply lock", str(self.path), e) from e

        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(f"pid={os.getpid()}\ncreated={format_rfc3339(datetime.now().astimezone())}\n")
        except OSError as e:
            self.path.unlink(missing_ok=True)
            raise FilesystemError("writing apply lock", str(self.path), e) from e

        self._held = True
        logger.debug("Acquired apply lock %s", self.path)

    def release(self) -> None:
        if not self._held:
            return
        self.path.unlink(missing_ok=True)
        self._held = False
        logger.debug("Released apply lock %s", self.path)

    def __enter__(self) -> ApplyLock:
        self.acquire()
        return self

    def __exit__(self, *exc: object) -> None:
        self.release()
