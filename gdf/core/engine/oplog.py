"""
Operation log — what one apply run did, in the order it did it.

Records are kept in memory and written once, at the end of the run, to
``<root>/.operations/<YYYYMMDD-HHMMSS>.json`` as a two-space-indented
JSON array. Dry runs and empty logs write nothing.

The file name is taken from the clock at save time (with a ``_NN``
suffix when two runs land in the same second), so it sorts with
every other run but need not match the timestamps inside it.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from datetime import datetime
from pathlib import Path

from gdf.core.engine.errors import FilesystemError
from gdf.core.models.operation import Operation
from gdf.core.paths import operations_dir

logger = logging.getLogger(__name__)

LOG_NAME_FORMAT = "%Y%m%d-%H%M%S"
LOG_SUFFIX = ".json"


def _unique_log_path(directory: Path, stamp: str) -> Path:
    """``<stamp>.json``, or ``<stamp>_NN.json`` when runs share a second.

    ``_`` sorts after ``.``, so names keep sorting in run order.
    """
    path = directory / f"{stamp}{LOG_SUFFIX}"
    n = 1
    while path.exists():
        path = directory / f"{stamp}_{n:02d}{LOG_SUFFIX}"
        n += 1
    return path


class OperationLog:
    """Append-only recorder for one apply run."""

    def __init__(self, dry_run: bool = False):
        self.dry_run = dry_run
        self._operations: list[Operation] = []

    def log(self, op_type: str, target: str, details: dict[str, str] | None = None) -> Operation:
        """Append an operation stamped with the current time."""
        op = Operation(type=op_type, target=target, details=details or {})
        self._operations.append(op)
        logger.debug("Recorded %s operation for %s", op_type, target)
        return op

    @property
    def operations(self) -> list[Operation]:
        return list(self._operations)

    def __len__(self) -> int:
        return len(self._operations)

    def save(self, root: Path) -> Path | None:
        """Write the log under ``<root>/.operations``.

        Returns:
            The written file, or None for dry runs and empty logs.

        Raises:
            FilesystemError: Creating the directory or writing the file failed.
        """
        if self.dry_run or not self._operations:
            return None

        directory = operations_dir(root)
        try:
            directory.mkdir(mode=0o755, parents=True, exist_ok=True)
        except OSError as e:
            raise FilesystemError("creating operations directory", str(directory), e) from e

        path = _unique_log_path(directory, datetime.now().strftime(LOG_NAME_FORMAT))
        data = [op.model_dump(mode="json") for op in self._operations]
        content = json.dumps(data, indent=2, ensure_ascii=False)

        # Atomic write: temp file in same directory, then rename
        try:
            fd, tmp_path = tempfile.mkstemp(dir=directory, prefix=".oplog_", suffix=".tmp")
            tmp = Path(tmp_path)
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    f.write(content)
                os.chmod(tmp, 0o644)
                tmp.replace(path)
            except OSError:
                tmp.unlink(missing_ok=True)
                raise
        except OSError as e:
            raise FilesystemError("writing operation log", str(path), e) from e

        logger.info("Saved %d operations to %s", len(self._operations), path)
        return path
