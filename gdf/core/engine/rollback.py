"""
Rollback executor — undo an apply run from its operation log.

Operations are walked newest first. For ``link`` records:

    no snapshot_path   → remove the symlink (only if it is still ours)
    snapshot_path      → restore the snapshot over the target

Every other record type is skipped; package installs, hook runs and
shell generation are not reversible. A failure on one target is
recorded in the result and the walk continues.

When a selector is given and a target has more than one snapshot across
all operation logs, the selector picks which one to restore.
"""

from __future__ import annotations

import json
import logging
import os
import shutil
import stat
from collections.abc import Callable
from pathlib import Path

from pydantic import ValidationError

from gdf.core.engine.errors import FilesystemError, GdfError, InputValidationError, SnapshotMissingError
from gdf.core.engine.linker import remove_all, resolve_symlink_destination
from gdf.core.models.operation import (
    D_SOURCE_ABS,
    OP_LINK,
    SNAPSHOT_KIND_FILE,
    SNAPSHOT_KIND_SYMLINK,
    Operation,
    RollbackResult,
    SnapshotCandidate,
)
from gdf.core.paths import expand_path, operations_dir

logger = logging.getLogger(__name__)

Selector = Callable[[str, list[SnapshotCandidate]], SnapshotCandidate | None]

DEFAULT_RESTORE_MODE = 0o644


# ── Operation logs ──────────────────────────────────────────────


def list_operation_logs(root: Path) -> list[Path]:
    """All ``*.json`` logs under ``<root>/.operations``, oldest first."""
    directory = operations_dir(root)
    if not directory.is_dir():
        return []
    try:
        entries = [p for p in directory.iterdir() if p.suffix == ".json" and not p.is_dir()]
    except OSError as e:
        raise FilesystemError("reading operation logs in", str(directory), e) from e
    return sorted(entries, key=lambda p: p.name)


def load_operation_log(path: Path) -> list[Operation]:
    """Parse one operation log.

    Raises:
        FilesystemError: The file could not be read.
        InputValidationError: The file is not a JSON array of operations.
    """
    try:
        raw = Path(path).read_text(encoding="utf-8")
    except OSError as e:
        raise FilesystemError("reading operation log", str(path), e) from e

    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise InputValidationError(f"invalid JSON in operation log {path}: {e}", path=str(path)) from e

    if not isinstance(data, list):
        raise InputValidationError(f"operation log {path} is not a JSON array", path=str(path))

    try:
        return [Operation.model_validate(item) for item in data]
    except ValidationError as e:
        raise InputValidationError(f"invalid operation in {path}: {e}", path=str(path)) from e


def latest_operation_log(root: Path) -> tuple[Path | None, list[Operation]]:
    """The newest log and its operations, or ``(None, [])`` if there are none."""
    logs = list_operation_logs(root)
    if not logs:
        return None, []
    latest = logs[-1]
    return latest, load_operation_log(latest)


# ── Candidates ──────────────────────────────────────────────────


def find_candidates(root: Path, target: str) -> list[SnapshotCandidate]:
    """Every logged snapshot of *target*, newest capture first.

    Logs that fail to parse are skipped.
    """
    out: list[SnapshotCandidate] = []
    for log_path in list_operation_logs(root):
        try:
            ops = load_operation_log(log_path)
        except GdfError as e:
            logger.warning("Skipping unreadable operation log %s: %s", log_path, e)
            continue
        for index, op in enumerate(ops):
            if op.type != OP_LINK or op.target != target or not op.snapshot_path:
                continue
            out.append(SnapshotCandidate.from_operation(op, str(log_path), index))

    out.sort(key=lambda c: c.captured_at.timestamp() if c.captured_at else 0.0, reverse=True)
    return out


# ── Rollback ────────────────────────────────────────────────────


def rollback_operations(
    root: Path,
    operations: list[Operation],
    selector: Selector | None = None,
) -> RollbackResult:
    """Revert *operations* in reverse order."""
    result = RollbackResult()
    for op in reversed(operations):
        if op.type != OP_LINK:
            logger.debug("Skipping irreversible %s operation for %s", op.type, op.target)
            continue
        try:
            _rollback_link(root, op, selector)
        except (GdfError, OSError) as e:
            logger.warning("Rollback of %s failed: %s", op.target, e)
            result.failed.append(f"{op.target}: {e}")
            continue
        if op.snapshot_path:
            result.restored += 1
        else:
            result.removed += 1
    logger.info(
        "Rollback finished: restored=%d removed=%d failed=%d",
        result.restored, result.removed, len(result.failed),
    )
    return result


def _rollback_link(root: Path, op: Operation, selector: Selector | None) -> None:
    if not op.snapshot_path:
        remove_symlink_if_managed(op.target, op.details.get(D_SOURCE_ABS, ""))
        return

    candidate = SnapshotCandidate.from_operation(op)
    if selector is not None:
        try:
            candidates = find_candidates(root, op.target)
        except GdfError as e:
            logger.warning("Could not list snapshots for %s: %s", op.target, e)
            candidates = []
        if len(candidates) > 1:
            chosen = selector(op.target, candidates)
            if chosen is not None:
                candidate = chosen

    restore_snapshot(op.target, candidate)


def remove_symlink_if_managed(target: str, expected: str = "") -> bool:
    """Remove *target* if it is a symlink (pointing at *expected*, when given).

    Returns:
        True if the link was removed.
    """
    try:
        st = os.lstat(target)
    except FileNotFoundError:
        return False
    if not stat.S_ISLNK(st.st_mode):
        return False
    if expected:
        actual = resolve_symlink_destination(Path(target))
        if str(actual) != expected:
            logger.debug("Leaving %s alone: points at %s, not %s", target, actual, expected)
            return False
    os.remove(target)
    logger.debug("Removed symlink %s", target)
    return True


def parse_mode(text: str) -> int:
    """Octal permission string (``0644`` or ``644``) to an int; 0644 if unparseable."""
    if not text:
        return DEFAULT_RESTORE_MODE
    try:
        return int(text, 8)
    except ValueError:
        return DEFAULT_RESTORE_MODE


def restore_snapshot(target: str, candidate: SnapshotCandidate) -> None:
    """Put the snapshot's content back at *target*, replacing whatever is there.

    Raises:
        SnapshotMissingError: The snapshot file has been evicted.
        FilesystemError: Unsupported kind, or a syscall failed.
    """
    stored = Path(candidate.snapshot_path) if candidate.snapshot_path else None
    if stored is None or not stored.exists():
        raise SnapshotMissingError(candidate.snapshot_path or target)

    target_path = Path(target)
    target_path.parent.mkdir(mode=0o755, parents=True, exist_ok=True)
    remove_all(target_path)

    kind = candidate.snapshot_kind
    if kind == SNAPSHOT_KIND_SYMLINK:
        link_target = candidate.link_target or stored.read_text(encoding="utf-8")
        os.symlink(link_target, target_path)
        logger.debug("Restored symlink %s → %s", target, link_target)
        return

    if kind not in (SNAPSHOT_KIND_FILE, ""):
        raise FilesystemError(f"unsupported snapshot kind '{kind}' for", target)

    mode = parse_mode(candidate.snapshot_mode)
    fd = os.open(target_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, mode)
    with os.fdopen(fd, "wb") as out, stored.open("rb") as src:
        shutil.copyfileobj(src, out)
    os.chmod(target_path, mode)
    logger.debug("Restored file %s from %s (mode %s)", target, stored, oct(mode))


# ── Single target ───────────────────────────────────────────────


def rollback_target(root: Path, target: str, selector: Selector | None = None) -> RollbackResult:
    """Restore one target from its newest (or selected) snapshot.

    Raises:
        SnapshotMissingError: No operation log holds a snapshot of *target*.
    """
    expanded = expand_path(target)
    candidates = find_candidates(root, expanded)
    if not candidates:
        raise SnapshotMissingError(expanded)

    chosen = candidates[0]
    if selector is not None and len(candidates) > 1:
        chosen = selector(expanded, candidates) or chosen
    return restore_candidate(chosen)


def restore_candidate(candidate: SnapshotCandidate) -> RollbackResult:
    """Restore a single candidate and report it like a one-operation rollback."""
    result = RollbackResult()
    try:
        restore_snapshot(candidate.target, candidate)
    except (GdfError, OSError) as e:
        result.failed.append(f"{candidate.target}: {e}")
    else:
        result.restored = 1
    return result
