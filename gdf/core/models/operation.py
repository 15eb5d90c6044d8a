"""
Operation-log and snapshot models — the apply/rollback contract.

The engine appends ``Operation`` records while it mutates the machine;
the rollback executor reads them back. Snapshots are the pre-mutation
copies the history store keeps on disk; candidates are snapshots
promoted out of operation logs for restore.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, field_validator

# Operation types written by the engine
OP_LINK = "link"
OP_PACKAGE_INSTALL = "package_install"
OP_HOOK_RUN = "hook_run"
OP_SHELL_GENERATE = "shell_generate"

# Keys carried in ``details`` of link operations
D_SOURCE = "source"
D_SOURCE_ABS = "source_abs"
D_APP = "app"
D_SNAPSHOT_ID = "snapshot_id"
D_SNAPSHOT_PATH = "snapshot_path"
D_SNAPSHOT_KIND = "snapshot_kind"
D_SNAPSHOT_MODE = "snapshot_mode"
D_SNAPSHOT_LINK_TARGET = "snapshot_link_target"
D_SNAPSHOT_CAPTURED_AT = "snapshot_captured_at"
D_SNAPSHOT_CHECKSUM = "snapshot_checksum"
D_SNAPSHOT_SIZE = "snapshot_size_bytes"

SNAPSHOT_KIND_FILE = "file"
SNAPSHOT_KIND_SYMLINK = "symlink"

_FRACTION_RE = re.compile(r"\.(\d+)")


# ── Timestamps ──────────────────────────────────────────────────


def format_rfc3339(dt: datetime) -> str:
    """RFC 3339 with fractional seconds, trailing zeros trimmed, ``Z`` for UTC."""
    text = dt.isoformat(timespec="microseconds")
    if "." in text:
        head, _, rest = text.partition(".")
        digits = rest[:6].rstrip("0")
        text = f"{head}.{digits}{rest[6:]}" if digits else f"{head}{rest[6:]}"
    if text.endswith("+00:00"):
        text = text[:-6] + "Z"
    return text


def parse_rfc3339(text: str) -> datetime:
    """Parse RFC 3339 timestamps, including nanosecond precision.

    Digits beyond microseconds are dropped. Naive results are taken as UTC.

    Raises:
        ValueError: If *text* is not a timestamp.
    """
    value = text.strip()
    if value.endswith(("Z", "z")):
        value = value[:-1] + "+00:00"
    value = _FRACTION_RE.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), value, count=1)
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def _now_local() -> str:
    return format_rfc3339(datetime.now().astimezone())


# ── Operation log records ───────────────────────────────────────


class Operation(BaseModel):
    """One record in an apply run's operation log.

    Wire format is exactly ``type``, ``timestamp``, ``target``, ``details``.
    Unknown detail keys and unknown types are carried through untouched.
    """

    type: str
    timestamp: str = Field(default_factory=_now_local)
    target: str = ""
    details: dict[str, str] = Field(default_factory=dict)

    @field_validator("details", mode="before")
    @classmethod
    def _coerce_details(cls, value: Any) -> Any:
        if value is None:
            return {}
        if isinstance(value, dict):
            return {str(k): "" if v is None else str(v) for k, v in value.items()}
        return value

    @property
    def occurred_at(self) -> datetime | None:
        try:
            return parse_rfc3339(self.timestamp)
        except ValueError:
            return None

    @property
    def snapshot_path(self) -> str:
        return self.details.get(D_SNAPSHOT_PATH, "")


# ── Snapshots ───────────────────────────────────────────────────


@dataclass(frozen=True)
class Snapshot:
    """A durable copy of a target's pre-mutation state."""

    id: str
    original_path: Path
    stored_path: Path
    kind: str                       # "file" | "symlink"
    mode: int
    size_bytes: int
    checksum: str                   # sha-256 hex
    captured_at: datetime
    link_target: str = ""

    @property
    def mode_octal(self) -> str:
        """Permission bits as a ``0``-prefixed octal string (``0644``)."""
        perm = self.mode & 0o777
        return "0" + format(perm, "o") if perm else "0"

    def to_details(self) -> dict[str, str]:
        """Snapshot metadata as operation-log detail keys."""
        return {
            D_SNAPSHOT_ID: self.id,
            D_SNAPSHOT_PATH: str(self.stored_path),
            D_SNAPSHOT_KIND: self.kind,
            D_SNAPSHOT_LINK_TARGET: self.link_target,
            D_SNAPSHOT_MODE: self.mode_octal,
            D_SNAPSHOT_CHECKSUM: self.checksum,
            D_SNAPSHOT_SIZE: str(self.size_bytes),
            D_SNAPSHOT_CAPTURED_AT: format_rfc3339(self.captured_at),
        }


@dataclass
class SnapshotCandidate:
    """A historical snapshot eligible to restore a target."""

    target: str
    snapshot_path: str
    snapshot_kind: str = ""
    snapshot_mode: str = ""
    link_target: str = ""
    captured_at: datetime | None = None
    operation_at: datetime | None = None
    operation_log: str = ""
    operation_index: int = -1

    @classmethod
    def from_operation(
        cls,
        op: Operation,
        operation_log: str = "",
        operation_index: int = -1,
    ) -> SnapshotCandidate:
        """Promote a link operation to a candidate.

        ``captured_at`` falls back to the operation timestamp when the
        recorded capture time is absent or unparseable.
        """
        details = op.details
        captured_at = op.occurred_at
        raw = details.get(D_SNAPSHOT_CAPTURED_AT, "")
        if raw:
            try:
                captured_at = parse_rfc3339(raw)
            except ValueError:
                pass
        return cls(
            target=op.target,
            snapshot_path=details.get(D_SNAPSHOT_PATH, ""),
            snapshot_kind=details.get(D_SNAPSHOT_KIND, ""),
            snapshot_mode=details.get(D_SNAPSHOT_MODE, ""),
            link_target=details.get(D_SNAPSHOT_LINK_TARGET, ""),
            captured_at=captured_at,
            operation_at=op.occurred_at,
            operation_log=operation_log,
            operation_index=operation_index,
        )

    def to_dict(self) -> dict:
        return {
            "target": self.target,
            "snapshot_path": self.snapshot_path,
            "snapshot_kind": self.snapshot_kind,
            "snapshot_mode": self.snapshot_mode,
            "link_target": self.link_target,
            "captured_at": format_rfc3339(self.captured_at) if self.captured_at else "",
            "operation_log": self.operation_log,
            "operation_index": self.operation_index,
        }


@dataclass
class RollbackResult:
    """Summary of one rollback run."""

    restored: int = 0
    removed: int = 0
    failed: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed

    def to_dict(self) -> dict:
        return {
            "restored": self.restored,
            "removed": self.removed,
            "failed": list(self.failed),
        }
