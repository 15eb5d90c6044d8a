"""
Engine errors — one hierarchy, one kind per failure class.

Each exception carries an ``ErrorKind`` and the structured fields that
identify what failed (path, field, package, output). ``str(err)`` is a
rendering of those fields for humans; callers branch on ``kind`` or the
exception class, never on the message text.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class ErrorKind(str, Enum):
    INPUT_VALIDATION = "input_validation"
    CONFLICT = "conflict"
    FILESYSTEM_IO = "filesystem_io"
    QUOTA_EXCEEDED = "quota_exceeded"
    SUBPROCESS = "subprocess"
    USER_DECLINED = "user_declined"
    SOURCE_MISSING = "source_missing"
    SNAPSHOT_MISSING = "snapshot_missing"


class GdfError(Exception):
    """Base class for every error the engine reports."""

    kind: ErrorKind = ErrorKind.FILESYSTEM_IO

    def __init__(self, message: str, *, path: str = "") -> None:
        super().__init__(message)
        self.path = path

    def to_dict(self) -> dict:
        return {"kind": self.kind.value, "message": str(self), "path": self.path}


# ── Input validation ────────────────────────────────────────────


@dataclass(frozen=True)
class FieldError:
    field: str
    message: str

    def __str__(self) -> str:
        return f"{self.field}: {self.message}"


class InputValidationError(GdfError):
    """Bundle or configuration input is invalid. Raised before any mutation."""

    kind = ErrorKind.INPUT_VALIDATION

    def __init__(self, message: str, *, errors: list[FieldError] | None = None, path: str = "") -> None:
        self.errors = list(errors or [])
        if self.errors:
            message = f"{message}: " + "; ".join(str(e) for e in self.errors)
        super().__init__(message, path=path)


class CircularDependencyError(InputValidationError):
    def __init__(self, name: str) -> None:
        super().__init__(f"circular dependency detected: {name}")
        self.name = name


class MissingDependencyError(InputValidationError):
    def __init__(self, name: str) -> None:
        super().__init__(f"app not found: {name}")
        self.name = name


class UnknownStrategyError(InputValidationError):
    def __init__(self, strategy: str, path: str = "") -> None:
        super().__init__(f"unknown conflict strategy '{strategy}'", path=path)
        self.strategy = strategy


# ── Linking ─────────────────────────────────────────────────────


class TargetExistsError(GdfError):
    kind = ErrorKind.CONFLICT

    def __init__(self, path: str) -> None:
        super().__init__(f"target already exists: {path}", path=path)


class SourceMissingError(GdfError):
    kind = ErrorKind.SOURCE_MISSING

    def __init__(self, path: str) -> None:
        super().__init__(f"source file not found: {path}", path=path)


# ── Filesystem and history ──────────────────────────────────────


class FilesystemError(GdfError):
    """A syscall failed while touching *path*."""

    kind = ErrorKind.FILESYSTEM_IO

    def __init__(self, action: str, path: str, cause: BaseException | None = None) -> None:
        reason = f": {cause}" if cause is not None else ""
        super().__init__(f"{action} {path}{reason}", path=path)
        self.action = action


class UnsupportedModeError(FilesystemError):
    def __init__(self, path: str) -> None:
        super().__init__("unsupported snapshot target mode for", path)


class QuotaEvictionError(GdfError):
    kind = ErrorKind.QUOTA_EXCEEDED

    def __init__(self, path: str, cause: BaseException) -> None:
        super().__init__(f"evicting old snapshot {path}: {cause}", path=path)


class SnapshotMissingError(GdfError):
    kind = ErrorKind.SNAPSHOT_MISSING

    def __init__(self, path: str) -> None:
        super().__init__(f"snapshot not found: {path}", path=path)


# ── Subprocesses and prompts ────────────────────────────────────


_TAIL_LINES = 10


class SubprocessError(GdfError):
    """A package manager or hook exited non-zero.

    ``output`` keeps the trailing lines of combined stdout+stderr.
    """

    kind = ErrorKind.SUBPROCESS

    def __init__(self, command: str, returncode: int, output: str = "") -> None:
        tail = "\n".join(output.strip().splitlines()[-_TAIL_LINES:])
        message = f"command failed (exit {returncode}): {command}"
        if tail:
            message = f"{message}\n{tail}"
        super().__init__(message)
        self.command = command
        self.returncode = returncode
        self.output = tail


class UserDeclinedError(GdfError):
    kind = ErrorKind.USER_DECLINED

    def __init__(self, what: str) -> None:
        super().__init__(f"declined by user: {what}")
        self.what = what


# ── Packages ────────────────────────────────────────────────────


class NoInstallMethodError(InputValidationError):
    """The package has no manager entry or custom script usable on this platform."""

    def __init__(self, app: str, platform: str) -> None:
        super().__init__(f"no installation method available for '{app}' on {platform}")
        self.app = app
