"""
Step receipts and risk findings — what the engine reports back.

Every step the engine performs (or plans, in dry-run) yields a receipt.
Failures are captured on the receipt rather than raised, so one bundle's
failure never hides what happened to the others.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any, Literal

from pydantic import BaseModel, Field


def _now_iso() -> str:
    """Current UTC time as ISO string."""
    return datetime.now(UTC).isoformat()


class StepReceipt(BaseModel):
    """Outcome of one engine step for one bundle.

    ``step`` is one of ``package``, ``pre_install``, ``post_install``,
    ``pre_link``, ``link``, ``post_link``, ``apply_hook``, ``shell``.
    """

    app: str
    step: str
    target: str = ""
    status: Literal["ok", "skipped", "failed"] = "ok"
    at: str = Field(default_factory=_now_iso)

    output: str = ""
    error: str | None = None
    error_kind: str | None = None
    planned: bool = False           # dry-run: describes intent, nothing ran

    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.status == "ok"

    @property
    def failed(self) -> bool:
        return self.status == "failed"

    @classmethod
    def success(cls, app: str, step: str, target: str = "", output: str = "", **kwargs: Any) -> StepReceipt:
        return cls(app=app, step=step, target=target, status="ok", output=output, **kwargs)

    @classmethod
    def failure(cls, app: str, step: str, target: str, error: str, **kwargs: Any) -> StepReceipt:
        return cls(app=app, step=step, target=target, status="failed", error=error, **kwargs)

    @classmethod
    def skip(cls, app: str, step: str, target: str = "", reason: str = "", **kwargs: Any) -> StepReceipt:
        return cls(app=app, step=step, target=target, status="skipped", output=reason, **kwargs)


class RiskFinding(BaseModel):
    """A bundle-declared shell string that downloads and executes code."""

    app: str
    location: str       # e.g. "hooks.pre_install", "package.custom.script"
    command: str
    reason: str
