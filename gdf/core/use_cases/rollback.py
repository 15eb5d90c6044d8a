"""
Rollback use case — undo the latest (or a chosen) apply run, or restore
one target from snapshot history.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

from gdf.adapters.prompt import Prompter
from gdf.core.engine.errors import ErrorKind, GdfError, SnapshotMissingError
from gdf.core.engine.rollback import (
    Selector,
    find_candidates,
    latest_operation_log,
    load_operation_log,
    restore_candidate,
    rollback_operations,
)
from gdf.core.models.operation import OP_LINK, Operation, RollbackResult, SnapshotCandidate
from gdf.core.paths import absolute_root, expand_path

logger = logging.getLogger(__name__)


@dataclass
class RollbackPlan:
    """What a rollback of one log would touch."""

    log_path: Path | None = None
    operations: list[Operation] = field(default_factory=list)

    @property
    def link_operations(self) -> int:
        return sum(1 for op in self.operations if op.type == OP_LINK)

    @property
    def with_snapshots(self) -> int:
        return sum(1 for op in self.operations if op.type == OP_LINK and op.snapshot_path)

    @property
    def empty(self) -> bool:
        return not self.operations


@dataclass
class RollbackOutcome:
    """Result of ``run_rollback`` / ``run_rollback_target``."""

    plan: RollbackPlan | None = None
    target: str = ""
    candidate: SnapshotCandidate | None = None
    result: RollbackResult | None = None
    aborted: bool = False
    error: str | None = None
    error_kind: str | None = None

    @property
    def exit_code(self) -> int:
        if self.error_kind == ErrorKind.INPUT_VALIDATION.value:
            return 2
        if self.error:
            return 1
        if self.result is not None and not self.result.ok:
            return 1
        return 0

    def to_dict(self) -> dict:
        out: dict = {"aborted": self.aborted, "exit_code": self.exit_code}
        if self.plan is not None:
            out["log_path"] = str(self.plan.log_path) if self.plan.log_path else ""
            out["link_operations"] = self.plan.link_operations
            out["with_snapshots"] = self.plan.with_snapshots
        if self.target:
            out["target"] = self.target
        if self.candidate is not None:
            out["candidate"] = self.candidate.to_dict()
        if self.result is not None:
            out["result"] = self.result.to_dict()
        if self.error:
            out["error"] = self.error
            out["error_kind"] = self.error_kind
        return out


def _describe(candidate: SnapshotCandidate) -> str:
    when = candidate.captured_at.strftime("%Y-%m-%d %H:%M:%S") if candidate.captured_at else "unknown time"
    return f"{when}  {candidate.snapshot_path}"


def prompt_selector(prompter: Prompter) -> Selector:
    """Selector that asks *prompter* to pick among several snapshots."""

    def select(target: str, candidates: list[SnapshotCandidate]) -> SnapshotCandidate | None:
        picked = prompter.choose(
            f"Multiple snapshots found for {target}:",
            [_describe(c) for c in candidates],
        )
        return candidates[picked] if picked is not None else None

    return select


def plan_rollback(root: Path, log_path: Path | None = None) -> RollbackPlan:
    """Load the log to roll back: *log_path*, or the newest one."""
    if log_path is not None:
        return RollbackPlan(log_path=log_path, operations=load_operation_log(log_path))
    latest, ops = latest_operation_log(root)
    return RollbackPlan(log_path=latest, operations=ops)


def run_rollback(
    root: Path,
    prompter: Prompter,
    *,
    log_path: Path | None = None,
    choose_snapshot: bool = False,
    yes: bool = False,
) -> RollbackOutcome:
    """Roll back one apply run.

    Asks for confirmation through *prompter* unless *yes*.
    """
    root = absolute_root(root)
    outcome = RollbackOutcome()
    try:
        outcome.plan = plan_rollback(root, log_path)
    except GdfError as e:
        outcome.error, outcome.error_kind = str(e), e.kind.value
        return outcome

    plan = outcome.plan
    if plan.empty:
        logger.info("No operation logs found; nothing to roll back")
        return outcome

    if not yes:
        question = (
            f"Roll back {plan.log_path}: {plan.link_operations} link operation(s), "
            f"{plan.with_snapshots} with snapshots. Proceed?"
        )
        if not prompter.confirm(question, default=False):
            outcome.aborted = True
            return outcome

    selector = prompt_selector(prompter) if choose_snapshot else None
    outcome.result = rollback_operations(root, plan.operations, selector)
    return outcome


def run_rollback_target(
    root: Path,
    target: str,
    prompter: Prompter,
    *,
    choose_snapshot: bool = False,
    yes: bool = False,
) -> RollbackOutcome:
    """Restore a single target from its snapshot history."""
    root = absolute_root(root)
    expanded = expand_path(target)
    outcome = RollbackOutcome(target=expanded)

    try:
        candidates = find_candidates(root, expanded)
    except GdfError as e:
        outcome.error, outcome.error_kind = str(e), e.kind.value
        return outcome
    if not candidates:
        err = SnapshotMissingError(expanded)
        outcome.error, outcome.error_kind = f"no snapshots found for {expanded}", err.kind.value
        return outcome

    chosen = candidates[0]
    if choose_snapshot and len(candidates) > 1:
        chosen = prompt_selector(prompter)(expanded, candidates) or chosen
    outcome.candidate = chosen

    if not yes and not prompter.confirm(f"Restore {expanded} from snapshot {_describe(chosen)}?", default=False):
        outcome.aborted = True
        return outcome

    outcome.result = restore_candidate(chosen)
    return outcome
