"""
Engine executor — drives one apply run over resolved bundles.

Per bundle, in dependency order:

    package      no manager → skip; is_installed → pre_install hooks → install → post_install hooks
    pre_link     hooks (failure ends the bundle)
    dotfiles     when-guard → Linker.link → ``link`` operation
    post_link    hooks
    apply hooks  package-less bundles only, each with its own when-guard

Then the shell init script is regenerated and the operation log saved.

Each bundle is its own unit: a failure is recorded on its receipts and
the engine moves on (unless ``fail_fast``). Structural problems (unknown
strategy, bad when-guard, dotfile without a target on this platform)
are raised before anything is touched.

Dry runs only read: ``is_installed``, ``lstat``, guards. Receipts are
marked ``planned`` and nothing is logged or written.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

from gdf.adapters.packages.installer import Installer, ManagerKind, select_manager
from gdf.adapters.process import ProcessRunner
from gdf.core.engine.errors import (
    FieldError,
    GdfError,
    InputValidationError,
    SubprocessError,
    UnknownStrategyError,
    UnsupportedModeError,
)
from gdf.core.engine.history import HistoryManager
from gdf.core.engine.linker import STRATEGIES, Linker, resolve_target
from gdf.core.engine.oplog import OperationLog
from gdf.core.models.bundle import Bundle, Dotfile
from gdf.core.models.operation import (
    D_APP,
    D_SOURCE,
    D_SOURCE_ABS,
    OP_HOOK_RUN,
    OP_LINK,
    OP_PACKAGE_INSTALL,
    OP_SHELL_GENERATE,
)
from gdf.core.models.platform import Platform
from gdf.core.models.receipt import RiskFinding, StepReceipt
from gdf.core.paths import GENERATED_DIR, source_path
from gdf.core.services.condition import evaluate_condition
from gdf.core.services.resolver import resolve_apps
from gdf.core.services.shell_gen import INIT_SCRIPT, ShellGenerator

logger = logging.getLogger(__name__)


@dataclass
class EngineOptions:
    """Knobs for one apply run."""

    strategy: str = "error"
    dry_run: bool = False
    fail_fast: bool = False
    run_hooks: bool = True
    shell: str = "bash"


@dataclass
class BundleReport:
    """Everything that happened to one bundle."""

    app: str
    receipts: list[StepReceipt] = field(default_factory=list)
    skipped_reason: str = ""

    @property
    def failed(self) -> bool:
        return any(r.failed for r in self.receipts)

    @property
    def status(self) -> str:
        if self.skipped_reason:
            return "skipped"
        return "failed" if self.failed else "ok"

    @property
    def errors(self) -> list[str]:
        return [r.error for r in self.receipts if r.failed and r.error]

    def to_dict(self) -> dict:
        return {
            "app": self.app,
            "status": self.status,
            "skipped_reason": self.skipped_reason,
            "receipts": [r.model_dump(mode="json") for r in self.receipts],
        }


@dataclass
class ApplyReport:
    """Result of ``Engine.apply``."""

    dry_run: bool = False
    bundles: list[BundleReport] = field(default_factory=list)
    log_path: Path | None = None
    shell_path: Path | None = None
    errors: list[str] = field(default_factory=list)     # run-level, not per bundle
    risk_findings: list[RiskFinding] = field(default_factory=list)
    cancelled: bool = False

    @property
    def failed_bundles(self) -> list[BundleReport]:
        return [b for b in self.bundles if b.status == "failed"]

    @property
    def ok(self) -> bool:
        return not self.failed_bundles and not self.errors

    @property
    def status(self) -> str:
        if self.ok:
            return "ok"
        if any(b.status == "ok" for b in self.bundles):
            return "partial"
        return "failed"

    def to_dict(self) -> dict:
        return {
            "status": self.status,
            "dry_run": self.dry_run,
            "cancelled": self.cancelled,
            "log_path": str(self.log_path) if self.log_path else "",
            "shell_path": str(self.shell_path) if self.shell_path else "",
            "errors": list(self.errors),
            "risk_findings": [f.model_dump() for f in self.risk_findings],
            "bundles": [b.to_dict() for b in self.bundles],
        }


class _BundleAborted(Exception):
    """Internal: stop the remaining steps of the current bundle."""


class Engine:
    """Applies bundles to one machine.

    Args:
        root: Repository root (``~/.gdf``).
        platform: The machine being converged.
        installer: Package installation capability.
        runner: Runs hook commands.
        history: Snapshot store; None disables snapshots.
        shell_generator: Renders ``generated/init.sh``; None skips it.
        options: Strategy, dry-run, fail-fast and hook switches.
        global_aliases: Extra aliases merged into the init script.
    """

    def __init__(
        self,
        root: Path,
        platform: Platform,
        installer: Installer,
        runner: ProcessRunner,
        *,
        history: HistoryManager | None = None,
        shell_generator: ShellGenerator | None = None,
        options: EngineOptions | None = None,
        global_aliases: dict[str, str] | None = None,
    ):
        # abspath, not resolve: symlink sources must stay under the root as given
        self.root = Path(os.path.abspath(root))
        self.platform = platform
        self.options = options or EngineOptions()
        self._installer = installer
        self._runner = runner
        self._history = history
        self._shell_generator = shell_generator
        self._global_aliases = dict(global_aliases or {})
        self._linker = Linker(self.options.strategy, history)
        self._oplog = OperationLog(dry_run=self.options.dry_run)
        self._cancelled = False

    @property
    def operation_log(self) -> OperationLog:
        return self._oplog

    def cancel(self) -> None:
        """Stop before the next bundle. Completed work is still logged."""
        logger.warning("Apply cancelled; stopping after the current bundle")
        self._cancelled = True

    # ── Entry points ────────────────────────────────────────────

    def run(self, names: list[str], all_bundles: dict[str, Bundle]) -> ApplyReport:
        """Resolve *names* against *all_bundles*, then apply.

        Raises:
            InputValidationError: Cycle, missing bundle, or ``apply`` preflight.
        """
        return self.apply(resolve_apps(names, all_bundles))

    def apply(self, bundles: list[Bundle]) -> ApplyReport:
        """Apply *bundles* in the order given.

        Each call records into a fresh operation log. A pending ``cancel()``
        applies to this call only.

        Raises:
            InputValidationError: Preflight failed; nothing was touched.
        """
        self.preflight(bundles)
        self._oplog = OperationLog(dry_run=self.options.dry_run)

        report = ApplyReport(dry_run=self.options.dry_run)
        stop_reason = ""
        for bundle in bundles:
            if self._cancelled:
                report.cancelled = True
                stop_reason = "cancelled"
            if stop_reason:
                report.bundles.append(BundleReport(app=bundle.name, skipped_reason=stop_reason))
                continue

            bundle_report = self._apply_bundle(bundle)
            report.bundles.append(bundle_report)
            marker = "✓" if bundle_report.status == "ok" else "✗"
            logger.info("%s %s → %s", marker, bundle.name, bundle_report.status)

            if bundle_report.failed:
                logger.warning("Bundle %s failed: %s", bundle.name, "; ".join(bundle_report.errors))
                if self.options.fail_fast:
                    stop_reason = "fail-fast"

        if not self.options.dry_run and not report.cancelled:
            self._generate_shell(bundles, report)

        try:
            report.log_path = self._oplog.save(self.root)
        except GdfError as e:
            logger.error("Could not save operation log: %s", e)
            report.errors.append(str(e))
        self._cancelled = False
        return report

    # ── Preflight ───────────────────────────────────────────────

    def preflight(self, bundles: list[Bundle]) -> None:
        """Reject structural problems before any mutation.

        Raises:
            UnknownStrategyError: The conflict strategy is not recognised.
            InputValidationError: A when-guard is malformed, or an active
                dotfile has no target on this platform.
        """
        if self.options.strategy not in STRATEGIES:
            raise UnknownStrategyError(self.options.strategy)

        problems: list[FieldError] = []
        for bundle in bundles:
            for i, dotfile in enumerate(bundle.dotfiles):
                where = f"{bundle.name}.dotfiles[{i}]"
                try:
                    active = evaluate_condition(dotfile.when, self.platform)
                except InputValidationError as e:
                    problems.append(FieldError(f"{where}.when", str(e)))
                    continue
                if active and not dotfile.target_for(self.platform.os):
                    problems.append(FieldError(f"{where}.target", f"no target for os {self.platform.os.value}"))
            hooks = bundle.hooks
            if hooks is None:
                continue
            for i, hook in enumerate(hooks.apply):
                try:
                    evaluate_condition(hook.when, self.platform)
                except InputValidationError as e:
                    problems.append(FieldError(f"{bundle.name}.hooks.apply[{i}].when", str(e)))

        if problems:
            raise InputValidationError("invalid bundle configuration", errors=problems)

    # ── Per bundle ──────────────────────────────────────────────

    def _apply_bundle(self, bundle: Bundle) -> BundleReport:
        report = BundleReport(app=bundle.name)
        logger.info("Processing %s", bundle.name)
        try:
            if bundle.package is not None:
                self._package_step(bundle, report)
            hooks = bundle.hooks
            if hooks is not None:
                self._run_hooks(bundle, "pre_link", hooks.pre_link, report)
            self._link_step(bundle, report)
            if report.failed:
                return report
            if hooks is not None:
                self._run_hooks(bundle, "post_link", hooks.post_link, report)
                if bundle.package is None:
                    self._apply_hooks(bundle, report)
        except _BundleAborted:
            pass
        return report

    def _package_step(self, bundle: Bundle, report: BundleReport) -> None:
        package = bundle.package
        assert package is not None  # checked by caller
        manager = select_manager(package, self.platform)
        name, _defined = package.resolve_name(manager.value)
        label = name or bundle.name

        if manager is ManagerKind.NONE:
            logger.warning("No package manager configured for %s on %s; skipping install",
                           bundle.name, self.platform.os.value)
            report.receipts.append(
                StepReceipt.skip(bundle.name, "package", label, "no package manager for this platform",
                                 planned=self.options.dry_run)
            )
            return

        if self._installer.is_installed(package, self.platform):
            report.receipts.append(
                StepReceipt.skip(bundle.name, "package", label, "already installed",
                                 planned=self.options.dry_run, metadata={"manager": manager.value})
            )
            return

        if self.options.dry_run:
            report.receipts.append(
                StepReceipt.success(bundle.name, "package", label, f"would install via {manager.value}",
                                    planned=True, metadata={"manager": manager.value})
            )
            hooks = bundle.hooks
            if hooks is not None:
                self._run_hooks(bundle, "pre_install", hooks.pre_install, report)
                self._run_hooks(bundle, "post_install", hooks.post_install, report)
            return

        hooks = bundle.hooks
        if hooks is not None:
            self._run_hooks(bundle, "pre_install", hooks.pre_install, report)

        try:
            used = self._installer.install(package, self.platform, app=bundle.name)
        except GdfError as e:
            report.receipts.append(
                StepReceipt.failure(bundle.name, "package", label, str(e), error_kind=e.kind.value)
            )
            raise _BundleAborted from e

        self._oplog.log(OP_PACKAGE_INSTALL, label, {"manager": used.value, D_APP: bundle.name})
        report.receipts.append(
            StepReceipt.success(bundle.name, "package", label, f"installed via {used.value}",
                                metadata={"manager": used.value})
        )

        if hooks is not None:
            self._run_hooks(bundle, "post_install", hooks.post_install, report)

    def _link_step(self, bundle: Bundle, report: BundleReport) -> None:
        for dotfile in bundle.dotfiles:
            if not evaluate_condition(dotfile.when, self.platform):
                report.receipts.append(
                    StepReceipt.skip(bundle.name, "link", dotfile.source, f"condition: {dotfile.when}",
                                     planned=self.options.dry_run)
                )
                continue
            if self.options.dry_run:
                report.receipts.append(self._plan_link(bundle, dotfile))
            else:
                report.receipts.append(self._link(bundle, dotfile))

    def _link(self, bundle: Bundle, dotfile: Dotfile) -> StepReceipt:
        target = str(resolve_target(dotfile, self.platform))
        try:
            result = self._linker.link(dotfile, self.root, self.platform)
        except GdfError as e:
            logger.warning("Linking %s failed: %s", target, e)
            return StepReceipt.failure(bundle.name, "link", target, str(e), error_kind=e.kind.value)

        details = {
            D_SOURCE: dotfile.source,
            D_SOURCE_ABS: os.path.normpath(source_path(self.root, dotfile.source)),
            D_APP: bundle.name,
        }
        if result.snapshot is not None:
            details.update(result.snapshot.to_details())
        self._oplog.log(OP_LINK, str(result.target), details)

        return StepReceipt.success(
            bundle.name, "link", str(result.target), result.action,
            metadata={"source": dotfile.source, "snapshot": details.get("snapshot_path", "")},
        )

    def _plan_link(self, bundle: Bundle, dotfile: Dotfile) -> StepReceipt:
        target = str(resolve_target(dotfile, self.platform))
        try:
            plan = self._linker.plan(dotfile, self.root, self.platform)
        except GdfError as e:
            return StepReceipt.failure(bundle.name, "link", target, str(e), error_kind=e.kind.value, planned=True)

        if plan == "source_missing":
            return StepReceipt.failure(
                bundle.name, "link", target,
                f"source file not found: {source_path(self.root, dotfile.source)}",
                error_kind="source_missing", planned=True,
            )
        if plan == "conflict:error":
            return StepReceipt.failure(
                bundle.name, "link", target, f"target already exists: {target}",
                error_kind="conflict", planned=True,
            )
        if plan == "unsupported_mode":
            err = UnsupportedModeError(target)
            return StepReceipt.failure(bundle.name, "link", target, str(err), error_kind=err.kind.value, planned=True)
        if plan == "unchanged":
            return StepReceipt.skip(bundle.name, "link", target, "already linked", planned=True)
        return StepReceipt.success(bundle.name, "link", target, plan, planned=True,
                                   metadata={"source": dotfile.source})

    # ── Hooks ───────────────────────────────────────────────────

    def _run_hooks(self, bundle: Bundle, hook_type: str, commands: list[str], report: BundleReport) -> None:
        for command in commands:
            report.receipts.append(self._run_hook(bundle, hook_type, command))
            if report.receipts[-1].failed:
                raise _BundleAborted

    def _apply_hooks(self, bundle: Bundle, report: BundleReport) -> None:
        hooks = bundle.hooks
        assert hooks is not None  # checked by caller
        for hook in hooks.apply:
            if not evaluate_condition(hook.when, self.platform):
                report.receipts.append(
                    StepReceipt.skip(bundle.name, "apply_hook", hook.run, f"condition: {hook.when}",
                                     planned=self.options.dry_run)
                )
                continue
            report.receipts.append(self._run_hook(bundle, "apply", hook.run, when=hook.when))
            if report.receipts[-1].failed:
                raise _BundleAborted

    def _run_hook(self, bundle: Bundle, hook_type: str, command: str, when: str = "") -> StepReceipt:
        step = "apply_hook" if hook_type == "apply" else hook_type
        if not self.options.run_hooks:
            return StepReceipt.skip(bundle.name, step, command, "hooks disabled", planned=self.options.dry_run)
        if self.options.dry_run:
            return StepReceipt.success(bundle.name, step, command, "would run", planned=True)

        logger.debug("Running %s hook for %s: %s", hook_type, bundle.name, command)
        result = self._runner.run_shell(command)
        if not result.ok:
            err = SubprocessError(command, result.returncode, result.output)
            return StepReceipt.failure(bundle.name, step, command, str(err), error_kind=err.kind.value)

        details = {"type": hook_type, D_APP: bundle.name}
        if when:
            details["when"] = when
        self._oplog.log(OP_HOOK_RUN, command, details)
        return StepReceipt.success(bundle.name, step, command, result.stdout.strip())

    # ── Shell integration ───────────────────────────────────────

    def _generate_shell(self, bundles: list[Bundle], report: ApplyReport) -> None:
        if self._shell_generator is None:
            return
        path = self.root / GENERATED_DIR / INIT_SCRIPT
        content = self._shell_generator.generate(bundles, self.options.shell, self._global_aliases)
        try:
            self._shell_generator.write(content, path)
        except GdfError as e:
            logger.error("Shell integration not updated: %s", e)
            report.errors.append(str(e))
            return
        self._oplog.log(OP_SHELL_GENERATE, str(path), {"shell": self.options.shell})
        report.shell_path = path
