"""
Apply use case — from ``gdf apply`` to a saved operation log.

Loads config and bundles, resolves the requested apps, runs the risk
scan (asking before risky bundles when configured to), takes the apply
lock and hands the ordered bundles to the engine.

Every failure is mapped onto ``ApplyResult`` so the CLI only has to
render it and pick an exit code.
"""

from __future__ import annotations

import logging
import signal
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path

from gdf.adapters.packages.installer import Installer, PackageInstaller
from gdf.adapters.process import ProcessRunner, SubprocessRunner
from gdf.adapters.prompt import ClickPrompter, Prompter
from gdf.core.config.bundle_loader import load_all
from gdf.core.config.loader import GdfConfig, load_config
from gdf.core.engine.errors import ErrorKind, GdfError
from gdf.core.engine.executor import ApplyReport, Engine, EngineOptions
from gdf.core.engine.history import HistoryManager
from gdf.core.models.bundle import bundle_map
from gdf.core.models.platform import Platform
from gdf.core.models.receipt import RiskFinding
from gdf.core.persistence.aliases_file import GlobalAliases, default_aliases_path
from gdf.core.persistence.apply_lock import ApplyLock
from gdf.core.paths import absolute_root, apps_dir
from gdf.core.services.platform_detect import detect_platform, detect_shell
from gdf.core.services.resolver import resolve_apps
from gdf.core.services.risk_scan import detect_high_risk_configurations
from gdf.core.services.shell_gen import ShellGenerator

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_INVALID_INPUT = 2


@dataclass
class ApplyResult:
    """Outcome of ``run_apply``."""

    root: Path | None = None
    platform: Platform | None = None
    requested: list[str] = field(default_factory=list)
    resolved: list[str] = field(default_factory=list)
    risk_findings: list[RiskFinding] = field(default_factory=list)
    report: ApplyReport | None = None
    error: str | None = None
    error_kind: str | None = None
    aborted: bool = False

    @property
    def exit_code(self) -> int:
        if self.error_kind == ErrorKind.INPUT_VALIDATION.value:
            return EXIT_INVALID_INPUT
        if self.error or self.aborted:
            return EXIT_FAILURE
        if self.report is not None and not self.report.ok:
            return EXIT_FAILURE
        return EXIT_OK

    def to_dict(self) -> dict:
        result: dict = {
            "root": str(self.root) if self.root else "",
            "platform": self.platform.to_dict() if self.platform else {},
            "requested": list(self.requested),
            "resolved": list(self.resolved),
            "risk_findings": [f.model_dump() for f in self.risk_findings],
            "exit_code": self.exit_code,
        }
        if self.error:
            result["error"] = self.error
            result["error_kind"] = self.error_kind
        if self.aborted:
            result["aborted"] = True
        if self.report is not None:
            result["report"] = self.report.to_dict()
        return result


@contextmanager
def _sigint_cancels(engine: Engine) -> Iterator[None]:
    """Route Ctrl-C to ``engine.cancel()`` for the duration of the block."""

    def _handler(signum: int, frame: object) -> None:
        engine.cancel()

    previous = signal.signal(signal.SIGINT, _handler)
    try:
        yield
    finally:
        signal.signal(signal.SIGINT, previous)


def _fail(result: ApplyResult, error: GdfError) -> ApplyResult:
    result.error = str(error)
    result.error_kind = error.kind.value
    return result


def run_apply(
    root: Path,
    apps: list[str] | None = None,
    *,
    dry_run: bool = False,
    strategy: str | None = None,
    fail_fast: bool = False,
    allow_risky: bool = False,
    run_hooks: bool = True,
    platform: Platform | None = None,
    runner: ProcessRunner | None = None,
    prompter: Prompter | None = None,
    installer: Installer | None = None,
    config: GdfConfig | None = None,
    handle_sigint: bool = False,
) -> ApplyResult:
    """Apply *apps* (default: every bundle) from the repository at *root*.

    Args:
        root: Repository root.
        apps: Bundle names to apply; dependencies are pulled in.
        dry_run: Plan only.
        strategy: Conflict strategy; defaults to ``conflict_resolution.dotfiles``.
        fail_fast: Stop at the first failed bundle.
        allow_risky: Skip the confirmation for risky commands.
        run_hooks: Run lifecycle hooks.
        platform: Override detection (tests, cross-checks).
        runner: Process runner for installers and hooks.
        prompter: Answers confirmations.
        installer: Override the package installer.
        config: Pre-loaded configuration; read from *root* when None.
        handle_sigint: Let Ctrl-C cancel between bundles.
    """
    root = absolute_root(root)
    result = ApplyResult(root=root)

    # ── Config and bundles ──────────────────────────────────────
    try:
        if config is None:
            config = load_config(root)
        bundles = load_all(apps_dir(root))
    except GdfError as e:
        return _fail(result, e)

    all_bundles = bundle_map(bundles)
    result.requested = list(apps) if apps else sorted(all_bundles)

    try:
        ordered = resolve_apps(result.requested, all_bundles)
    except GdfError as e:
        return _fail(result, e)
    result.resolved = [b.name for b in ordered]

    platform = platform or detect_platform()
    result.platform = platform
    runner = runner or SubprocessRunner()
    prompter = prompter or ClickPrompter()

    # ── Risk scan, before anything mutates ──────────────────────
    result.risk_findings = detect_high_risk_configurations(ordered)
    if result.risk_findings and not dry_run and not allow_risky and config.security.confirm_scripts:
        lines = [f"{f.app} ({f.location}): {f.reason}\n    {f.command}" for f in result.risk_findings]
        question = "High-risk commands detected:\n  " + "\n  ".join(lines) + "\nProceed anyway?"
        if not prompter.confirm(question, default=False):
            result.aborted = True
            result.error = "aborted due to high-risk configuration"
            result.error_kind = ErrorKind.USER_DECLINED.value
            return result

    # ── Engine ──────────────────────────────────────────────────
    try:
        aliases = GlobalAliases.load(default_aliases_path(root)).aliases
    except GdfError as e:
        logger.warning("Could not load global aliases: %s", e)
        aliases = {}

    shell = config.shell or detect_shell()
    options = EngineOptions(
        strategy=strategy or config.conflict_resolution.dotfiles,
        dry_run=dry_run,
        fail_fast=fail_fast,
        run_hooks=run_hooks,
        shell=shell if shell in ("bash", "zsh") else "bash",
    )
    engine = Engine(
        root,
        platform,
        installer or PackageInstaller(runner, prompter),
        runner,
        history=HistoryManager.for_root(root, config.history.max_size_mb),
        shell_generator=ShellGenerator(),
        options=options,
        global_aliases=aliases,
    )

    lock = ApplyLock(root)
    try:
        engine.preflight(ordered)
        if not dry_run:
            lock.acquire()
        if handle_sigint:
            with _sigint_cancels(engine):
                result.report = engine.apply(ordered)
        else:
            result.report = engine.apply(ordered)
    except GdfError as e:
        return _fail(result, e)
    finally:
        lock.release()

    result.report.risk_findings = list(result.risk_findings)
    return result
