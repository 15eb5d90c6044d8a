"""
Restore use case — stop managing this machine with gdf.

Every active dotfile symlink that points into the repository is replaced
by a real copy of its source, and the merged aliases (bundle aliases plus
global ones) are written to a plain file that can be sourced without gdf.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

from gdf.adapters.prompt import Prompter
from gdf.core.config.bundle_loader import load_all
from gdf.core.engine.errors import ErrorKind, GdfError
from gdf.core.engine.linker import Linker, resolve_target
from gdf.core.models.bundle import Bundle
from gdf.core.models.platform import Platform
from gdf.core.models.receipt import StepReceipt
from gdf.core.persistence.aliases_file import GlobalAliases, default_aliases_path
from gdf.core.paths import absolute_root, apps_dir, expand_path
from gdf.core.services.condition import evaluate_condition
from gdf.core.services.platform_detect import detect_platform
from gdf.core.services.shell_gen import ShellGenerator

logger = logging.getLogger(__name__)

DEFAULT_ALIASES_FILE = "~/.aliases"


@dataclass
class RestoreOutcome:
    """Result of ``run_restore``."""

    receipts: list[StepReceipt] = field(default_factory=list)
    aliases_path: Path | None = None
    aliases_exported: bool = False
    aborted: bool = False
    error: str | None = None
    error_kind: str | None = None

    @property
    def restored(self) -> int:
        return sum(1 for r in self.receipts if r.ok)

    @property
    def failed(self) -> list[StepReceipt]:
        return [r for r in self.receipts if r.failed]

    @property
    def exit_code(self) -> int:
        if self.error_kind == ErrorKind.INPUT_VALIDATION.value:
            return 2
        if self.error or self.failed:
            return 1
        return 0

    def to_dict(self) -> dict:
        out: dict = {
            "aborted": self.aborted,
            "restored": self.restored,
            "receipts": [r.model_dump() for r in self.receipts],
            "aliases_file": str(self.aliases_path) if self.aliases_path else "",
            "aliases_exported": self.aliases_exported,
            "exit_code": self.exit_code,
        }
        if self.error:
            out["error"] = self.error
            out["error_kind"] = self.error_kind
        return out


def restore_dotfiles(root: Path, bundles: list[Bundle], platform: Platform) -> list[StepReceipt]:
    """Turn each active managed symlink back into a regular file."""
    linker = Linker()
    receipts: list[StepReceipt] = []
    for bundle in bundles:
        for dotfile in bundle.dotfiles:
            if not dotfile.target_for(platform.os):
                continue
            target = str(resolve_target(dotfile, platform))
            try:
                if not evaluate_condition(dotfile.when, platform):
                    receipts.append(StepReceipt.skip(bundle.name, "restore", target, f"condition: {dotfile.when}"))
                    continue
                converted = linker.restore(dotfile, root, platform)
            except GdfError as e:
                logger.error("Restore %s failed: %s", target, e)
                receipts.append(StepReceipt.failure(bundle.name, "restore", target, str(e), error_kind=e.kind.value))
                continue
            if converted:
                receipts.append(StepReceipt.success(bundle.name, "restore", target, "restored"))
            else:
                receipts.append(StepReceipt.skip(bundle.name, "restore", target, "not a managed link"))
    return receipts


def run_restore(
    root: Path,
    prompter: Prompter,
    *,
    aliases_file: str = DEFAULT_ALIASES_FILE,
    platform: Platform | None = None,
    yes: bool = False,
) -> RestoreOutcome:
    """Restore real files in place of managed links and export aliases.

    Asks for confirmation through *prompter* unless *yes*; an existing
    aliases file is only overwritten after a second confirmation.
    """
    root = absolute_root(root)
    outcome = RestoreOutcome(aliases_path=Path(expand_path(aliases_file)))

    if not yes and not prompter.confirm(
        "Replace every gdf-managed symlink with a copy of its source and export aliases?",
        default=False,
    ):
        outcome.aborted = True
        return outcome

    try:
        bundles = load_all(apps_dir(root))
        global_aliases = GlobalAliases.load(default_aliases_path(root)).aliases
    except GdfError as e:
        outcome.error, outcome.error_kind = str(e), e.kind.value
        return outcome

    platform = platform or detect_platform()
    outcome.receipts = restore_dotfiles(root, bundles, platform)
    logger.info("Restored %d dotfile(s)", outcome.restored)

    path = outcome.aliases_path
    if path.exists() and not yes and not prompter.confirm(f"{path} exists. Overwrite?", default=False):
        logger.info("Keeping existing %s", path)
        return outcome

    generator = ShellGenerator()
    try:
        generator.write(generator.export_aliases(bundles, global_aliases), path, what="aliases file")
    except GdfError as e:
        outcome.error, outcome.error_kind = str(e), e.kind.value
        return outcome
    outcome.aliases_exported = True
    return outcome
