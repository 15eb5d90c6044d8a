"""
gdf — CLI entrypoint.

Usage:
    gdf --help
    gdf apply
    gdf apply git zsh --dry-run
    gdf rollback
"""

from __future__ import annotations

import json
import sys
from pathlib import Path

import click

from gdf.core.observability.logging_config import resolve_level, setup_from_environment

from gdf import __version__


def _root(ctx: click.Context) -> Path:
    return ctx.obj["root"]


@click.group()
@click.version_option(version=__version__, prog_name="gdf")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output.")
@click.option("--debug", is_flag=True, help="Enable debug logging (very verbose).")
@click.option(
    "--root",
    "root_path",
    type=click.Path(file_okay=False),
    default=None,
    help="Repository root (default: $GDF_ROOT or ~/.gdf).",
)
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    quiet: bool,
    debug: bool,
    root_path: str | None,
) -> None:
    """gdf — declarative dotfiles, packages and shell setup."""
    from gdf.core.paths import absolute_root, default_root

    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet
    ctx.obj["debug"] = debug
    ctx.obj["root"] = absolute_root(root_path) if root_path else default_root()

    # ── Logging setup (once, at process start) ──────────────────
    setup_from_environment(resolve_level(debug=debug, verbose=verbose, quiet=quiet))


# ── apply ───────────────────────────────────────────────────────


_STEP_ICONS = {"ok": "✓", "failed": "✗", "skipped": "⊘"}
_STEP_COLORS = {"ok": "green", "failed": "red", "skipped": "yellow"}


@cli.command()
@click.argument("apps", nargs=-1)
@click.option("--dry-run", is_flag=True, help="Show what would happen, change nothing.")
@click.option(
    "--strategy",
    default=None,
    help="Conflict strategy: error, replace, force, backup_and_replace.",
)
@click.option("--fail-fast", is_flag=True, help="Stop at the first failed bundle.")
@click.option("--allow-risky", is_flag=True, help="Do not ask before running high-risk commands.")
@click.option("--no-hooks", is_flag=True, help="Skip lifecycle hooks.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def apply(
    ctx: click.Context,
    apps: tuple[str, ...],
    dry_run: bool,
    strategy: str | None,
    fail_fast: bool,
    allow_risky: bool,
    no_hooks: bool,
    as_json: bool,
) -> None:
    """Apply app bundles (default: every bundle under apps/).

    Examples:

        gdf apply

        gdf apply git zsh --dry-run

        gdf apply nvim --strategy backup_and_replace
    """
    from gdf.core.use_cases.apply import run_apply

    result = run_apply(
        _root(ctx),
        list(apps) or None,
        dry_run=dry_run,
        strategy=strategy,
        fail_fast=fail_fast,
        allow_risky=allow_risky,
        run_hooks=not no_hooks,
        handle_sigint=True,
    )

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        sys.exit(result.exit_code)

    if result.error:
        icon = "⚠️" if result.aborted else "❌"
        click.secho(f"{icon} {result.error}", fg="yellow" if result.aborted else "red")
        sys.exit(result.exit_code)

    report = result.report
    assert report is not None  # guaranteed after error check above
    quiet = ctx.obj.get("quiet", False)

    mode_label = "[dry-run] " if dry_run else ""
    if not quiet:
        click.secho(f"\n📦 {mode_label}apply — {len(result.resolved)} bundle(s)", fg="cyan", bold=True)
        for finding in result.risk_findings:
            click.secho(f"   ⚠️  {finding.app} ({finding.location}): {finding.reason}", fg="yellow")
        click.echo()

    for bundle in report.bundles:
        color = _STEP_COLORS.get(bundle.status, "white")
        click.secho(f"   {_STEP_ICONS.get(bundle.status, '•')} {bundle.app}", fg=color, bold=True, nl=False)
        click.echo(f" ({bundle.skipped_reason})" if bundle.skipped_reason else "")
        if quiet and bundle.status != "failed":
            continue
        for receipt in bundle.receipts:
            label = receipt.target or receipt.step
            detail = receipt.error if receipt.failed else receipt.output
            click.secho(f"     {_STEP_ICONS.get(receipt.status, '•')} {receipt.step}: {label}",
                        fg=_STEP_COLORS.get(receipt.status, "white"), nl=False)
            click.echo(f" — {detail.splitlines()[0]}" if detail else "")
            if receipt.failed and ctx.obj.get("verbose") and detail:
                for line in detail.splitlines()[1:10]:
                    click.echo(f"       │ {line}")

    for error in report.errors:
        click.secho(f"   ❌ {error}", fg="red")

    click.echo()
    status_color = {"ok": "green", "partial": "yellow", "failed": "red"}.get(report.status, "white")
    ok_count = sum(1 for b in report.bundles if b.status == "ok")
    click.secho(f"   Result: {ok_count}/{len(report.bundles)} bundle(s) ok", fg=status_color, bold=True)
    if report.cancelled:
        click.secho("   Cancelled before all bundles ran", fg="yellow")
    if report.log_path and not quiet:
        click.echo(f"   📋 Operation log: {report.log_path}")
    if report.shell_path and not quiet:
        click.echo(f"   🐚 Shell init: {report.shell_path}")
    click.echo()

    sys.exit(result.exit_code)


# ── rollback ────────────────────────────────────────────────────


@cli.command()
@click.option("--log", "log_path", type=click.Path(dir_okay=False), default=None,
              help="Operation log to roll back (default: the latest).")
@click.option("--target", default=None, help="Restore one target from its snapshot history.")
@click.option("--choose-snapshot", is_flag=True, help="Pick among several snapshots interactively.")
@click.option("--yes", "-y", is_flag=True, help="Do not ask for confirmation.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def rollback(
    ctx: click.Context,
    log_path: str | None,
    target: str | None,
    choose_snapshot: bool,
    yes: bool,
    as_json: bool,
) -> None:
    """Undo the last apply, or restore a single target.

    Examples:

        gdf rollback

        gdf rollback --log ~/.gdf/.operations/20250101-120000.json --yes

        gdf rollback --target ~/.zshrc --choose-snapshot
    """
    from gdf.adapters.prompt import ClickPrompter
    from gdf.core.use_cases.rollback import run_rollback, run_rollback_target

    prompter = ClickPrompter()
    if target:
        outcome = run_rollback_target(_root(ctx), target, prompter, choose_snapshot=choose_snapshot, yes=yes)
    else:
        outcome = run_rollback(
            _root(ctx),
            prompter,
            log_path=Path(log_path) if log_path else None,
            choose_snapshot=choose_snapshot,
            yes=yes,
        )

    if as_json:
        click.echo(json.dumps(outcome.to_dict(), indent=2))
        sys.exit(outcome.exit_code)

    if outcome.error:
        click.secho(f"❌ {outcome.error}", fg="red")
        sys.exit(outcome.exit_code)

    if outcome.aborted:
        click.secho("Rollback cancelled", fg="yellow")
        return

    if outcome.result is None:
        click.echo("Nothing to roll back.")
        return

    result = outcome.result
    if outcome.candidate is not None:
        click.secho(f"✅ Restored {outcome.target} from {outcome.candidate.snapshot_path}", fg="green")
    else:
        click.secho(
            f"✅ Rollback complete: {result.restored} restored, {result.removed} removed",
            fg="green" if result.ok else "yellow",
        )
    for failure in result.failed:
        click.secho(f"   ✗ {failure}", fg="red")
    sys.exit(outcome.exit_code)


# ── scan ────────────────────────────────────────────────────────


@cli.command()
@click.argument("apps", nargs=-1)
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def scan(ctx: click.Context, apps: tuple[str, ...], as_json: bool) -> None:
    """Report bundle commands that download and execute remote code."""
    from gdf.core.config.bundle_loader import load_all
    from gdf.core.engine.errors import GdfError
    from gdf.core.models.bundle import bundle_map
    from gdf.core.paths import apps_dir
    from gdf.core.services.resolver import resolve_apps
    from gdf.core.services.risk_scan import detect_high_risk_configurations

    try:
        all_bundles = bundle_map(load_all(apps_dir(_root(ctx))))
        names = list(apps) or sorted(all_bundles)
        findings = detect_high_risk_configurations(resolve_apps(names, all_bundles))
    except GdfError as e:
        click.secho(f"❌ {e}", fg="red")
        sys.exit(2)

    if as_json:
        click.echo(json.dumps({"findings": [f.model_dump() for f in findings]}, indent=2))
        return

    if not findings:
        click.secho("✅ No high-risk commands found", fg="green")
        return

    click.secho(f"\n⚠️  {len(findings)} high-risk command(s)", fg="yellow", bold=True)
    for finding in findings:
        click.secho(f"   • {finding.app} ({finding.location})", fg="yellow")
        click.echo(f"     {finding.reason}")
        click.echo(f"     │ {finding.command}")
    click.echo()


# ── detect-app ──────────────────────────────────────────────────


@cli.command("detect-app")
@click.argument("path_or_command")
@click.pass_context
def detect_app(ctx: click.Context, path_or_command: str) -> None:
    """Guess the bundle name for a config path or a command line.

    Examples:

        gdf detect-app ~/.config/nvim/init.lua

        gdf detect-app "kubectl get pods"
    """
    from gdf.core.paths import apps_dir
    from gdf.core.services.detection import (
        detect_app_from_command_if_exists,
        detect_app_from_path,
    )

    text = path_or_command.strip()
    if "/" in text or text.startswith(".") or (" " not in text and "." in text):
        click.echo(detect_app_from_path(text))
        return

    name = detect_app_from_command_if_exists(text, apps_dir(_root(ctx)))
    if not name:
        click.secho(f"No bundle found for: {text}", fg="yellow")
        sys.exit(1)
    click.echo(name)


from gdf.ui.cli.alias import alias
from gdf.ui.cli.recover import recover

cli.add_command(alias)
cli.add_command(recover)


if __name__ == "__main__":
    cli()
