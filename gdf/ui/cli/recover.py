"""
CLI commands for leaving gdf management behind.

Thin wrappers over ``gdf.core.use_cases.restore``.
"""

from __future__ import annotations

import json
import sys

import click

_STATUS_ICONS = {"ok": "✓", "failed": "✗", "skipped": "⊘"}
_STATUS_COLORS = {"ok": "green", "failed": "red", "skipped": "yellow"}


@click.group()
def recover() -> None:
    """Recovery — turn a gdf-managed machine back into plain files."""


@recover.command()
@click.option("--aliases-file", default="~/.aliases", show_default=True,
              help="Where to export the merged aliases.")
@click.option("--yes", "-y", is_flag=True, help="Do not ask for confirmation.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def restore(ctx: click.Context, aliases_file: str, yes: bool, as_json: bool) -> None:
    """Replace managed symlinks with real files and export aliases.

    Examples:

        gdf recover restore

        gdf recover restore --aliases-file ~/.bash_aliases --yes
    """
    from gdf.adapters.prompt import ClickPrompter
    from gdf.core.use_cases.restore import run_restore

    outcome = run_restore(ctx.obj["root"], ClickPrompter(), aliases_file=aliases_file, yes=yes)

    if as_json:
        click.echo(json.dumps(outcome.to_dict(), indent=2))
        sys.exit(outcome.exit_code)

    if outcome.aborted:
        click.secho("Restore cancelled", fg="yellow")
        return

    for receipt in outcome.receipts:
        detail = receipt.error if receipt.failed else receipt.output
        click.secho(f"   {_STATUS_ICONS.get(receipt.status, '•')} {receipt.app}: {receipt.target}",
                    fg=_STATUS_COLORS.get(receipt.status, "white"), nl=False)
        click.echo(f" — {detail}" if detail else "")

    if outcome.error:
        click.secho(f"❌ {outcome.error}", fg="red")
        sys.exit(outcome.exit_code)

    click.secho(
        f"📋 Restored {outcome.restored} dotfile(s)",
        fg="green" if not outcome.failed else "yellow",
    )
    if outcome.aliases_exported:
        click.secho(f"✅ Aliases exported to {outcome.aliases_path}", fg="green")
    else:
        click.secho(f"⚠️  Kept existing {outcome.aliases_path}", fg="yellow")
    sys.exit(outcome.exit_code)
