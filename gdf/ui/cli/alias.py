"""
CLI commands for global aliases.

Thin wrappers over ``gdf.core.persistence.aliases_file``.
"""

from __future__ import annotations

import json
import sys
from pathlib import Path

import click


def _aliases_path(ctx: click.Context) -> Path:
    from gdf.core.persistence.aliases_file import default_aliases_path

    return default_aliases_path(ctx.obj["root"])


def _load(path: Path):
    from gdf.core.engine.errors import GdfError
    from gdf.core.persistence.aliases_file import GlobalAliases

    try:
        return GlobalAliases.load(path)
    except GdfError as e:
        click.secho(f"❌ {e}", fg="red")
        sys.exit(1)


@click.group()
def alias() -> None:
    """Global aliases — shell aliases not owned by any bundle."""


@alias.command("list")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def list_aliases(ctx: click.Context, as_json: bool) -> None:
    """List global aliases."""
    store = _load(_aliases_path(ctx))

    if as_json:
        click.echo(json.dumps({"aliases": store.aliases}, indent=2, sort_keys=True))
        return

    names = store.sorted_names()
    if not names:
        click.secho("No global aliases defined", fg="yellow")
        return

    click.secho(f"🔗 Global aliases ({len(names)}):", fg="cyan", bold=True)
    width = max(len(n) for n in names)
    for name in names:
        click.echo(f"   {name.ljust(width)}  {store.aliases[name]}")


@alias.command()
@click.argument("name")
@click.argument("command")
@click.pass_context
def add(ctx: click.Context, name: str, command: str) -> None:
    """Add or update a global alias.

    Examples:

        gdf alias add ll "ls -la"
    """
    from gdf.core.engine.errors import GdfError

    path = _aliases_path(ctx)
    store = _load(path)
    previous, existed = store.add(name, command)
    try:
        store.save(path)
    except GdfError as e:
        click.secho(f"❌ {e}", fg="red")
        sys.exit(1)

    if existed:
        click.secho(f"✅ Updated {name}: {previous} → {command}", fg="green")
    else:
        click.secho(f"✅ Added {name} = {command}", fg="green")


@alias.command()
@click.argument("name")
@click.pass_context
def remove(ctx: click.Context, name: str) -> None:
    """Remove a global alias."""
    from gdf.core.engine.errors import GdfError

    path = _aliases_path(ctx)
    store = _load(path)
    if not store.remove(name):
        click.secho(f"❌ Alias not found: {name}", fg="red")
        sys.exit(1)
    try:
        store.save(path)
    except GdfError as e:
        click.secho(f"❌ {e}", fg="red")
        sys.exit(1)
    click.secho(f"✅ Removed {name}", fg="green")
