"""
Paths — home expansion and the repository root layout.

Layout under the root (``~/.gdf`` unless ``GDF_ROOT`` or ``--root`` say
otherwise)::

    apps/*.yaml                    bundle definitions
    dotfiles/**                    managed configuration files
    .history/<nanos>.snap          pre-mutation snapshots
    .operations/<stamp>.json       per-apply operation logs
    generated/init.sh              shell integration output
    aliases.yaml                   global aliases
    config.yaml                    global configuration
"""

from __future__ import annotations

import os
from pathlib import Path

ROOT_ENV_VAR = "GDF_ROOT"

APPS_DIR = "apps"
DOTFILES_DIR = "dotfiles"
HISTORY_DIR = ".history"
OPERATIONS_DIR = ".operations"
LOCKS_DIR = ".locks"
GENERATED_DIR = "generated"
CONFIG_FILE = "config.yaml"
ALIASES_FILE = "aliases.yaml"


def home_dir() -> str:
    """The invoking user's home directory."""
    return os.environ.get("HOME") or str(Path.home())


def expand_path(path: str, home: str | None = None) -> str:
    """Expand ``~`` and ``~/...``. Anything else (``~foo`` included) is unchanged."""
    if not path:
        return path
    if path == "~":
        return home if home is not None else home_dir()
    if path.startswith("~/"):
        base = home if home is not None else home_dir()
        return os.path.join(base, path[2:])
    return path


def absolute_root(root: Path | str) -> Path:
    """*root* with ``~`` expanded, made absolute against the current directory.

    Snapshot and source paths are recorded under the root, so it must not
    depend on where a later command runs from.
    """
    return Path(os.path.abspath(expand_path(str(root))))


def default_root() -> Path:
    """Repository root: ``$GDF_ROOT`` if set, else ``~/.gdf``."""
    env_root = os.environ.get(ROOT_ENV_VAR)
    if env_root:
        return absolute_root(env_root)
    return absolute_root(Path(home_dir()) / ".gdf")


def source_path(root: Path | str, source: str) -> Path:
    """Absolute path of a dotfile source inside the repository."""
    return Path(root) / DOTFILES_DIR / source


def apps_dir(root: Path) -> Path:
    return root / APPS_DIR


def history_dir(root: Path) -> Path:
    return root / HISTORY_DIR


def operations_dir(root: Path) -> Path:
    return root / OPERATIONS_DIR
