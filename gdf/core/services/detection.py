"""
App auto-detection — guess a bundle name from a path or a command line.
"""

from __future__ import annotations

import os
from pathlib import Path

# Well-known config file names
_KNOWN_FILES = {
    ".gitconfig": "git",
    ".gitignore": "git",
    ".zshrc": "zsh",
    ".bashrc": "bash",
    ".bash_profile": "bash",
    ".vimrc": "vim",
    "init.vim": "nvim",
    "config.fish": "fish",
    "starship.toml": "starship",
    ".tmux.conf": "tmux",
}

UNKNOWN_APP = "unknown"


def detect_app_from_path(path: str) -> str:
    """Bundle name for a config file path.

    Known file names map directly; ``~/.config/<app>/<file>`` yields
    ``<app>``; otherwise the file name without its leading dot or its
    extension, lowercased.
    """
    base = os.path.basename(path)
    if base in _KNOWN_FILES:
        return _KNOWN_FILES[base]

    parent = os.path.dirname(path)
    if os.path.basename(os.path.dirname(parent)) == ".config":
        return os.path.basename(parent)

    if base.startswith("."):
        name = base[1:]
    else:
        name, _ext = os.path.splitext(base)
    return name.lower()


def detect_app_from_command(command: str) -> str:
    """Lowercased basename of the command's first word."""
    parts = command.split()
    if not parts:
        return UNKNOWN_APP
    return os.path.basename(parts[0]).lower()


def detect_app_from_command_if_exists(command: str, apps_dir: Path) -> str:
    """Like ``detect_app_from_command`` but only names with a bundle file count.

    Returns an empty string when no ``<apps_dir>/<name>.yaml`` exists.
    """
    candidate = detect_app_from_command(command)
    if not candidate or candidate == UNKNOWN_APP:
        return ""
    if not (Path(apps_dir) / f"{candidate}.yaml").exists():
        return ""
    return candidate
