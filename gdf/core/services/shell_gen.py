"""
Shell generator — renders bundle shell integration into one init script.

Section order in the output: environment, aliases, functions,
completions, init snippets. Environment, aliases and functions are
sorted by name. Bundle aliases are merged in bundle order and the global
aliases file is merged last, so later definitions win.
"""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path

from gdf.core.engine.errors import FilesystemError
from gdf.core.models.bundle import Bundle

logger = logging.getLogger(__name__)

INIT_SCRIPT = "init.sh"

_HEADERS = {
    "bash": "#!/bin/bash",
    "zsh": "#!/bin/zsh",
}


def _single_quote(value: str) -> str:
    return "'" + value.replace("'", "'\\''") + "'"


def _double_quote(value: str) -> str:
    return '"' + value.replace("\\", "\\\\").replace('"', '\\"') + '"'


def merged_aliases(bundles: list[Bundle], global_aliases: dict[str, str] | None = None) -> dict[str, str]:
    """Bundle aliases in bundle order, then *global_aliases*; later wins."""
    aliases: dict[str, str] = {}
    for bundle in bundles:
        if bundle.shell is not None:
            aliases.update(bundle.shell.aliases)
    aliases.update(global_aliases or {})
    return aliases


class ShellGenerator:
    """Builds and writes the shell init script."""

    def generate(
        self,
        bundles: list[Bundle],
        shell: str = "bash",
        global_aliases: dict[str, str] | None = None,
    ) -> str:
        """Render the init script for *shell* (``bash`` or ``zsh``)."""
        shell = shell if shell in _HEADERS else "bash"

        env: dict[str, str] = {}
        aliases = merged_aliases(bundles, global_aliases)
        functions: dict[str, str] = {}
        completions: list[tuple[str, str]] = []
        snippets: list[tuple[str, str, str]] = []

        for bundle in bundles:
            if bundle.shell is None:
                continue
            env.update(bundle.shell.env)
            functions.update(bundle.shell.functions)
            if bundle.shell.completions is not None:
                cmd = bundle.shell.completions.zsh if shell == "zsh" else bundle.shell.completions.bash
                if cmd:
                    completions.append((bundle.name, cmd))
            for snippet in bundle.shell.init:
                body = snippet.for_shell(shell)
                if body:
                    snippets.append((f"{bundle.name}:{snippet.name}", body, snippet.guard))

        lines = [_HEADERS[shell], "# Generated by gdf - do not edit", ""]

        if env:
            lines.append("# Environment")
            lines.extend(f"export {key}={_double_quote(env[key])}" for key in sorted(env))
            lines.append("")

        if aliases:
            lines.append("# Aliases")
            lines.extend(f"alias {name}={_single_quote(aliases[name])}" for name in sorted(aliases))
            lines.append("")

        if functions:
            lines.append("# Functions")
            for name in sorted(functions):
                lines.append(f"{name}() {{")
                lines.extend(f"  {line}" for line in functions[name].strip().splitlines())
                lines.append("}")
            lines.append("")

        if completions:
            lines.append("# Completions")
            for app, cmd in completions:
                lines.append(f"# {app}")
                lines.append(f'eval "$({cmd})"')
            lines.append("")

        if snippets:
            lines.append("# Init")
            for label, body, guard in snippets:
                lines.append(f"# {label}")
                if guard:
                    lines.append(f"if {guard}; then")
                    lines.extend(f"  {line}" for line in body.strip().splitlines())
                    lines.append("fi")
                else:
                    lines.extend(body.strip().splitlines())
            lines.append("")

        return "\n".join(lines)

    def export_aliases(self, bundles: list[Bundle], global_aliases: dict[str, str] | None = None) -> str:
        """Plain alias file for sourcing without gdf (``gdf recover restore``)."""
        aliases = merged_aliases(bundles, global_aliases)
        lines = ["# Aliases exported by gdf restore", ""]
        lines.extend(f"alias {name}={_single_quote(aliases[name])}" for name in sorted(aliases))
        return "\n".join(lines) + "\n"

    def write(self, content: str, path: Path, what: str = "shell init script") -> Path:
        """Write *content* to *path* atomically (temp file + rename).

        Raises:
            FilesystemError: The directory or file could not be written.
        """
        try:
            path.parent.mkdir(mode=0o755, parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=path.parent, prefix=".init_", suffix=".tmp")
            tmp = Path(tmp_path)
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    f.write(content)
                os.chmod(tmp, 0o644)
                tmp.replace(path)
            except OSError:
                tmp.unlink(missing_ok=True)
                raise
        except OSError as e:
            raise FilesystemError(f"writing {what}", str(path), e) from e

        logger.debug("Wrote %s %s (%d bytes)", what, path, len(content))
        return path
