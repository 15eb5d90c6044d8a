"""
Global aliases — ``<root>/aliases.yaml``, aliases not owned by any bundle.

File shape::

    aliases:
      ll: ls -la
      gs: git status

A missing file is an empty store. Writes are atomic (write to temp file,
then rename) so a crash never leaves a half-written file behind.
"""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from gdf.core.config.loader import ConfigError, read_yaml_mapping
from gdf.core.engine.errors import FilesystemError
from gdf.core.paths import ALIASES_FILE

logger = logging.getLogger(__name__)


def default_aliases_path(root: Path) -> Path:
    return root / ALIASES_FILE


class GlobalAliases(BaseModel):
    """Alias name → shell command."""

    aliases: dict[str, str] = Field(default_factory=dict)

    @field_validator("aliases", mode="before")
    @classmethod
    def _null_is_empty(cls, value: Any) -> Any:
        return {} if value is None else value

    @classmethod
    def load(cls, path: Path) -> GlobalAliases:
        """Read *path*; a missing file gives an empty store.

        Raises:
            ConfigError: The file is unreadable or not valid alias YAML.
        """
        if not path.is_file():
            logger.debug("No aliases file at %s", path)
            return cls()

        data = read_yaml_mapping(path)
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            raise ConfigError(f"Invalid aliases file {path}: {e}", path=str(path)) from e

    def save(self, path: Path) -> None:
        """Write atomically to *path* (mode 0644).

        Raises:
            FilesystemError: The file could not be written.
        """
        content = yaml.safe_dump({"aliases": dict(self.aliases)}, sort_keys=True, allow_unicode=True)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=path.parent, prefix=".aliases_", suffix=".tmp")
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
            raise FilesystemError("writing aliases file", str(path), e) from e
        logger.debug("Saved %d aliases to %s", len(self.aliases), path)

    def add(self, name: str, command: str) -> tuple[str, bool]:
        """Set *name*; returns ``(previous_command, existed)``."""
        previous = self.aliases.get(name)
        self.aliases[name] = command
        return previous or "", previous is not None

    def remove(self, name: str) -> bool:
        """Delete *name*; False if it wasn't there."""
        return self.aliases.pop(name, None) is not None

    def sorted_names(self) -> list[str]:
        return sorted(self.aliases)
