"""
Bundle loader — reads ``apps/*.yaml`` into validated ``Bundle`` models.

Parsing is PyYAML + pydantic; ``validate_bundle`` then applies the
rules pydantic can't express, reporting each problem with its field
path (``dotfiles[0].target``, ``shell.init[1].name``, ...).
"""

from __future__ import annotations

import logging
import re
from pathlib import Path

from pydantic import ValidationError

from gdf.core.config.loader import ConfigError, read_yaml_mapping
from gdf.core.engine.errors import FieldError
from gdf.core.models.bundle import Bundle

logger = logging.getLogger(__name__)

BUNDLE_SUFFIX = ".yaml"

_NAME_RE = re.compile(r"^[a-z][a-z0-9-]*$")


def is_valid_name(name: str) -> bool:
    return bool(_NAME_RE.match(name))


def validate_bundle(bundle: Bundle) -> list[FieldError]:
    """Every rule violation in *bundle*; empty means valid."""
    errors: list[FieldError] = []

    if not bundle.name:
        errors.append(FieldError("name", "is required"))
    elif not is_valid_name(bundle.name):
        errors.append(FieldError("name", "must be lowercase alphanumeric with hyphens"))

    for i, dotfile in enumerate(bundle.dotfiles):
        if not dotfile.source:
            errors.append(FieldError(f"dotfiles[{i}].source", "is required"))
        if not dotfile.has_target:
            errors.append(FieldError(f"dotfiles[{i}].target", "is required"))

    for i, plugin in enumerate(bundle.plugins):
        if not plugin.name:
            errors.append(FieldError(f"plugins[{i}].name", "is required"))
        if not plugin.install:
            errors.append(FieldError(f"plugins[{i}].install", "is required"))

    if bundle.package is not None and bundle.package.custom is not None:
        if not bundle.package.custom.script:
            errors.append(FieldError("package.custom.script", "is required when using custom install"))

    if bundle.shell is not None:
        seen: set[str] = set()
        for i, snippet in enumerate(bundle.shell.init):
            if not snippet.name:
                errors.append(FieldError(f"shell.init[{i}].name", "is required"))
            elif snippet.name in seen:
                errors.append(FieldError(f"shell.init[{i}].name", "must be unique within shell.init"))
            else:
                seen.add(snippet.name)
            if not (snippet.common or snippet.bash or snippet.zsh):
                errors.append(FieldError(f"shell.init[{i}]", "must define at least one of common, bash, or zsh"))

    return errors


def _pydantic_errors(e: ValidationError) -> list[FieldError]:
    out = []
    for err in e.errors():
        loc = ""
        for part in err["loc"]:
            loc += f"[{part}]" if isinstance(part, int) else (f".{part}" if loc else str(part))
        out.append(FieldError(loc or "bundle", err["msg"]))
    return out


def load_bundle(path: Path) -> Bundle:
    """Parse and validate one bundle file.

    Raises:
        ConfigError: Unreadable, not YAML, wrong shape, or invalid fields.
    """
    data = read_yaml_mapping(path)
    try:
        bundle = Bundle.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"invalid bundle {path}", errors=_pydantic_errors(e), path=str(path)) from e

    errors = validate_bundle(bundle)
    if errors:
        raise ConfigError(f"invalid bundle {path}", errors=errors, path=str(path))
    return bundle


def load_all(apps_dir: Path) -> list[Bundle]:
    """Load every ``*.yaml`` bundle in *apps_dir*, sorted by file name.

    Raises:
        ConfigError: The directory is missing, a bundle is invalid, or two
            files declare the same bundle name.
    """
    if not apps_dir.is_dir():
        raise ConfigError(f"Apps directory not found: {apps_dir}", path=str(apps_dir))

    bundles: list[Bundle] = []
    origin: dict[str, Path] = {}
    for path in sorted(apps_dir.iterdir()):
        if path.suffix != BUNDLE_SUFFIX or not path.is_file():
            continue
        bundle = load_bundle(path)
        if bundle.name in origin:
            raise ConfigError(
                f"duplicate bundle name '{bundle.name}'",
                errors=[FieldError("name", f"also declared in {origin[bundle.name].name}")],
                path=str(path),
            )
        origin[bundle.name] = path
        bundles.append(bundle)

    logger.debug("Loaded %d bundles from %s", len(bundles), apps_dir)
    return bundles
