"""
Configuration loader — reads ``<root>/config.yaml`` into ``GdfConfig``.

A missing file means defaults. Anything unreadable or invalid raises
``ConfigError`` naming the file.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from gdf.core.engine.errors import InputValidationError
from gdf.core.paths import CONFIG_FILE

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_MB = 512


class ConfigError(InputValidationError):
    """Raised when configuration or bundle files are invalid or unreadable."""


class ConflictResolution(BaseModel):
    dotfiles: str = "error"

    @field_validator("dotfiles", mode="before")
    @classmethod
    def _default_when_empty(cls, value: Any) -> Any:
        return value or "error"


class HistoryConfig(BaseModel):
    max_size_mb: int = DEFAULT_HISTORY_MB

    @field_validator("max_size_mb", mode="before")
    @classmethod
    def _coerce_quota(cls, value: Any) -> Any:
        if value is None:
            return DEFAULT_HISTORY_MB
        if isinstance(value, int) and value <= 0:
            return DEFAULT_HISTORY_MB
        return value


class SecurityConfig(BaseModel):
    """``confirm_scripts``: ask before applying bundles with risky commands."""

    confirm_scripts: bool = True

    @field_validator("confirm_scripts", mode="before")
    @classmethod
    def _null_means_true(cls, value: Any) -> Any:
        return True if value is None else value


class GdfConfig(BaseModel):
    """Global settings from ``config.yaml``."""

    conflict_resolution: ConflictResolution = Field(default_factory=ConflictResolution)
    history: HistoryConfig = Field(default_factory=HistoryConfig)
    security: SecurityConfig = Field(default_factory=SecurityConfig)
    shell: str = ""                 # empty: detect from $SHELL

    @field_validator("conflict_resolution", "history", "security", mode="before")
    @classmethod
    def _null_section(cls, value: Any) -> Any:
        return {} if value is None else value


def config_path(root: Path) -> Path:
    return root / CONFIG_FILE


def read_yaml_mapping(path: Path) -> dict:
    """Parse a YAML file that must hold a mapping. Empty files give ``{}``.

    Raises:
        ConfigError: Unreadable file, invalid YAML, or not a mapping.
    """
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}", path=str(path)) from e

    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}", path=str(path)) from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(
            f"Expected a YAML mapping in {path}, got {type(data).__name__}",
            path=str(path),
        )
    return data


def load_config(root: Path) -> GdfConfig:
    """Load global configuration for the repository at *root*.

    Raises:
        ConfigError: The file exists but is invalid.
    """
    path = config_path(root)
    if not path.is_file():
        logger.debug("No %s at %s, using defaults", CONFIG_FILE, root)
        return GdfConfig()

    logger.debug("Loading config from %s", path)
    data = read_yaml_mapping(path)
    try:
        config = GdfConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration in {path}: {e}", path=str(path)) from e

    logger.info(
        "Loaded config: strategy=%s history=%dMB",
        config.conflict_resolution.dotfiles, config.history.max_size_mb,
    )
    return config
