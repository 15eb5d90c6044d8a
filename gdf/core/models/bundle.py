"""
Bundle model — the declarative unit loaded from apps/<name>.yaml.

A bundle groups a package, the dotfiles it owns, its shell integration
and its lifecycle hooks under one name. Bundles are read-only once
loaded: the engine consumes them, it never mutates them.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from gdf.core.models.platform import OSFamily


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True)


# ── Dotfiles ────────────────────────────────────────────────────


class TargetMap(_Frozen):
    """Per-platform target paths. Missing keys fall back to ``default``."""

    default: str = ""
    macos: str = ""
    linux: str = ""
    wsl: str = ""

    def get_target(self, os_family: OSFamily | str) -> str:
        key = os_family.value if isinstance(os_family, OSFamily) else os_family
        specific = {"macos": self.macos, "linux": self.linux, "wsl": self.wsl}.get(key, "")
        return specific or self.default

    @property
    def is_empty(self) -> bool:
        return not (self.default or self.macos or self.linux or self.wsl)


class Dotfile(_Frozen):
    """One symlink intent: ``<root>/dotfiles/<source>`` appears at ``target``."""

    source: str = ""
    target: str | TargetMap = ""
    when: str = ""
    template: bool = False
    secret: bool = False     # advisory only; placement is unchanged

    def target_for(self, os_family: OSFamily | str) -> str:
        """Resolve the unexpanded target path for an OS family."""
        if isinstance(self.target, TargetMap):
            return self.target.get_target(os_family)
        return self.target

    @property
    def has_target(self) -> bool:
        if isinstance(self.target, TargetMap):
            return not self.target.is_empty
        return bool(self.target)


# ── Packages ────────────────────────────────────────────────────


class Confirm(str, Enum):
    """Confirmation policy for custom install scripts.

    ``DEFAULT`` is what an absent or null ``confirm`` key yields; it is
    evaluated exactly like ``ALWAYS``.
    """

    DEFAULT = "default"
    ALWAYS = "always"
    NEVER = "never"


class AptPackage(_Frozen):
    """apt package, optionally with an external repository."""

    name: str = ""
    repo: str = ""
    key: str = ""


class CustomInstall(_Frozen):
    """Custom installation script run through ``sh -c``."""

    script: str = ""
    sudo: bool = False
    confirm: Confirm = Confirm.DEFAULT

    @field_validator("confirm", mode="before")
    @classmethod
    def _coerce_confirm(cls, value: Any) -> Any:
        if value is None:
            return Confirm.DEFAULT
        if value is True:
            return Confirm.ALWAYS
        if value is False:
            return Confirm.NEVER
        return value

    @property
    def requires_confirmation(self) -> bool:
        return self.confirm is not Confirm.NEVER


class Prefer(_Frozen):
    """Preferred package manager per platform."""

    macos: str = ""
    linux: str = ""
    wsl: str = ""


class Package(_Frozen):
    """How to install the bundle's package, per manager."""

    brew: str = ""
    apt: AptPackage | None = None
    dnf: str = ""
    pacman: str = ""
    custom: CustomInstall | None = None
    prefer: Prefer | None = None

    @field_validator("apt", mode="before")
    @classmethod
    def _coerce_apt(cls, value: Any) -> Any:
        # ``apt: ripgrep`` is shorthand for ``apt: {name: ripgrep}``
        if isinstance(value, str):
            return {"name": value}
        return value

    def resolve_name(self, manager: str) -> tuple[str, bool]:
        """Return ``(name, True)`` when a package is configured for *manager*."""
        if manager == "brew" and self.brew:
            return self.brew, True
        if manager == "apt" and self.apt is not None and self.apt.name:
            return self.apt.name, True
        if manager == "dnf" and self.dnf:
            return self.dnf, True
        if manager == "pacman" and self.pacman:
            return self.pacman, True
        return "", False


# ── Shell integration ───────────────────────────────────────────


class Completions(_Frozen):
    bash: str = ""
    zsh: str = ""


class InitSnippet(_Frozen):
    """A startup snippet; ``bash``/``zsh`` override ``common`` when set."""

    name: str = ""
    common: str = ""
    bash: str = ""
    zsh: str = ""
    guard: str = ""

    def for_shell(self, shell: str) -> str:
        if shell == "bash" and self.bash:
            return self.bash
        if shell == "zsh" and self.zsh:
            return self.zsh
        return self.common


class Shell(_Frozen):
    aliases: dict[str, str] = Field(default_factory=dict)
    functions: dict[str, str] = Field(default_factory=dict)
    env: dict[str, str] = Field(default_factory=dict)
    completions: Completions | None = None
    init: list[InitSnippet] = Field(default_factory=list)


# ── Hooks ───────────────────────────────────────────────────────


class ApplyHook(_Frozen):
    """A hook run during apply for package-less bundles."""

    run: str = ""
    when: str = ""


class Hooks(_Frozen):
    pre_install: list[str] = Field(default_factory=list)
    post_install: list[str] = Field(default_factory=list)
    pre_link: list[str] = Field(default_factory=list)
    post_link: list[str] = Field(default_factory=list)
    apply: list[ApplyHook] = Field(default_factory=list)


class Plugin(_Frozen):
    name: str = ""
    install: str = ""


# ── Bundle ──────────────────────────────────────────────────────


class Bundle(_Frozen):
    """An app bundle — package + dotfiles + shell + hooks under one name."""

    kind: str = ""
    name: str = ""
    description: str = ""
    dependencies: list[str] = Field(default_factory=list)
    package: Package | None = None
    dotfiles: list[Dotfile] = Field(default_factory=list)
    shell: Shell | None = None
    hooks: Hooks | None = None
    companions: list[str] = Field(default_factory=list)
    plugins: list[Plugin] = Field(default_factory=list)


def bundle_map(bundles: list[Bundle]) -> dict[str, Bundle]:
    """Index bundles by name."""
    return {b.name: b for b in bundles}
