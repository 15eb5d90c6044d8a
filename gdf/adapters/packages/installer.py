"""
Package installer — picks a package manager and drives it.

Managers form a closed set (``ManagerKind``). ``select_manager`` is the
single place that maps a package definition and a platform onto one of them;
``PackageInstaller`` then dispatches on the kind. Every command goes
through the injected ``ProcessRunner`` and every question through the
injected ``Prompter``.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from enum import Enum

from gdf.adapters.process import ProcessResult, ProcessRunner
from gdf.adapters.prompt import Prompter
from gdf.core.engine.errors import NoInstallMethodError, SubprocessError, UserDeclinedError
from gdf.core.models.bundle import CustomInstall, Package
from gdf.core.models.platform import Platform

logger = logging.getLogger(__name__)


class ManagerKind(str, Enum):
    BREW = "brew"
    APT = "apt"
    DNF = "dnf"
    PACMAN = "pacman"
    CUSTOM = "custom"
    NONE = "none"


_NAMED_MANAGERS = (ManagerKind.BREW, ManagerKind.APT, ManagerKind.DNF, ManagerKind.PACMAN)


def _preferred(package: Package, platform: Platform) -> str:
    prefer = package.prefer
    if prefer is None:
        return ""
    if platform.is_macos:
        return prefer.macos
    if platform.is_wsl:
        return prefer.wsl or prefer.linux
    return prefer.linux


def _platform_default(platform: Platform) -> ManagerKind:
    if platform.is_macos:
        return ManagerKind.BREW
    if platform.is_debian:
        return ManagerKind.APT
    if platform.is_fedora:
        return ManagerKind.DNF
    if platform.is_arch:
        return ManagerKind.PACMAN
    return ManagerKind.NONE


def select_manager(package: Package | None, platform: Platform) -> ManagerKind:
    """Which manager installs *package* on *platform*.

    Order: explicit ``prefer`` entry for the platform (when that manager
    has a name configured), then the platform's native manager, then the
    custom script, else ``NONE``.
    """
    if package is None:
        return ManagerKind.NONE

    preferred = _preferred(package, platform)
    if preferred in {m.value for m in _NAMED_MANAGERS}:
        _name, defined = package.resolve_name(preferred)
        if defined:
            return ManagerKind(preferred)

    native = _platform_default(platform)
    if native is not ManagerKind.NONE:
        _name, defined = package.resolve_name(native.value)
        if defined:
            return native

    if package.custom is not None and package.custom.script:
        return ManagerKind.CUSTOM
    return ManagerKind.NONE


class Installer(ABC):
    """What the engine needs from package management."""

    @abstractmethod
    def is_installed(self, package: Package, platform: Platform) -> bool:
        """True when the package is already present. Custom scripts can't tell."""

    @abstractmethod
    def install(self, package: Package, platform: Platform, app: str = "") -> ManagerKind:
        """Install the package and return the manager that did it.

        Raises:
            NoInstallMethodError: Nothing can install it on this platform.
            UserDeclinedError: The custom script was not confirmed.
            SubprocessError: The manager or script exited non-zero.
        """


class PackageInstaller(Installer):
    """Installs packages with brew, apt, dnf, pacman or a custom script."""

    def __init__(self, runner: ProcessRunner, prompter: Prompter):
        self._runner = runner
        self._prompter = prompter

    # ── Queries ─────────────────────────────────────────────────

    def is_installed(self, package: Package, platform: Platform) -> bool:
        kind = select_manager(package, platform)
        name, defined = package.resolve_name(kind.value)
        if not defined:
            return False

        if kind is ManagerKind.BREW:
            result = self._runner.run(["brew", "list", "--versions", name])
            return result.ok and bool(result.stdout.strip())
        if kind is ManagerKind.APT:
            result = self._runner.run(["dpkg", "-s", name])
            return result.ok and "Status: install ok installed" in result.stdout
        if kind is ManagerKind.DNF:
            return self._runner.run(["rpm", "-q", name]).ok
        if kind is ManagerKind.PACMAN:
            return self._runner.run(["pacman", "-Q", name]).ok
        return False

    # ── Install ─────────────────────────────────────────────────

    def install(self, package: Package, platform: Platform, app: str = "") -> ManagerKind:
        kind = select_manager(package, platform)
        name, _defined = package.resolve_name(kind.value)

        if kind is ManagerKind.BREW:
            self._check(["brew", "install", name])
        elif kind is ManagerKind.APT:
            self._install_apt(package)
        elif kind is ManagerKind.DNF:
            self._check(["sudo", "dnf", "install", "-y", name])
        elif kind is ManagerKind.PACMAN:
            self._check(["sudo", "pacman", "-S", "--noconfirm", name])
        elif kind is ManagerKind.CUSTOM:
            assert package.custom is not None  # guaranteed by select_manager
            self._run_custom(package.custom, app)
        else:
            raise NoInstallMethodError(app, platform.os.value)

        logger.info("Installed %s via %s", name or app, kind.value)
        return kind

    def _install_apt(self, package: Package) -> None:
        apt = package.apt
        assert apt is not None  # guaranteed by select_manager
        if apt.key:
            self._check(["sh", "-c", f"curl -fsSL {apt.key} | sudo apt-key add -"])
        if apt.repo:
            self._check(["sudo", "add-apt-repository", "-y", apt.repo])
            self._check(["sudo", "apt-get", "update"])
        self._check(["sudo", "apt-get", "install", "-y", apt.name])

    def _run_custom(self, custom: CustomInstall, app: str) -> None:
        if custom.requires_confirmation:
            message = f"Run custom install script for '{app or 'package'}'?\n  {custom.script}"
            if custom.sudo:
                message += "\n  (runs with sudo)"
            if not self._prompter.confirm(message, default=False):
                raise UserDeclinedError(f"custom install script for '{app}'")

        argv = ["sh", "-c", custom.script]
        if custom.sudo:
            argv = ["sudo", *argv]
        logger.info("Running custom install script for %s", app or "package")
        self._check(argv)

    def _check(self, argv: list[str]) -> ProcessResult:
        result = self._runner.run(argv)
        if not result.ok:
            raise SubprocessError(" ".join(argv), result.returncode, result.output)
        return result
