"""
Platform model — which machine the engine is converging.

A closed set of OS families (macOS, Linux, WSL) with the distro carried
alongside. Detection lives in ``gdf.core.services.platform_detect``;
this module is pure data.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class OSFamily(str, Enum):
    """Operating-system family the engine dispatches on."""

    MACOS = "macos"
    LINUX = "linux"
    WSL = "wsl"


_DEBIAN_FAMILY = frozenset({"debian", "ubuntu", "linuxmint"})
_FEDORA_FAMILY = frozenset({"fedora", "rhel", "centos"})
_ARCH_FAMILY = frozenset({"arch", "manjaro", "endeavouros"})


@dataclass(frozen=True)
class Platform:
    """Immutable description of the target machine."""

    os: OSFamily
    distro: str = ""
    hostname: str = ""
    arch: str = ""

    @classmethod
    def macos(cls, **kwargs: str) -> Platform:
        return cls(os=OSFamily.MACOS, **kwargs)

    @classmethod
    def linux(cls, distro: str = "", **kwargs: str) -> Platform:
        return cls(os=OSFamily.LINUX, distro=distro, **kwargs)

    @classmethod
    def wsl(cls, distro: str = "", **kwargs: str) -> Platform:
        return cls(os=OSFamily.WSL, distro=distro, **kwargs)

    @property
    def is_macos(self) -> bool:
        return self.os is OSFamily.MACOS

    @property
    def is_linux(self) -> bool:
        """True for native Linux only (WSL reports False)."""
        return self.os is OSFamily.LINUX

    @property
    def is_wsl(self) -> bool:
        return self.os is OSFamily.WSL

    @property
    def is_debian(self) -> bool:
        return self.distro in _DEBIAN_FAMILY

    @property
    def is_fedora(self) -> bool:
        return self.distro in _FEDORA_FAMILY

    @property
    def is_arch(self) -> bool:
        return self.distro in _ARCH_FAMILY

    def to_dict(self) -> dict:
        return {
            "os": self.os.value,
            "distro": self.distro,
            "hostname": self.hostname,
            "arch": self.arch,
        }
