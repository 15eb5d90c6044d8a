"""
Platform detection — builds the ``Platform`` value the engine runs against.

Reads ``sys.platform``, ``/proc/version`` (WSL markers) and
``/etc/os-release``, falling back to distro marker files.
"""

from __future__ import annotations

import logging
import os
import platform as _stdlib_platform
import socket
import sys
from pathlib import Path

from gdf.core.models.platform import OSFamily, Platform

logger = logging.getLogger(__name__)

_PROC_VERSION = Path("/proc/version")
_OS_RELEASE = Path("/etc/os-release")

# Fallback marker files, checked in order
_DISTRO_MARKERS = (
    (Path("/etc/debian_version"), "debian"),
    (Path("/etc/fedora-release"), "fedora"),
    (Path("/etc/arch-release"), "arch"),
)

# Machine names normalised to the short architecture names used in conditions
_ARCH_ALIASES = {
    "x86_64": "amd64",
    "amd64": "amd64",
    "aarch64": "arm64",
    "arm64": "arm64",
    "i386": "386",
    "i686": "386",
}

KNOWN_SHELLS = ("bash", "zsh", "fish")


def parse_os_release(content: str) -> str:
    """Lowercased ``ID=`` value of an os-release file, or empty."""
    for line in content.splitlines():
        if line.startswith("ID="):
            return line[3:].strip().strip("\"'").lower()
    return ""


def is_wsl_kernel(proc_version: str) -> bool:
    text = proc_version.lower()
    return "microsoft" in text or "wsl" in text


def normalize_arch(machine: str) -> str:
    return _ARCH_ALIASES.get(machine.lower(), machine.lower())


def detect_distro() -> str:
    try:
        return parse_os_release(_OS_RELEASE.read_text(encoding="utf-8"))
    except OSError:
        pass
    for marker, distro in _DISTRO_MARKERS:
        if marker.exists():
            return distro
    return ""


def _running_in_wsl() -> bool:
    try:
        return is_wsl_kernel(_PROC_VERSION.read_text(encoding="utf-8", errors="replace"))
    except OSError:
        return False


def detect_platform() -> Platform:
    """Describe the machine this process runs on."""
    hostname = socket.gethostname()
    arch = normalize_arch(_stdlib_platform.machine())

    if sys.platform == "darwin":
        detected = Platform(os=OSFamily.MACOS, hostname=hostname, arch=arch)
    else:
        family = OSFamily.WSL if _running_in_wsl() else OSFamily.LINUX
        detected = Platform(os=family, distro=detect_distro(), hostname=hostname, arch=arch)

    logger.debug("Detected platform: %s", detected)
    return detected


def detect_shell(shell_env: str | None = None) -> str:
    """``bash``, ``zsh``, ``fish`` or ``unknown`` from ``$SHELL``."""
    shell = shell_env if shell_env is not None else os.environ.get("SHELL", "")
    name = shell.rsplit("/", 1)[-1]
    return name if name in KNOWN_SHELLS else "unknown"
