"""
Shared test fixtures and configuration.
"""

import textwrap
from pathlib import Path

import pytest

from gdf.adapters.mock import RecordingRunner
from gdf.adapters.packages.installer import Installer, ManagerKind
from gdf.adapters.prompt import StaticPrompter
from gdf.core.engine.errors import SubprocessError
from gdf.core.models.bundle import Package
from gdf.core.models.platform import Platform


class FakeInstaller(Installer):
    """Installer that records requests instead of running a manager."""

    def __init__(self, installed: set[str] | None = None, fail: set[str] | None = None):
        self.installed = set(installed or ())
        self.fail = set(fail or ())
        self.calls: list[str] = []

    def is_installed(self, package: Package, platform: Platform) -> bool:
        return package.brew in self.installed

    def install(self, package: Package, platform: Platform, app: str = "") -> ManagerKind:
        self.calls.append(app)
        if app in self.fail:
            raise SubprocessError(f"brew install {package.brew}", 1, "Error: no bottle available")
        self.installed.add(package.brew)
        return ManagerKind.BREW


@pytest.fixture
def home(tmp_path: Path, monkeypatch) -> Path:
    """A throwaway $HOME."""
    home_dir = tmp_path / "home"
    home_dir.mkdir()
    monkeypatch.setenv("HOME", str(home_dir))
    monkeypatch.delenv("GDF_ROOT", raising=False)
    return home_dir


@pytest.fixture
def gdf_root(tmp_path: Path) -> Path:
    """An empty repository root with apps/ and dotfiles/."""
    root = tmp_path / "gdf"
    (root / "apps").mkdir(parents=True)
    (root / "dotfiles").mkdir()
    return root


@pytest.fixture
def write_bundle(gdf_root: Path):
    """Write ``apps/<name>.yaml`` from dedented YAML text."""

    def _write(name: str, content: str) -> Path:
        path = gdf_root / "apps" / f"{name}.yaml"
        path.write_text(textwrap.dedent(content))
        return path

    return _write


@pytest.fixture
def write_source(gdf_root: Path):
    """Write a file under ``dotfiles/``."""

    def _write(relpath: str, content: str = "") -> Path:
        path = gdf_root / "dotfiles" / relpath
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content)
        return path

    return _write


@pytest.fixture
def macos() -> Platform:
    return Platform.macos(hostname="work-laptop", arch="arm64")


@pytest.fixture
def ubuntu() -> Platform:
    return Platform.linux("ubuntu", hostname="devbox", arch="amd64")


@pytest.fixture
def runner() -> RecordingRunner:
    return RecordingRunner()


@pytest.fixture
def prompter() -> StaticPrompter:
    return StaticPrompter(confirm_answer=True)


@pytest.fixture
def installer() -> FakeInstaller:
    return FakeInstaller()
