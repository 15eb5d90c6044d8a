"""
Process runner — the one place the engine starts subprocesses.

Package managers, custom install scripts and hooks all go through a
``ProcessRunner``. Engines and installers receive one at construction;
tests hand in ``gdf.adapters.mock.RecordingRunner`` instead.
"""

from __future__ import annotations

import logging
import subprocess
from abc import ABC, abstractmethod
from dataclasses import dataclass

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProcessResult:
    """Exit status and captured output of one command."""

    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    @property
    def output(self) -> str:
        """stdout and stderr joined, for error context."""
        return "\n".join(part for part in (self.stdout.strip(), self.stderr.strip()) if part)


class ProcessRunner(ABC):
    """Runs commands and reports their result. Never raises on non-zero exit."""

    @abstractmethod
    def run(self, argv: list[str], input: str | None = None) -> ProcessResult:
        """Run *argv* to completion."""

    def run_shell(self, command: str) -> ProcessResult:
        """Run a shell string through ``sh -c``."""
        return self.run(["sh", "-c", command])

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}>"


class SubprocessRunner(ProcessRunner):
    """Real runner: inherits the environment, captures output, no timeout."""

    def run(self, argv: list[str], input: str | None = None) -> ProcessResult:
        logger.debug("Executing: %s", " ".join(argv))
        try:
            result = subprocess.run(
                argv,
                input=input,
                capture_output=True,
                text=True,
            )
        except FileNotFoundError as e:
            # Missing executable reported the way a shell would
            return ProcessResult(returncode=127, stderr=f"{argv[0]}: command not found ({e})")

        if result.returncode != 0:
            logger.debug("Command exited %d: %s", result.returncode, " ".join(argv))
        return ProcessResult(
            returncode=result.returncode,
            stdout=result.stdout or "",
            stderr=result.stderr or "",
        )
