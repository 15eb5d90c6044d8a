"""
Recording runner — test double for ``ProcessRunner``.

Records every command and answers with configured results. Commands
without a configured result succeed with empty output.
"""

from __future__ import annotations

from gdf.adapters.process import ProcessResult, ProcessRunner


class RecordingRunner(ProcessRunner):
    """Runner that never starts a process.

    Results are matched by the command's joined text: an exact match
    wins, otherwise the first configured prefix that matches.
    """

    def __init__(self, default: ProcessResult | None = None):
        self._default = default or ProcessResult(returncode=0)
        self._responses: dict[str, ProcessResult] = {}
        self._call_log: list[list[str]] = []

    @property
    def call_log(self) -> list[list[str]]:
        return self._call_log

    @property
    def call_count(self) -> int:
        return len(self._call_log)

    @property
    def commands(self) -> list[str]:
        """Calls as joined strings, in order."""
        return [" ".join(argv) for argv in self._call_log]

    def set_response(self, command: str, result: ProcessResult) -> None:
        self._responses[command] = result

    def set_failure(self, command: str, returncode: int = 1, stderr: str = "mock failure") -> None:
        self._responses[command] = ProcessResult(returncode=returncode, stderr=stderr)

    def run(self, argv: list[str], input: str | None = None) -> ProcessResult:
        self._call_log.append(list(argv))
        joined = " ".join(argv)
        if joined in self._responses:
            return self._responses[joined]
        for command, result in self._responses.items():
            if joined.startswith(command):
                return result
        return self._default
