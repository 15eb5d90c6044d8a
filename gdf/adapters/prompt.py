"""
Prompter — yes/no questions and numbered choices put to the user.

``ClickPrompter`` talks to the terminal. ``StaticPrompter`` answers
from fixed values, for non-interactive runs (``--yes``) and tests.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

import click


class Prompter(ABC):
    @abstractmethod
    def confirm(self, message: str, default: bool = False) -> bool:
        """Ask a yes/no question."""

    @abstractmethod
    def choose(self, message: str, options: list[str]) -> int | None:
        """Ask the user to pick one of *options*.

        Returns:
            Zero-based index of the pick, or None to keep the default.
        """


class ClickPrompter(Prompter):
    """Interactive prompts on the controlling terminal."""

    def confirm(self, message: str, default: bool = False) -> bool:
        return click.confirm(message, default=default)

    def choose(self, message: str, options: list[str]) -> int | None:
        if not options:
            return None
        click.echo(message)
        for i, option in enumerate(options, start=1):
            click.echo(f"  {i}) {option}")
        picked = click.prompt("Select number", type=click.IntRange(1, len(options)))
        return picked - 1


class StaticPrompter(Prompter):
    """Answers every prompt with preset values and remembers what was asked."""

    def __init__(self, confirm_answer: bool = True, choice: int | None = None):
        self.confirm_answer = confirm_answer
        self.choice = choice
        self.asked: list[str] = []

    def confirm(self, message: str, default: bool = False) -> bool:
        self.asked.append(message)
        return self.confirm_answer

    def choose(self, message: str, options: list[str]) -> int | None:
        self.asked.append(message)
        if self.choice is None or not 0 <= self.choice < len(options):
            return None
        return self.choice
