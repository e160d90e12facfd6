"""Prompting capability used by settings confirmation and password handling."""

from __future__ import annotations

from typing import Protocol, Sequence

import typer
from rich.console import Console

from packback.errors import PromptUnavailableError

console = Console(stderr=True)


class Prompter(Protocol):
    """Something that can ask the user questions."""

    interactive: bool

    def ask_text(self, label: str, default: str | None = None, secret: bool = False) -> str: ...

    def ask_yes_no(self, label: str, default: bool = False) -> bool: ...

    def ask_choice(self, label: str, choices: Sequence[str], default: str | None = None) -> str: ...


class ConsolePrompter:
    """Prompter backed by the terminal. Prompts go to stderr so stdout stays clean."""

    interactive = True

    def ask_text(self, label: str, default: str | None = None, secret: bool = False) -> str:
        if secret:
            return typer.prompt(label, hide_input=True, confirmation_prompt=True, err=True)
        if default is None:
            return typer.prompt(label, err=True).strip()
        return typer.prompt(label, default=default, err=True).strip()

    def ask_yes_no(self, label: str, default: bool = False) -> bool:
        return typer.confirm(label, default=default, err=True)

    def ask_choice(self, label: str, choices: Sequence[str], default: str | None = None) -> str:
        while True:
            answer = typer.prompt(
                f"{label} ({', '.join(choices)})",
                default=default,
                err=True,
            ).strip()
            if answer in choices:
                return answer
            console.print(f"[red]Invalid choice: {answer}[/red]")


class NonInteractivePrompter:
    """Prompter for unattended runs. Every question is an error."""

    interactive = False

    def ask_text(self, label: str, default: str | None = None, secret: bool = False) -> str:
        raise PromptUnavailableError(label)

    def ask_yes_no(self, label: str, default: bool = False) -> bool:
        raise PromptUnavailableError(label)

    def ask_choice(self, label: str, choices: Sequence[str], default: str | None = None) -> str:
        raise PromptUnavailableError(label)
