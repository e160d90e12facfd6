"""Shared fixtures for packback tests."""

from __future__ import annotations

from typing import Sequence

import pytest


class ScriptedPrompter:
    """Prompter that replays canned answers and records the questions asked.

    An answer of None means "press enter": the prompt's default is returned.
    """

    interactive = True

    def __init__(self, answers: Sequence[object] = ()):
        self.answers = list(answers)
        self.questions: list[str] = []

    def _next(self, label: str, default: object) -> object:
        self.questions.append(label)
        if not self.answers:
            raise AssertionError(f"Unexpected prompt: {label}")
        answer = self.answers.pop(0)
        return default if answer is None else answer

    def ask_text(self, label: str, default: str | None = None, secret: bool = False) -> str:
        answer = self._next(label, default)
        return "" if answer is None else str(answer)

    def ask_yes_no(self, label: str, default: bool = False) -> bool:
        return bool(self._next(label, default))

    def ask_choice(self, label: str, choices: Sequence[str], default: str | None = None) -> str:
        answer = self._next(label, default)
        assert answer in choices
        return str(answer)


@pytest.fixture
def scripted_prompter():
    """Factory for ScriptedPrompter instances."""
    return ScriptedPrompter


@pytest.fixture
def temp_packback_home(tmp_path, monkeypatch):
    """Set PACKBACK_HOME to a temporary directory."""
    home = tmp_path / ".packback"
    monkeypatch.setenv("PACKBACK_HOME", str(home))
    return home
