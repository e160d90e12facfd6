"""Tests for packback.prompts module."""

from unittest.mock import patch

import pytest

from packback.errors import PromptUnavailableError
from packback.prompts import ConsolePrompter, NonInteractivePrompter


class TestNonInteractivePrompter:
    def test_not_interactive(self):
        assert NonInteractivePrompter().interactive is False

    @pytest.mark.parametrize(
        "call",
        [
            lambda p: p.ask_text("Source directory", default="/data"),
            lambda p: p.ask_yes_no("Encrypt?", default=True),
            lambda p: p.ask_choice("Manager", ["none", "bitwarden"], default="none"),
        ],
    )
    def test_every_prompt_fails(self, call):
        with pytest.raises(PromptUnavailableError):
            call(NonInteractivePrompter())


class TestConsolePrompter:
    def test_ask_text_default(self):
        with patch("packback.prompts.typer.prompt", return_value=" /data ") as mock_prompt:
            assert ConsolePrompter().ask_text("Source", default="/data") == "/data"
        assert mock_prompt.call_args[1]["default"] == "/data"
        assert mock_prompt.call_args[1]["err"] is True

    def test_ask_text_secret_hides_input(self):
        with patch("packback.prompts.typer.prompt", return_value="P1") as mock_prompt:
            assert ConsolePrompter().ask_text("Password", secret=True) == "P1"
        assert mock_prompt.call_args[1]["hide_input"] is True
        assert mock_prompt.call_args[1]["confirmation_prompt"] is True

    def test_ask_yes_no(self):
        with patch("packback.prompts.typer.confirm", return_value=False):
            assert ConsolePrompter().ask_yes_no("Encrypt?", default=True) is False

    def test_ask_choice_repeats_until_valid(self):
        with patch("packback.prompts.typer.prompt", side_effect=["keepass", "bitwarden"]):
            answer = ConsolePrompter().ask_choice("Manager", ["none", "bitwarden"])
        assert answer == "bitwarden"
