"""Exception types raised by packback."""

from __future__ import annotations


class PackbackError(Exception):
    """Base class for every fatal packback error."""


class ConfigError(PackbackError):
    """Malformed configuration or missing mandatory parameters."""


class ValidationError(PackbackError):
    """Resolved settings point at something unusable (missing source, empty value)."""


class ToolError(PackbackError):
    """An external executable was missing or exited with a non-zero code."""

    def __init__(self, tool: str, message: str, returncode: int | None = None, output: str = ""):
        self.tool = tool
        self.returncode = returncode
        self.output = output
        text = f"{tool}: {message}"
        if output:
            text = f"{text}\n{output}"
        super().__init__(text)


class ArchiveError(PackbackError):
    """The archive could not be built."""


class SecretError(PackbackError):
    """No usable password could be obtained."""


class PromptUnavailableError(PackbackError):
    """A prompt was requested while running non-interactively."""

    def __init__(self, label: str):
        self.label = label
        super().__init__(f"Input required but running non-interactively: {label}")


class BackupCancelled(PackbackError):
    """The user declined to continue at an interactive prompt."""
