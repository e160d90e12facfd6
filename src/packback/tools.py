"""Synchronous runner for the external executables packback drives."""

from __future__ import annotations

import logging
import shutil
import subprocess
from pathlib import Path
from typing import Iterable

from packback.errors import ToolError

logger = logging.getLogger(__name__)

INSTALL_HINTS = {
    "7z": "Install 7-Zip (p7zip-full on Debian/Ubuntu, 'brew install p7zip' on macOS).",
    "rclone": "Install rclone: https://rclone.org/install/",
    "bw": "Install the Bitwarden CLI: npm install -g @bitwarden/cli",
}


def _redacted(command: list[str], redact: Iterable[str]) -> str:
    """Render a command line for logging with secrets masked."""
    secrets = [value for value in redact if value]
    parts = []
    for argument in command:
        for secret in secrets:
            argument = argument.replace(secret, "***")
        parts.append(argument)
    return " ".join(parts)


def find_executable(executable: str, tool: str | None = None) -> str:
    """Return the full path of an executable or raise ToolError."""
    path = shutil.which(executable)
    if not path:
        name = tool or executable
        hint = INSTALL_HINTS.get(name, "")
        raise ToolError(name, f"executable '{executable}' not found. {hint}".strip())
    return path


def run_tool(
    command: list[str],
    *,
    tool: str,
    env: dict[str, str] | None = None,
    cwd: Path | str | None = None,
    capture: str = "all",
    redact: Iterable[str] = (),
) -> subprocess.CompletedProcess:
    """Run an external tool to completion.

    Args:
        command: Executable followed by its arguments.
        tool: Short tool name used in log lines and errors.
        env: Full environment for the child, or None to inherit.
        cwd: Working directory for the child.
        capture: "all" captures stdout and stderr, "stdout" leaves stdin and
            stderr on the terminal so the tool can prompt, "none" hands the
            terminal to the tool entirely.
        redact: Strings to mask when the command line is logged.

    Returns:
        The completed process with text output.

    Raises:
        ToolError: If the executable is missing or exits non-zero.
    """
    redact = list(redact)
    executable = find_executable(command[0], tool)
    full_command = [executable, *command[1:]]

    logger.info("Running %s: %s", tool, _redacted(full_command, redact))

    try:
        if capture == "all":
            result = subprocess.run(
                full_command, capture_output=True, text=True, env=env, cwd=cwd
            )
        elif capture == "stdout":
            result = subprocess.run(
                full_command, stdout=subprocess.PIPE, text=True, env=env, cwd=cwd
            )
        else:
            result = subprocess.run(full_command, text=True, env=env, cwd=cwd)
    except OSError as error:
        raise ToolError(tool, f"failed to start: {error}") from error

    if result.returncode != 0:
        output = "\n".join(
            part.strip() for part in (result.stderr, result.stdout) if part and part.strip()
        )
        for secret in redact:
            if secret:
                output = output.replace(secret, "***")
        logger.error("%s failed (rc=%d)", tool, result.returncode)
        raise ToolError(
            tool,
            f"exited with code {result.returncode}",
            returncode=result.returncode,
            output=output,
        )

    return result
