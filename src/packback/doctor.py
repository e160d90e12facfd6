"""Environment checking for packback."""

from __future__ import annotations

import shutil
import subprocess
import sys
from dataclasses import dataclass
from pathlib import Path

from rich.console import Console

from packback.config import BackupConfig, config_path, load_config
from packback.errors import ConfigError

console = Console(stderr=True)


@dataclass
class EnvironmentCheckResult:
    """Result of an environment check."""

    name: str
    available: bool
    version: str
    message: str
    required: bool = True


def _tool_version(command: list[str]) -> str:
    try:
        result = subprocess.run(command, capture_output=True, text=True, timeout=10)
    except (subprocess.TimeoutExpired, OSError):
        return "unknown"
    output = result.stdout.strip() or result.stderr.strip()
    return output.splitlines()[0] if output else "unknown"


def check_python() -> EnvironmentCheckResult:
    """Check Python version."""
    version = f"{sys.version_info.major}.{sys.version_info.minor}.{sys.version_info.micro}"
    return EnvironmentCheckResult(name="Python", available=True, version=version, message="")


def check_sevenzip(executable: str = "7z") -> EnvironmentCheckResult:
    """Check if 7-Zip is installed."""
    if not shutil.which(executable):
        return EnvironmentCheckResult(
            name="7-Zip",
            available=False,
            version="",
            message="7-Zip is not installed. Required for the 7z archive format.\n\n"
            "  Install:\n"
            "    apt install p7zip-full   (Debian/Ubuntu)\n"
            "    brew install p7zip       (macOS)\n\n"
            "  Or, for unencrypted backups, set \"archive_format\": \"zip\" and\n"
            "  \"encrypt\": false in config.json.",
        )
    # 7z has no --version; its banner is the first line of any invocation
    version = _tool_version([executable, "i"])
    return EnvironmentCheckResult(name="7-Zip", available=True, version=version, message="")


def check_rclone(executable: str = "rclone") -> EnvironmentCheckResult:
    """Check if rclone is installed. Only needed for remote destinations."""
    if not shutil.which(executable):
        return EnvironmentCheckResult(
            name="rclone",
            available=False,
            version="",
            message="rclone is not installed. Required for remote backup locations.\n\n"
            "  Install: https://rclone.org/install/",
            required=False,
        )
    version = _tool_version([executable, "version"])
    return EnvironmentCheckResult(
        name="rclone", available=True, version=version, message="", required=False
    )


def check_bitwarden(executable: str = "bw") -> EnvironmentCheckResult:
    """Check if the Bitwarden CLI is installed. Only needed with password_manager=bitwarden."""
    if not shutil.which(executable):
        return EnvironmentCheckResult(
            name="Bitwarden CLI",
            available=False,
            version="",
            message="Bitwarden CLI is not installed. Required for password_manager=bitwarden.\n\n"
            "  Install: npm install -g @bitwarden/cli",
            required=False,
        )
    version = _tool_version([executable, "--version"])
    return EnvironmentCheckResult(
        name="Bitwarden CLI", available=True, version=version, message="", required=False
    )


def run_environment_checks(config: BackupConfig | None = None) -> list[EnvironmentCheckResult]:
    """Run all environment checks and return results."""
    config = config or BackupConfig()
    tools = config.tools
    bitwarden = config.password_managers.get("bitwarden")
    bitwarden = bitwarden if isinstance(bitwarden, dict) else {}
    return [
        check_python(),
        check_sevenzip(tools.get("sevenzip") or "7z"),
        check_rclone(tools.get("rclone") or "rclone"),
        check_bitwarden(bitwarden.get("executable") or "bw"),
    ]


def display_environment_checks(checks: list[EnvironmentCheckResult]) -> bool:
    """Display environment check results. Returns True if all required checks passed."""
    console.print("\nChecking environment...")
    all_passed = True
    for check in checks:
        if check.available:
            console.print(f"  [green]OK[/green] {check.name} {check.version}")
            continue
        if check.required:
            console.print(f"  [red]FAIL[/red] {check.name}")
            all_passed = False
        else:
            console.print(f"  [yellow]MISSING[/yellow] {check.name} (optional)")
        if check.message:
            console.print(f"\n  {check.message}\n")
    return all_passed


def run_doctor(config_file: Path | None = None) -> bool:
    """Run environment and configuration diagnostics. Returns True if healthy."""
    console.print("[bold]packback doctor[/bold]")

    path = config_file or config_path()
    try:
        data = load_config(path)
        config = BackupConfig.from_dict(data)
    except ConfigError as error:
        console.print(f"\n[red]FAIL[/red] {error}")
        display_environment_checks(run_environment_checks())
        return False

    healthy = display_environment_checks(run_environment_checks(config))

    console.print()
    if data is None:
        console.print(f"[yellow]No config file at {path}. Run 'packback init' to create one.[/yellow]")
        return healthy

    console.print(f"[green]OK[/green] {path}")
    console.print(f"  Source:      {config.source or 'N/A'}")
    console.print(f"  Destination: {config.destination or 'N/A'}")
    console.print(f"  Encrypt:     {config.encrypt if config.encrypt is not None else 'N/A'}")
    console.print(f"  Password manager: {config.password_manager or 'none'}")

    if config.source and not Path(config.source).expanduser().is_dir():
        console.print(f"  [red]FAIL[/red] source directory not found: {config.source}")
        healthy = False
    return healthy
