"""packback CLI - Typer application entry point."""

from pathlib import Path

import typer
from rich.console import Console
from rich.markup import escape

from packback.errors import PackbackError

app = typer.Typer(help="packback - compressed, encrypted backups to disk or rclone remotes")
secret_app = typer.Typer(help="Password manager access")
app.add_typer(secret_app, name="secret")

# stdout carries only machine-readable results
console = Console(stderr=True)

CONFIG_OPTION_HELP = "Config file (default: ~/.packback/config.json)"


def _setup_logging(config_file: Path | None, log_level: str | None) -> None:
    from packback.config import DEFAULT_LOG_LEVEL, BackupConfig, load_config
    from packback.utils import setup_logging

    if log_level is None:
        # A broken config file is reported by the command itself
        try:
            log_level = BackupConfig.from_dict(load_config(config_file)).log_level
        except PackbackError:
            log_level = None
    setup_logging(log_level or DEFAULT_LOG_LEVEL)


def _fail(error: Exception) -> None:
    console.print(f"[red]Error:[/red] {escape(str(error))}")
    raise typer.Exit(1)


@app.command()
def backup(
    source: str = typer.Option(None, "--source", "-s", help="Directory to back up"),
    destination: str = typer.Option(
        None, "--destination", "-d", help="Backup location: a folder or remote:path"
    ),
    exclude: list[str] = typer.Option(
        None, "--exclude", "-x", help="Wildcard pattern to exclude (repeatable)"
    ),
    no_exclude: bool = typer.Option(False, "--no-exclude", help="Explicitly exclude nothing"),
    encrypt: bool = typer.Option(None, "--encrypt/--no-encrypt", help="Encrypt the archive"),
    password: str = typer.Option(None, "--password", "-p", help="Archive password"),
    password_manager: str = typer.Option(
        None, "--password-manager", help="Password manager (none/bitwarden)"
    ),
    item: str = typer.Option(None, "--item", help="Password manager item name or id"),
    session: str = typer.Option(None, "--session", help="Existing password manager session token"),
    name_pattern: str = typer.Option(None, "--name-pattern", help="Archive name pattern"),
    compression_level: int = typer.Option(
        None, "--compression-level", "-l", help="Compression level 0-9"
    ),
    archive_format: str = typer.Option(None, "--format", help="Archive format (7z/zip)"),
    container: str = typer.Option(None, "--container", help="Folder name under the destination"),
    keep_local: bool = typer.Option(
        None, "--keep-local/--no-keep-local", help="Keep a local copy after uploading"
    ),
    non_interactive: bool = typer.Option(False, "--non-interactive", help="Never prompt"),
    strict: bool = typer.Option(
        False, "--strict", help="Require source, destination, exclude and encrypt explicitly"
    ),
    config_file: Path = typer.Option(None, "--config", "-c", help=CONFIG_OPTION_HELP),
    log_level: str = typer.Option(None, "--log-level", help="Logging level"),
) -> None:
    """Back up a directory. Prints the resulting archive path."""
    from packback.config import InvocationParameters
    from packback.orchestrator import run_backup
    from packback.prompts import ConsolePrompter, NonInteractivePrompter
    from packback.vault import SecretValue

    if strict and not non_interactive:
        console.print("[dim]Strict mode: running non-interactively.[/dim]")

    _setup_logging(config_file, log_level)

    patterns = [] if no_exclude else (list(exclude) if exclude else None)
    parameters = InvocationParameters(
        source=source,
        destination=destination,
        exclude=patterns,
        encrypt=encrypt,
        password=SecretValue(password) if password is not None else None,
        name_pattern=name_pattern,
        compression_level=compression_level,
        archive_format=archive_format,
        container=container,
        keep_local=keep_local,
        password_manager=password_manager,
        item=item,
        session_token=session,
    )
    del password

    interactive = not (non_interactive or strict)
    prompter = ConsolePrompter() if interactive else NonInteractivePrompter()

    try:
        result = run_backup(parameters, prompter, config_file=config_file, strict=strict)
    except PackbackError as error:
        _fail(error)

    console.print("[green]Backup complete.[/green]")
    typer.echo(result)


@app.command()
def init(
    config_file: Path = typer.Option(None, "--config", "-c", help=CONFIG_OPTION_HELP),
    force: bool = typer.Option(False, "--force", "-f", help="Overwrite an existing file"),
) -> None:
    """Write a config file template."""
    from packback.config import init_config

    try:
        path = init_config(config_file, force=force)
    except PackbackError as error:
        _fail(error)

    console.print("[green]Config written.[/green] Edit it, then run [cyan]packback backup[/cyan].")
    typer.echo(str(path))


@app.command()
def doctor(
    config_file: Path = typer.Option(None, "--config", "-c", help=CONFIG_OPTION_HELP),
) -> None:
    """Check environment and configuration."""
    from packback.doctor import run_doctor

    if not run_doctor(config_file):
        raise typer.Exit(1)


@secret_app.command("get")
def secret_get(
    item: str = typer.Argument(help="Item name or id"),
    provider: str = typer.Option("bitwarden", "--provider", help="Password manager"),
    session: str = typer.Option(None, "--session", help="Existing session token"),
    non_interactive: bool = typer.Option(False, "--non-interactive", help="Never prompt"),
    config_file: Path = typer.Option(None, "--config", "-c", help=CONFIG_OPTION_HELP),
) -> None:
    """Print a password from the password manager."""
    from packback.config import BackupConfig, load_config
    from packback.vault import create_provider

    _setup_logging(config_file, None)

    try:
        config = BackupConfig.from_dict(load_config(config_file))
        settings = config.password_managers.get(provider)
        settings = settings if isinstance(settings, dict) else {}
        password_provider = create_provider(provider, settings, session_token=session)
        result = password_provider.get_secret(item, non_interactive=non_interactive)
    except PackbackError as error:
        _fail(error)

    if not result.success:
        console.print(f"[red]Error:[/red] {escape(result.message)}")
        raise typer.Exit(1)

    try:
        with result.secret as secret:
            typer.echo(secret.reveal())
    finally:
        password_provider.release(result.adjustment)


def main() -> None:
    app()
