"""Run one backup from settings to finished archive."""

from __future__ import annotations

import logging
import shutil
import tempfile
from contextlib import ExitStack
from dataclasses import replace
from pathlib import Path

from packback.archive import build_archive
from packback.config import (
    BackupConfig,
    InvocationParameters,
    ResolvedSettings,
    confirm_settings,
    load_config,
    packback_home,
    resolve_settings,
)
from packback.destination import Destination, parse_destination
from packback.errors import ValidationError
from packback.prompts import NonInteractivePrompter, Prompter
from packback.remote import publish
from packback.utils import safe_name
from packback.vault import obtain_password

logger = logging.getLogger(__name__)


def load_settings(
    parameters: InvocationParameters,
    prompter: Prompter,
    config_file: Path | None = None,
    strict: bool = False,
) -> ResolvedSettings:
    """Load config.json and resolve the settings for this run."""
    config = BackupConfig.from_dict(load_config(config_file))
    settings = resolve_settings(parameters, config, strict=strict)
    if prompter.interactive and not strict:
        settings = confirm_settings(settings, parameters, prompter)
    return settings


def validate_settings(settings: ResolvedSettings) -> tuple[Path, Destination]:
    """Check that the source and destination can be used.

    Returns:
        The resolved source directory and the destination descriptor.

    Raises:
        ValidationError: On an empty value or a missing directory.
    """
    if not settings.source:
        raise ValidationError("No source directory given.")
    if not settings.destination:
        raise ValidationError("No backup location given.")

    source = Path(settings.source).expanduser()
    if not source.is_dir():
        raise ValidationError(f"Source directory not found: {source}")

    destination = parse_destination(settings.destination)
    if not destination.is_remote:
        root = Path(destination.root).expanduser()
        if not root.is_dir():
            raise ValidationError(f"Backup location not found: {root}")

    return source.resolve(), destination


def run_backup(
    parameters: InvocationParameters,
    prompter: Prompter | None = None,
    config_file: Path | None = None,
    strict: bool = False,
) -> str:
    """Resolve settings, build the archive and deliver it.

    Password wiping, password manager session cleanup and removal of the
    remote staging directory run on every exit path.

    Returns:
        The final archive location: a local path or a ``remote:path``.
    """
    prompter = prompter or NonInteractivePrompter()
    if strict:
        prompter = NonInteractivePrompter()

    with ExitStack() as cleanup:
        if parameters.password is not None:
            cleanup.callback(parameters.password.clear)

        settings = load_settings(parameters, prompter, config_file, strict=strict)
        source, destination = validate_settings(settings)
        container = settings.container or safe_name(source)

        password = None
        if settings.encrypt:
            acquisition = obtain_password(settings, prompter, parameters.password)
            cleanup.callback(acquisition.release)
            password = acquisition.secret
            if password is None:
                settings = replace(settings, encrypt=False)

        if destination.is_remote:
            if settings.keep_local:
                output_directory = packback_home() / "archives" / container
            else:
                output_directory = Path(tempfile.mkdtemp(prefix="packback-"))
                cleanup.callback(shutil.rmtree, output_directory, ignore_errors=True)
        else:
            output_directory = Path(destination.root).expanduser() / container

        archive_path = build_archive(
            source,
            output_directory,
            name_pattern=settings.name_pattern,
            compression_level=settings.compression_level,
            patterns=settings.exclude,
            password=password,
            archive_format=settings.archive_format,
            name=safe_name(source),
            executable=settings.tool("sevenzip", "7z"),
        )

        if not destination.is_remote:
            logger.info("Backup written to %s", archive_path)
            return str(archive_path)

        target = publish(
            archive_path,
            destination.root,
            container=container,
            keep_local=settings.keep_local,
            executable=settings.tool("rclone", "rclone"),
        )
        logger.info("Backup uploaded to %s", target)
        return target
