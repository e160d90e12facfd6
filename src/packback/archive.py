"""Build a compressed, optionally encrypted archive of a source directory."""

from __future__ import annotations

import logging
import os
import tempfile
from datetime import datetime, timedelta
from pathlib import Path
from typing import Iterable

import pyzipper

from packback.config import (
    DEFAULT_ARCHIVE_FORMAT,
    DEFAULT_COMPRESSION_LEVEL,
    DEFAULT_NAME_PATTERN,
    ZIP_ENCRYPTION_MESSAGE,
)
from packback.errors import ArchiveError
from packback.patterns import collect_backup_files
from packback.tools import run_tool
from packback.utils import safe_name, sanitize_name
from packback.vault import SecretValue

logger = logging.getLogger(__name__)

TIMESTAMP_SUFFIX = "-%Y%m%d-%H%M%S"
ARCHIVE_EXTENSIONS = {"7z": ".7z", "zip": ".zip"}


def _varies_every_second(pattern: str) -> bool:
    earlier = datetime(2001, 2, 3, 4, 5, 6)
    return earlier.strftime(pattern) != (earlier + timedelta(seconds=1)).strftime(pattern)


def generate_archive_filename(
    name: str,
    name_pattern: str = DEFAULT_NAME_PATTERN,
    archive_format: str = DEFAULT_ARCHIVE_FORMAT,
    now: datetime | None = None,
) -> str:
    """Render an archive file name such as ``Documents-20260101-093000.7z``.

    ``{name}`` in the pattern is replaced with the source label and strftime
    directives with the current time. A pattern that does not change from one
    second to the next gets a timestamp suffix so that every run produces a
    new name.
    """
    now = now or datetime.now()
    name_pattern = name_pattern.replace("{name}", name.replace("%", "%%"))
    if not _varies_every_second(name_pattern):
        name_pattern += TIMESTAMP_SUFFIX
    stem = now.strftime(name_pattern)
    stem = sanitize_name(stem) or name
    return stem + ARCHIVE_EXTENSIONS[archive_format]


def unique_archive_path(output_directory: Path, filename: str) -> Path:
    """Return a path in output_directory that does not exist yet."""
    candidate = output_directory / filename
    suffix = "".join(Path(filename).suffixes[-1:])
    stem = filename[: -len(suffix)] if suffix else filename
    counter = 1
    while candidate.exists():
        candidate = output_directory / f"{stem}-{counter}{suffix}"
        counter += 1
    return candidate


def create_sevenzip_archive(
    output_path: Path,
    source_directory: Path,
    files: list[Path],
    compression_level: int = DEFAULT_COMPRESSION_LEVEL,
    password: SecretValue | None = None,
    executable: str = "7z",
) -> None:
    """Run 7-Zip over an include list. With a password, file names are encrypted too."""
    list_descriptor, list_name = tempfile.mkstemp(prefix="packback-", suffix=".lst")
    try:
        with os.fdopen(list_descriptor, "w", encoding="utf-8") as list_file:
            for file_path in files:
                list_file.write(file_path.relative_to(source_directory).as_posix() + "\n")

        command = [
            executable,
            "a",
            "-t7z",
            f"-mx={compression_level}",
            "-y",
            "-bd",
            "-scsUTF-8",
        ]
        redact: list[str] = []
        if password is not None:
            plaintext = password.reveal()
            command.extend([f"-p{plaintext}", "-mhe=on"])
            redact.append(plaintext)
        command.extend([str(output_path), f"@{list_name}"])

        run_tool(command, tool="7z", cwd=source_directory, redact=redact)
    finally:
        os.unlink(list_name)


def create_zip_archive(
    output_path: Path,
    source_directory: Path,
    files: list[Path],
    compression_level: int = DEFAULT_COMPRESSION_LEVEL,
) -> None:
    """Write an unencrypted zip file with pyzipper."""
    with pyzipper.AESZipFile(
        output_path,
        "w",
        compression=pyzipper.ZIP_DEFLATED,
        compresslevel=compression_level,
    ) as zip_file:
        for file_path in files:
            archive_name = file_path.relative_to(source_directory).as_posix()
            zip_file.write(file_path, arcname=archive_name)


def build_archive(
    source_directory: Path,
    output_directory: Path,
    name_pattern: str = DEFAULT_NAME_PATTERN,
    compression_level: int = DEFAULT_COMPRESSION_LEVEL,
    patterns: Iterable[str] = (),
    password: SecretValue | None = None,
    archive_format: str = DEFAULT_ARCHIVE_FORMAT,
    name: str | None = None,
    executable: str = "7z",
) -> Path:
    """Archive every non-excluded file under source_directory.

    Args:
        source_directory: Directory to back up.
        output_directory: Directory the archive is written to.
        name_pattern: File name pattern, see generate_archive_filename.
        compression_level: 0 (store) to 9 (ultra).
        patterns: Exclude patterns.
        password: Archive password, or None for an unencrypted archive.
        archive_format: "7z" or "zip".
        name: Label used for {name}; defaults to the source's safe name.
        executable: 7-Zip executable for the 7z format.

    Returns:
        Path of the created archive.

    Raises:
        ArchiveError: If there is nothing to archive, the format is unknown, or
            a password is given for the zip format.
        ToolError: If 7-Zip fails.
    """
    if archive_format not in ARCHIVE_EXTENSIONS:
        raise ArchiveError(f"Unsupported archive format: {archive_format}")
    if archive_format == "zip" and password is not None:
        raise ArchiveError(ZIP_ENCRYPTION_MESSAGE)

    patterns = list(patterns)
    files = collect_backup_files(source_directory, patterns)
    if not files:
        raise ArchiveError(
            f"Nothing to back up in {source_directory}: "
            "the folder is empty or every file matches an exclude pattern."
        )

    output_directory.mkdir(parents=True, exist_ok=True)
    filename = generate_archive_filename(
        name or safe_name(source_directory), name_pattern, archive_format
    )
    output_path = unique_archive_path(output_directory, filename)

    logger.info(
        "Archiving %d files from %s to %s (%s, level %d, %s)",
        len(files),
        source_directory,
        output_path,
        archive_format,
        compression_level,
        "encrypted" if password is not None else "unencrypted",
    )

    try:
        if archive_format == "zip":
            create_zip_archive(output_path, source_directory, files, compression_level)
        else:
            create_sevenzip_archive(
                output_path, source_directory, files, compression_level, password, executable
            )
    except BaseException:
        if output_path.exists():
            output_path.unlink()
        raise

    return output_path
