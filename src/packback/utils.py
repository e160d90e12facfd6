"""Utility functions for packback."""

from __future__ import annotations

import logging
import re
import sys
from datetime import datetime
from pathlib import Path, PurePath

from packback.config import packback_home

INVALID_FILENAME_CHARACTERS = re.compile(r'[<>:"/\\|?*\x00-\x1f]')
WHITESPACE = re.compile(r"\s+")
FALLBACK_NAME = "backup"


def sanitize_name(text: str) -> str:
    """Make text usable as a file or folder name.

    Invalid characters and whitespace runs become underscores, and leading or
    trailing underscores are trimmed. Returns an empty string if nothing is left.
    """
    text = INVALID_FILENAME_CHARACTERS.sub("_", text)
    text = WHITESPACE.sub("_", text)
    return text.strip("_")


def read_volume_label(root: PurePath) -> str | None:
    """Return the human label of a drive root, or None where unsupported."""
    if sys.platform != "win32":
        return None

    import ctypes

    label_buffer = ctypes.create_unicode_buffer(261)
    succeeded = ctypes.windll.kernel32.GetVolumeInformationW(
        ctypes.c_wchar_p(str(root)),
        label_buffer,
        ctypes.sizeof(label_buffer),
        None,
        None,
        None,
        None,
        0,
    )
    if not succeeded:
        return None
    return label_buffer.value or None


def name_for_path(path: PurePath, volume_label: str | None = None) -> str:
    """Derive a safe label from an already resolved path.

    A path with a leaf uses its sanitized leaf name. A volume root uses its
    sanitized label, or the drive letter with a ``_root`` suffix.
    """
    if path.name:
        return sanitize_name(path.name) or FALLBACK_NAME

    if volume_label:
        label = sanitize_name(volume_label)
        if label:
            return label

    drive_token = sanitize_name(path.drive.rstrip(":\\/"))
    return f"{drive_token}_root" if drive_token else "root"


def safe_name(path: str | Path) -> str:
    """Return a short, filesystem-safe, deterministic label for a directory."""
    resolved = Path(path).expanduser().resolve()
    label = None if resolved.name else read_volume_label(resolved)
    return name_for_path(resolved, label)


def setup_logging(log_level: str = "INFO") -> None:
    """Configure logging with daily rotation to ~/.packback/logs/."""
    log_directory = packback_home() / "logs"
    log_directory.mkdir(parents=True, exist_ok=True)

    today = datetime.now().strftime("%y%m%d")
    log_file = log_directory / f"packback-{today}.log"

    logging.basicConfig(
        level=getattr(logging, log_level.upper(), logging.INFO),
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
        handlers=[
            logging.FileHandler(log_file),
            logging.StreamHandler(),
        ],
    )
