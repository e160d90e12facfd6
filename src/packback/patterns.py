"""Wildcard exclude-pattern matching for backup file lists."""

from __future__ import annotations

import fnmatch
from pathlib import Path
from typing import Iterable


def _normalize(relative_path: str) -> str:
    return relative_path.replace("\\", "/").strip("/")


def is_excluded(relative_path: str | Path, patterns: Iterable[str]) -> bool:
    """Check whether a relative path matches any exclude pattern.

    The full path, the leaf name and every intermediate directory name are
    each tested against every pattern with shell-style wildcards. Matching is
    case-sensitive unless the host filesystem is not (fnmatch follows
    os.path.normcase).
    """
    normalized = _normalize(str(relative_path))
    if not normalized:
        return False

    segments = [segment for segment in normalized.split("/") if segment]
    candidates = [normalized, *segments]

    for pattern in patterns:
        pattern = pattern.strip().replace("\\", "/").rstrip("/")
        if not pattern:
            continue
        if any(fnmatch.fnmatch(candidate, pattern) for candidate in candidates):
            return True
    return False


def collect_backup_files(source_directory: Path, patterns: Iterable[str] = ()) -> list[Path]:
    """Collect every file under source_directory that no pattern excludes.

    Returns:
        Sorted list of absolute file paths.
    """
    patterns = list(patterns)
    files: list[Path] = []
    for path in source_directory.rglob("*"):
        if not path.is_file():
            continue
        if is_excluded(path.relative_to(source_directory).as_posix(), patterns):
            continue
        files.append(path)
    return sorted(files)
