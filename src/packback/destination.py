"""Classify backup locations as local folders or rclone remotes."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class DestinationKind(str, Enum):
    LOCAL = "local"
    REMOTE = "remote"


@dataclass(frozen=True)
class Destination:
    """Where the finished archive goes."""

    kind: DestinationKind
    root: str

    @property
    def is_remote(self) -> bool:
        return self.kind is DestinationKind.REMOTE


def is_remote_address(value: str) -> bool:
    """Check whether a location uses the ``remote:path`` form.

    A colon preceded by a single drive letter (``C:``, ``D:\\Backups``) is a
    local path. So is anything with a path separator before the first colon.
    """
    prefix, separator, _ = value.partition(":")
    if not separator:
        return False
    if len(prefix) <= 1:
        return False
    return "/" not in prefix and "\\" not in prefix


def parse_destination(value: str) -> Destination:
    """Build the destination descriptor for a resolved backup location."""
    value = value.strip()
    kind = DestinationKind.REMOTE if is_remote_address(value) else DestinationKind.LOCAL
    return Destination(kind=kind, root=value)


def remote_path(root: str, *parts: str) -> str:
    """Join remote path components, keeping ``remote:`` roots intact."""
    path = root
    for part in parts:
        part = part.strip("/")
        if not part:
            continue
        if path.endswith(":") or path.endswith("/"):
            path = f"{path}{part}"
        else:
            path = f"{path}/{part}"
    return path
