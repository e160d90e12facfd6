"""Copy finished archives to rclone remotes."""

from __future__ import annotations

import logging
from pathlib import Path

from packback.destination import remote_path
from packback.tools import run_tool

logger = logging.getLogger(__name__)


def publish(
    archive_path: Path,
    root: str,
    container: str | None = None,
    keep_local: bool = False,
    executable: str = "rclone",
) -> str:
    """Copy an archive to ``root/container/filename`` with ``rclone copyto``.

    The local file is removed only after rclone reports success, and only
    when keep_local is False.

    Returns:
        The remote path of the uploaded archive.

    Raises:
        ToolError: If rclone is missing or the copy fails.
    """
    target = remote_path(root, container or "", archive_path.name)
    logger.info("Uploading %s to %s", archive_path, target)

    run_tool([executable, "copyto", str(archive_path), target], tool="rclone")

    if not keep_local:
        archive_path.unlink(missing_ok=True)
        logger.info("Removed local copy %s", archive_path)

    return target
