"""
Raw recording file handling: lock wait, archive, move.
"""

import errno
import logging
import os
import shutil
import time
from pathlib import Path
from typing import Callable, Optional

logger = logging.getLogger(__name__)

ARCHIVE_DIR_NAME = "_archive"

FILE_LOCK_TIMEOUT_SECONDS = 30.0
FILE_LOCK_POLL_SECONDS = 0.5


def wait_for_file_lock(
    path: Path,
    timeout: float = FILE_LOCK_TIMEOUT_SECONDS,
    poll_interval: float = FILE_LOCK_POLL_SECONDS,
    sleep: Callable[[float], None] = time.sleep,
) -> bool:
    """
    Wait until the device has released ``path``.

    Opens the file read/write and closes it again; a lock held by the
    writer makes the open fail. Never raises: on timeout a warning is
    logged and the caller carries on.

    Returns:
        True if the file could be opened before the timeout
    """
    deadline = time.monotonic() + timeout
    while True:
        try:
            with open(path, "r+b"):
                return True
        except OSError:
            if time.monotonic() >= deadline:
                break
            sleep(poll_interval)
    logger.warning(f"[Recording] File may still be locked after {timeout:g}s: {path}")
    return False


def next_archive_version(archive_dir: Path) -> int:
    """1 + the highest existing vN under ``archive_dir``."""
    if not archive_dir.is_dir():
        return 1
    versions = []
    for entry in archive_dir.iterdir():
        if entry.name.startswith("v") and entry.name[1:].isdigit():
            versions.append(int(entry.name[1:]))
    return max(versions) + 1 if versions else 1


def archive_existing_files(routine_dir: Path) -> Optional[Path]:
    """
    Move everything in ``routine_dir`` (except the archive itself) into
    ``_archive/vN``.

    Returns:
        The version directory, or None when there was nothing to archive
    """
    routine_dir = Path(routine_dir)
    if not routine_dir.is_dir():
        return None
    entries = [e for e in routine_dir.iterdir() if e.name != ARCHIVE_DIR_NAME]
    if not entries:
        return None

    archive_dir = routine_dir / ARCHIVE_DIR_NAME
    version_dir = archive_dir / f"v{next_archive_version(archive_dir)}"
    version_dir.mkdir(parents=True, exist_ok=True)
    for entry in entries:
        os.replace(entry, version_dir / entry.name)

    logger.info(f"[Recording] Archived existing files to {version_dir}")
    return version_dir


def move_file(source: Path, destination: Path) -> Path:
    """
    Move ``source`` to ``destination``.

    Rename first; on a cross-device error (EXDEV) fall back to copy then
    delete.

    Raises:
        OSError: If the move fails
    """
    source, destination = Path(source), Path(destination)
    try:
        os.rename(source, destination)
    except OSError as e:
        if e.errno != errno.EXDEV:
            raise
        logger.info(f"[Recording] Cross-drive detected, copying: {source} -> {destination}")
        shutil.copy2(source, destination)
        source.unlink()

    size_mb = destination.stat().st_size / (1024 * 1024)
    logger.info(f"[Recording] Moved: {source} -> {destination} ({size_mb:.1f} MB)")
    return destination
