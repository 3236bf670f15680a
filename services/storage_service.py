"""
services/storage_service.py – Disk space validation and cache folder handling.

Responsibilities
----------------
1. Check that the games drive has enough free space before a download.
2. Move a raw (uncompressed) download into its per-title cache folder.
3. Drop stale cache folders and clean the staging directory at session end.
"""

import logging
import shutil
from pathlib import Path

from services.download_service import PARTIAL_SUFFIX
from services.exceptions import InsufficientDiskSpaceError, StorageError

logger = logging.getLogger(__name__)

# Safety buffer: require at least this many extra bytes beyond the estimated
# size to account for filesystem overhead.
DISK_SAFETY_BUFFER_BYTES: int = 512 * 1024 * 1024  # 512 MiB


def check_disk_space(path: Path, required_bytes: int) -> None:
    """
    Verify *path* (or its nearest existing ancestor) has enough free space.

    Raises
    ------
    InsufficientDiskSpaceError if free space < required_bytes + safety buffer.
    StorageError on any filesystem error.
    """
    probe = path
    while not probe.exists() and probe != probe.parent:
        probe = probe.parent

    try:
        usage = shutil.disk_usage(probe)
    except OSError as exc:
        raise StorageError(f"Cannot check disk space on '{probe}': {exc}") from exc

    needed = required_bytes + DISK_SAFETY_BUFFER_BYTES
    if usage.free < needed:
        raise InsufficientDiskSpaceError(
            required_bytes=needed, available_bytes=usage.free
        )


def install_file(source: Path, dest_dir: Path) -> Path:
    """
    Move the single file *source* into *dest_dir*, replacing any namesake.

    Returns
    -------
    Path of the installed file.

    Raises
    ------
    StorageError on any filesystem error.
    """
    target = dest_dir / source.name
    try:
        dest_dir.mkdir(parents=True, exist_ok=True)
        if target.exists():
            target.unlink()
        shutil.move(str(source), str(target))
    except OSError as exc:
        raise StorageError(f"Failed to move '{source.name}' to '{dest_dir}': {exc}") from exc
    return target


def remove_folder(folder: Path) -> None:
    """
    Delete a cache folder that holds no playable file.

    Raises
    ------
    StorageError when the folder cannot be removed.
    """
    try:
        if folder.exists():
            shutil.rmtree(folder)
    except OSError as exc:
        raise StorageError(f"Could not remove stale folder '{folder}': {exc}") from exc


def remove_file(path: Path) -> None:
    """Delete a staged archive after extraction; failure is only logged."""
    try:
        if path.exists():
            path.unlink()
    except OSError as exc:
        logger.warning("Could not remove staged file '%s': %s", path, exc)


def cleanup_temp(temp_dir: Path) -> None:
    """
    Remove finished staging files from *temp_dir*.

    Partial downloads are kept for the next session.  Removal failures are
    logged, not raised.
    """
    if not temp_dir.exists():
        return
    for item in temp_dir.iterdir():
        if item.name.endswith(PARTIAL_SUFFIX):
            continue
        try:
            if item.is_dir():
                shutil.rmtree(item)
            else:
                item.unlink()
        except OSError as exc:
            logger.warning("Could not remove temp file '%s': %s", item, exc)
