"""
services/extraction_service.py – Archive extraction and playable-file selection.

Security
--------
ZIP members are validated against the destination directory before anything
is written, preventing path-traversal attacks embedded in malicious archives
(ZIP slip).  7-Zip is always invoked with an argument list, never through a
shell.

Supported formats
-----------------
  .zip   – stdlib zipfile
  .7z    – 7-Zip command line (7z / 7za / 7zz)
  .rar   – 7-Zip command line
"""

import logging
import os
import shutil
import subprocess
import threading
import zipfile
from pathlib import Path
from typing import List, Optional

from models.system_profile import PSX, SystemProfile
from services.exceptions import ExtractionError

logger = logging.getLogger(__name__)

# ── Configuration ────────────────────────────────────────────────────────────

SEVEN_ZIP_EXTENSIONS = {".7z", ".rar"}

# Checked in order before falling back to a PATH lookup.
SEVEN_ZIP_CANDIDATES: List[str] = [
    r"C:\Program Files\7-Zip\7z.exe",
    r"C:\Program Files (x86)\7-Zip\7z.exe",
    "/usr/bin/7z",
    "/usr/local/bin/7z",
    "/opt/homebrew/bin/7z",
]
SEVEN_ZIP_COMMANDS: List[str] = ["7z", "7za", "7zz"]

PROCESS_POLL_SECONDS: float = 0.25
DIAGNOSTIC_SNIPPET_CHARS: int = 500

# Emulator runtimes sometimes ship inside game archives.
HELPER_SUFFIXES = (".exe", ".dll", ".so", ".dylib")
HELPER_PATH_PARTS = ("cores",)
HELPER_NAME_FRAGMENTS = ("retroarch",)

# ── Public API ───────────────────────────────────────────────────────────────


def extract_archive(
    archive_path: Path,
    dest_dir: Path,
    profile: SystemProfile = PSX,
    *,
    cancel_event: Optional[threading.Event] = None,
) -> Optional[Path]:
    """
    Extract *archive_path* into *dest_dir* and pick the file to launch.

    Returns
    -------
    Path of the best playable file, or None when the archive holds none.

    Raises
    ------
    ExtractionError
        On unsupported formats, a missing 7-Zip, a non-zero 7-Zip exit,
        corrupt archives or path-traversal attempts.
    """
    if not archive_path.exists():
        raise ExtractionError(f"Archive not found: {archive_path}")

    dest_dir.mkdir(parents=True, exist_ok=True)
    suffix = archive_path.suffix.lower()

    try:
        if suffix == ".zip":
            _extract_zip(archive_path, dest_dir)
        elif suffix in SEVEN_ZIP_EXTENSIONS:
            _extract_7z(archive_path, dest_dir, cancel_event)
        else:
            raise ExtractionError(f"Unsupported archive format: {suffix or archive_path.name}")
    except ExtractionError:
        raise
    except Exception as exc:
        raise ExtractionError(
            f"Unexpected error extracting '{archive_path.name}': {exc}"
        ) from exc

    playable = find_playable(dest_dir, profile)
    if playable is None:
        found = sorted({p.suffix.lower() for p in _candidate_files(dest_dir, profile)})
        logger.info(
            "No playable file in '%s'; file types found: %s",
            archive_path.name, ", ".join(found[:20]) or "none",
        )
    return playable


def find_playable(folder: Path, profile: SystemProfile = PSX) -> Optional[Path]:
    """
    Return the highest-priority playable file below *folder*, or None.

    Helper binaries, emulator cores and the profile's ignored suffixes are
    never selected.
    """
    if not folder.is_dir():
        return None
    candidates = _candidate_files(folder, profile)
    for rule in profile.playable_formats:
        for candidate in candidates:
            if rule.matches(candidate):
                return candidate
    return None


def locate_seven_zip() -> Optional[str]:
    for candidate in SEVEN_ZIP_CANDIDATES:
        if os.path.isfile(candidate):
            return candidate
    for command in SEVEN_ZIP_COMMANDS:
        resolved = shutil.which(command)
        if resolved:
            return resolved
    return None


# ── Format-specific extractors ────────────────────────────────────────────────


def _extract_zip(archive: Path, dest: Path) -> None:
    """Extract ZIP archive with path-traversal protection."""
    try:
        with zipfile.ZipFile(archive, "r") as zf:
            for member in zf.infolist():
                if _safe_member_path(dest, member.filename) is None:
                    raise ExtractionError(
                        f"Path traversal detected in ZIP member: {member.filename}"
                    )
            zf.extractall(dest)
    except zipfile.BadZipFile as exc:
        raise ExtractionError(f"Corrupt or invalid ZIP archive: {exc}") from exc
    except OSError as exc:
        raise ExtractionError(f"I/O error extracting '{archive.name}': {exc}") from exc


def _extract_7z(
    archive: Path, dest: Path, cancel_event: Optional[threading.Event]
) -> None:
    """
    Run 7-Zip to extract *archive*.

    Expected invocation:
        7z x <archive> -o<dest> -y
    """
    seven_zip = locate_seven_zip()
    if seven_zip is None:
        raise ExtractionError(
            "7-Zip not found. Please install 7-Zip to extract .7z and .rar files."
        )

    cmd = [seven_zip, "x", str(archive), f"-o{dest}", "-y"]
    logger.debug("Running %s", cmd)
    try:
        process = subprocess.Popen(
            cmd,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            stdin=subprocess.DEVNULL,
            text=True,
            shell=False,
        )
    except OSError as exc:
        raise ExtractionError(f"OS error launching 7-Zip: {exc}") from exc

    # Both pipes must keep draining while we wait for cancellation.
    while True:
        try:
            stdout, stderr = process.communicate(timeout=PROCESS_POLL_SECONDS)
            break
        except subprocess.TimeoutExpired:
            if cancel_event is not None and cancel_event.is_set():
                process.kill()
                process.communicate()
                raise ExtractionError(f"Extraction of '{archive.name}' cancelled.")

    if process.returncode != 0:
        raise ExtractionError(
            f"7z exited with code {process.returncode}.\n"
            f"STDOUT: {(stdout or '')[-DIAGNOSTIC_SNIPPET_CHARS:]}\n"
            f"STDERR: {(stderr or '')[:DIAGNOSTIC_SNIPPET_CHARS]}"
        )


# ── Selection helpers ─────────────────────────────────────────────────────────


def _candidate_files(folder: Path, profile: SystemProfile) -> List[Path]:
    files = sorted(p for p in folder.rglob("*") if p.is_file())
    return [p for p in files if not _is_helper_file(p.relative_to(folder), profile)]


def _is_helper_file(relative: Path, profile: SystemProfile) -> bool:
    suffix = relative.suffix.lower()
    if suffix in HELPER_SUFFIXES or suffix in profile.ignored_suffixes:
        return True
    parts = [part.lower() for part in relative.parts]
    if any(part in HELPER_PATH_PARTS for part in parts[:-1]):
        return True
    return any(frag in part for part in parts for frag in HELPER_NAME_FRAGMENTS)


# ── Security helper ───────────────────────────────────────────────────────────


def _safe_member_path(dest: Path, member_name: str) -> Optional[Path]:
    """
    Resolve *member_name* relative to *dest* and confirm it stays inside.

    Returns the resolved path on success, None on path-traversal attempt.
    """
    clean = os.path.normpath(member_name.replace("\\", "/"))
    if os.path.isabs(clean) or clean.startswith(".."):
        return None
    resolved = (dest / clean).resolve()
    try:
        resolved.relative_to(dest.resolve())
    except ValueError:
        return None
    return resolved
