"""
services/download_service.py – Resumable streaming download with retries.

Bytes are streamed into ``<output>.downloading`` and the file is renamed into
place only once complete, so an interrupted download leaves a partial file
that the next attempt (or the next session) resumes with a Range request.
A progress callback (bytes_downloaded, total_bytes_or_-1) is called after
every chunk.
"""

import contextlib
import logging
import os
import threading
import time
from pathlib import Path
from typing import Callable, Optional

import httpx

from services.exceptions import (
    DownloadAuthError,
    DownloadCancelledError,
    DownloadError,
)
from services.http_session import ArchiveSession

logger = logging.getLogger(__name__)

# ── Configuration ────────────────────────────────────────────────────────────
CHUNK_SIZE: int = 1024 * 1024  # 1 MiB
MAX_RETRIES: int = 3
RETRY_BACKOFF_SECONDS: float = 1.0  # multiplied by the attempt number
PARTIAL_SUFFIX: str = ".downloading"

AUTH_STATUSES = (401, 403)

# ── Types ────────────────────────────────────────────────────────────────────
ProgressCallback = Callable[[int, int], None]


def partial_path_for(output_path: Path) -> Path:
    return output_path.with_name(output_path.name + PARTIAL_SUFFIX)


# ── Public API ───────────────────────────────────────────────────────────────


def download_file(
    session: ArchiveSession,
    url: str,
    output_path: Path,
    *,
    progress_callback: Optional[ProgressCallback] = None,
    cancel_event: Optional[threading.Event] = None,
) -> Path:
    """
    Download *url* to *output_path*, resuming any partial file left behind.

    Parameters
    ----------
    session           : Shared ArchiveSession (cookies, redirects).
    url               : Direct download URL.
    output_path       : Final file location.
    progress_callback : Optional callable receiving (downloaded, total).
    cancel_event      : Checked after every chunk and during back-off waits.

    Returns
    -------
    Path to the completed file.

    Raises
    ------
    DownloadAuthError       after MAX_RETRIES consecutive 401/403 answers.
    TooManyRedirectsError   when the redirect chain is too long.
    DownloadCancelledError  when *cancel_event* is set.
    DownloadError           on any other network, HTTP or I/O failure.
    """
    output_path.parent.mkdir(parents=True, exist_ok=True)
    partial = partial_path_for(output_path)

    session.initialize()

    last_error: Optional[Exception] = None

    for attempt in range(1, MAX_RETRIES + 1):
        _raise_if_cancelled(cancel_event)
        existing = partial.stat().st_size if partial.exists() else 0
        if existing:
            logger.info("Resuming %s from byte %d", output_path.name, existing)

        try:
            response = session.send(url, is_download=True, range_start=existing)
        except httpx.TransportError as exc:
            last_error = exc
            if attempt < MAX_RETRIES:
                logger.warning(
                    "Network error: %s, retrying... (attempt %d/%d)",
                    exc, attempt, MAX_RETRIES,
                )
                _backoff(attempt, cancel_event)
                continue
            break

        with contextlib.closing(response):
            status = response.status_code

            if status in AUTH_STATUSES:
                session.invalidate()
                if attempt < MAX_RETRIES:
                    logger.warning(
                        "Auth error (HTTP %d), reinitializing session... (attempt %d/%d)",
                        status, attempt, MAX_RETRIES,
                    )
                    _backoff(attempt, cancel_event)
                    session.initialize()
                    continue
                raise DownloadAuthError(status, attempt)

            if status == 416:
                # The partial file no longer lines up with the remote object.
                _discard(partial)
                raise DownloadError(f"Server rejected resume range for URL: {url}")

            if status not in (200, 206):
                raise DownloadError(f"Server returned HTTP {status} for URL: {url}")

            resumed = status == 206 and existing > 0
            if existing and not resumed:
                logger.info(
                    "Server ignored the range request; restarting %s from zero",
                    output_path.name,
                )
                existing = 0

            try:
                _write_body(
                    response, partial, existing, resumed,
                    progress_callback, cancel_event,
                )
            except httpx.TransportError as exc:
                last_error = exc
                if attempt < MAX_RETRIES:
                    logger.warning(
                        "Connection lost mid-download: %s, retrying... (attempt %d/%d)",
                        exc, attempt, MAX_RETRIES,
                    )
                    _backoff(attempt, cancel_event)
                    continue
                break

        try:
            os.replace(partial, output_path)
        except OSError as exc:
            raise DownloadError(f"Could not move finished download into place: {exc}") from exc
        return output_path

    raise DownloadError(
        f"Download failed after {MAX_RETRIES} attempts. Last error: {last_error}"
    ) from last_error


# ── Private helpers ───────────────────────────────────────────────────────────


def _write_body(
    response: httpx.Response,
    partial: Path,
    existing: int,
    append: bool,
    progress_callback: Optional[ProgressCallback],
    cancel_event: Optional[threading.Event],
) -> None:
    length = response.headers.get("content-length")
    total_bytes = int(length) + existing if length and length.isdigit() else -1
    downloaded = existing

    try:
        with open(partial, "ab" if append else "wb") as fh:
            for chunk in response.iter_bytes(chunk_size=CHUNK_SIZE):
                if cancel_event is not None and cancel_event.is_set():
                    raise DownloadCancelledError("Download cancelled.")
                if not chunk:
                    continue
                fh.write(chunk)
                downloaded += len(chunk)
                if progress_callback:
                    progress_callback(downloaded, total_bytes)
    except OSError as exc:
        raise DownloadError(f"I/O error writing download to disk: {exc}") from exc


def _backoff(attempt: int, cancel_event: Optional[threading.Event]) -> None:
    delay = attempt * RETRY_BACKOFF_SECONDS
    if cancel_event is None:
        time.sleep(delay)
    elif cancel_event.wait(delay):
        raise DownloadCancelledError("Download cancelled.")


def _raise_if_cancelled(cancel_event: Optional[threading.Event]) -> None:
    if cancel_event is not None and cancel_event.is_set():
        raise DownloadCancelledError("Download cancelled.")


def _discard(partial: Path) -> None:
    try:
        if partial.exists():
            partial.unlink()
    except OSError as exc:
        logger.warning("Could not remove partial download '%s': %s", partial, exc)
