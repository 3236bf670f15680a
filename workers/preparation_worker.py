"""
workers/preparation_worker.py – Background thread that keeps games ready.

Loop contract
-------------
  * queued + preparing never exceeds ``config.look_ahead``.
  * Each iteration takes the next playlist entry, claims it, and prepares it:
    cache hit → download → extract (or move) → pick the playable file.
  * A failed attempt is logged and dropped; the entry comes round again the
    next time the playlist reaches it.
  * Iterations are separated by ``config.prepare_interval`` and the loop ends
    within that interval once the cancel event is set.
"""

import logging
import threading
import time
from pathlib import Path
from typing import Callable, Dict, List, Optional

from models.game_entry import PreparedGame, RemoteCatalogEntry
from models.session_config import StreamingConfig
from services import download_service, extraction_service, storage_service
from services.exceptions import DownloadCancelledError, ExtractionError, ROMStreamError
from services.http_session import ArchiveSession
from services.playlist_state import PlaylistState
from services.search_service import safe_folder_name
from workers.handoff import HandoffBuffer

logger = logging.getLogger(__name__)

# Extraction can briefly need the archive and its contents side by side.
EXTRACTION_SPACE_FACTOR: int = 3

# Seconds between download progress lines.
PROGRESS_LOG_INTERVAL: float = 2.0


class PreparationWorker(threading.Thread):
    """
    Runs the download/extract pipeline on a daemon thread.

    Instantiate, then call start(); set *cancel_event* and join() to stop.
    """

    def __init__(
        self,
        config: StreamingConfig,
        session: ArchiveSession,
        playlist: PlaylistState,
        catalog: List[RemoteCatalogEntry],
        buffer: HandoffBuffer,
        cancel_event: threading.Event,
    ) -> None:
        super().__init__(name="preparation-worker", daemon=True)
        self._config = config
        self._session = session
        self._playlist = playlist
        self._catalog = list(catalog)
        self._by_name: Dict[str, RemoteCatalogEntry] = {
            e.file_name.casefold(): e for e in catalog
        }
        self._buffer = buffer
        self._cancel = cancel_event

    # ── Thread entry point ────────────────────────────────────────────────────

    def run(self) -> None:
        while not self._cancel.is_set():
            try:
                self._run_iteration()
                delay = self._config.prepare_interval
            except Exception:  # noqa: BLE001
                # Catch-all so the worker thread never silently dies.
                logger.exception("[PREP ERROR] Unexpected failure in preparation loop")
                delay = self._config.error_backoff
            if self._cancel.wait(delay):
                break
        logger.debug("Preparation worker stopped.")

    # ── Pipeline steps ────────────────────────────────────────────────────────

    def _run_iteration(self) -> None:
        if self._buffer.occupancy() >= self._config.look_ahead:
            return

        entry = self.next_entry()
        if entry is None:
            return
        if not self._buffer.claim(entry.file_name):
            return

        try:
            prepared = self.prepare(entry)
        except BaseException:
            self._buffer.release(entry.file_name)
            raise

        if prepared is None:
            self._buffer.release(entry.file_name)
            return
        self._buffer.publish(prepared, entry.file_name)
        logger.info("[READY] %s is ready to play!", prepared.title)

    def next_entry(self) -> Optional[RemoteCatalogEntry]:
        """
        Pull the next catalogue entry from the playlist, reshuffling once the
        playlist runs out.  Names no longer in the catalogue are skipped.
        """
        if not self._catalog:
            return None

        reshuffled = False
        while True:
            name = self._playlist.get_next()
            if name is None:
                if reshuffled:
                    return None
                logger.info("Playlist complete, reshuffling...")
                self._playlist.full_reset(e.file_name for e in self._catalog)
                reshuffled = True
                continue

            entry = self._by_name.get(name.casefold())
            if entry is not None:
                return entry
            logger.warning("Game not in current list, skipping: %s", name)

    def prepare(self, entry: RemoteCatalogEntry) -> Optional[PreparedGame]:
        """
        Produce a PreparedGame for *entry*, or None when the attempt fails.

        Every failure is logged here; nothing from a single game propagates.
        """
        folder = self._config.games_dir / safe_folder_name(entry.title, entry.file_name)
        logger.info("[PREP] Preparing: %s", entry.title)

        try:
            cached = self._cached_game(entry, folder)
            if cached is not None:
                return cached

            playable = self._fetch_and_unpack(entry, folder)
        except DownloadCancelledError:
            logger.info("[PREP] Cancelled: %s", entry.title)
            return None
        except ROMStreamError as exc:
            if self._cancel.is_set():
                logger.info("[PREP] Cancelled: %s", entry.title)
            else:
                logger.warning("[PREP] Failed: %s: %s", entry.title, exc)
            return None

        if playable is None:
            logger.warning("[PREP] No playable file found for %s", entry.title)
            return None

        logger.info("[PREP] Using: %s", playable.name)
        return PreparedGame(
            title=entry.title,
            playable_path=playable,
            extracted_dir=folder,
            file_name=entry.file_name,
        )

    # ── Private helpers ───────────────────────────────────────────────────────

    def _cached_game(self, entry: RemoteCatalogEntry, folder: Path) -> Optional[PreparedGame]:
        if not folder.is_dir():
            return None
        existing = extraction_service.find_playable(folder, self._config.profile)
        if existing is None:
            logger.info("[PREP] No game file in existing folder, re-downloading...")
            storage_service.remove_folder(folder)
            return None
        logger.info("[PREP] Found existing game folder, using cached version")
        return PreparedGame(
            title=entry.title,
            playable_path=existing,
            extracted_dir=folder,
            file_name=entry.file_name,
        )

    def _fetch_and_unpack(self, entry: RemoteCatalogEntry, folder: Path) -> Optional[Path]:
        staged = self._config.temp_dir / Path(entry.file_name).name

        if not staged.exists():
            factor = EXTRACTION_SPACE_FACTOR if entry.is_compressed else 1
            storage_service.check_disk_space(
                self._config.games_dir, entry.size_bytes * factor
            )
            logger.info("[PREP] Downloading %s (%s)...", entry.file_name, _format_size(entry.size_bytes))
            download_service.download_file(
                self._session,
                entry.url,
                staged,
                progress_callback=DownloadProgressLogger(),
                cancel_event=self._cancel,
            )

        if entry.is_compressed:
            logger.info("[PREP] Extracting to: %s", folder.name)
            try:
                playable = extraction_service.extract_archive(
                    staged, folder, self._config.profile, cancel_event=self._cancel
                )
            except ExtractionError:
                # A half-extracted folder must not look like a cache hit later.
                storage_service.remove_folder(folder)
                raise
            if playable is not None:
                storage_service.remove_file(staged)
            return playable

        storage_service.install_file(staged, folder)
        return extraction_service.find_playable(folder, self._config.profile)


def _format_size(size: int) -> str:
    if size <= 0:
        return "unknown size"
    units = ["B", "KB", "MB", "GB"]
    value = float(size)
    order = 0
    while value >= 1024 and order < len(units) - 1:
        order += 1
        value /= 1024
    return f"{value:.2f} {units[order]}"


class DownloadProgressLogger:
    """
    Progress callback for download_file that logs percentage and speed.

    A line is written at most every *interval* seconds, plus one when the
    download completes.
    """

    def __init__(
        self,
        interval: float = PROGRESS_LOG_INTERVAL,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._interval = interval
        self._clock = clock
        self._started: Optional[float] = None
        self._start_bytes = 0
        self._last_logged = 0.0

    def __call__(self, downloaded: int, total: int) -> None:
        now = self._clock()
        if self._started is None:
            self._started = self._last_logged = now
            self._start_bytes = downloaded

        finished = total > 0 and downloaded >= total
        if not finished and now - self._last_logged < self._interval:
            return
        self._last_logged = now

        elapsed = now - self._started
        speed = (downloaded - self._start_bytes) / elapsed if elapsed > 0 else 0.0
        speed_text = f"{_format_size(int(speed))}/s" if speed >= 1 else "-"
        if total > 0:
            logger.info(
                "[PREP] Download: %d%% (%s / %s) - %s",
                downloaded * 100 // total,
                _format_size(downloaded), _format_size(total), speed_text,
            )
        else:
            logger.info("[PREP] Download: %s - %s", _format_size(downloaded), speed_text)
