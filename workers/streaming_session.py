"""
workers/streaming_session.py – Wires one streaming session together.

  1. Check the emulator exists (fatal otherwise).
  2. Load the remote catalogue (fatal on failure).
  3. Load or create the playlist.
  4. Start the preparation worker, run playback on the calling thread.
  5. On exit: stop the worker, close the HTTP session, clean staging files.
"""

import logging
import random
import sys
import threading
from typing import Callable, List, Optional, TextIO

import httpx

from models.game_entry import RemoteCatalogEntry
from models.session_config import StreamingConfig
from services import locale_filter, search_service, storage_service
from services.exceptions import EmulatorNotFoundError
from services.http_session import ArchiveSession
from services.playlist_state import PlaylistState
from workers.handoff import HandoffBuffer
from workers.playback_controller import PlaybackController
from workers.preparation_worker import PreparationWorker

logger = logging.getLogger(__name__)

WORKER_JOIN_TIMEOUT: float = 10.0


class StreamingSession:
    """
    Parameters
    ----------
    config       : Session configuration.
    transport    : Optional httpx transport for the ArchiveSession.
    rng          : Random source for playlist shuffles.
    cancel_event : Set from outside (e.g. Ctrl+C handling) to end the session.
    stop_event   : Set to stop the current game and move on.
    """

    def __init__(
        self,
        config: StreamingConfig,
        *,
        transport: Optional[httpx.BaseTransport] = None,
        rng: Optional[random.Random] = None,
        cancel_event: Optional[threading.Event] = None,
        stop_event: Optional[threading.Event] = None,
        out: Optional[TextIO] = None,
    ) -> None:
        self.config = config
        self.cancel_event = cancel_event or threading.Event()
        self.stop_event = stop_event or threading.Event()
        self._transport = transport
        self._rng = rng
        self._out = out or sys.stdout
        self.catalog: List[RemoteCatalogEntry] = []
        self.playlist: Optional[PlaylistState] = None
        self.buffer = HandoffBuffer()
        self.worker: Optional[PreparationWorker] = None
        self.controller: Optional[PlaybackController] = None

    def run(self) -> int:
        """
        Run until cancelled; returns the number of games played this session.

        Raises
        ------
        EmulatorNotFoundError when the emulator binary is missing.
        CatalogFetchError when the catalogue cannot be loaded.
        """
        config = self.config
        if not config.emulator_path.is_file():
            raise EmulatorNotFoundError(f"Emulator not found at: {config.emulator_path}")

        config.games_dir.mkdir(parents=True, exist_ok=True)
        config.temp_dir.mkdir(parents=True, exist_ok=True)

        self._print(f"{config.profile.name} Streaming Player")
        self._print(f"Catalogue: {config.catalog_url}")
        if config.locale:
            self._print(f"Locale: {locale_filter.locale_name(config.locale)}")

        with ArchiveSession(config.catalog_url, transport=self._transport) as session:
            self._print("Fetching game list...")
            self.catalog = search_service.fetch_catalogue(
                session, config.catalog_url, config.profile, config.locale
            )
            if not self.catalog:
                self._print("No games found!")
                return 0
            self._print(f"Found {len(self.catalog)} games available for streaming\n")

            self.playlist = self._init_playlist()
            return self._play(session)

    # ── Private helpers ───────────────────────────────────────────────────────

    def _init_playlist(self) -> PlaylistState:
        config = self.config
        playlist = PlaylistState(config.state_path, rng=self._rng)
        had_saved_state = playlist.has_saved_state
        playlist.initialize(
            [e.file_name for e in self.catalog],
            force_reset=config.force_reset,
            reset_progress_only=config.reset_progress_only,
        )

        if config.force_reset:
            self._print("Playlist reset with new random order")
        elif config.reset_progress_only:
            self._print("Progress reset - starting from beginning (same order)")
        elif had_saved_state and playlist.games_played > 0:
            self._print(
                f"Resuming: {playlist.games_played}/{playlist.total_games} games played"
            )

        upcoming = playlist.peek_next()
        if upcoming is not None:
            self._print(
                f"{len(playlist.remaining())} games left this round, "
                f"starting with {search_service.clean_title(upcoming)}"
            )
        return playlist

    def _play(self, session: ArchiveSession) -> int:
        config = self.config
        self.worker = PreparationWorker(
            config, session, self.playlist, self.catalog, self.buffer, self.cancel_event
        )
        self.controller = PlaybackController(
            config,
            self.buffer,
            self.cancel_event,
            self.stop_event,
            out=self._out,
        )

        self.worker.start()
        try:
            return self.controller.run()
        finally:
            self.cancel_event.set()
            self.worker.join(WORKER_JOIN_TIMEOUT)
            if self.worker.is_alive():
                logger.warning("Preparation worker still busy; leaving it to exit on its own.")
            self._print(f"\nSession ended. Games played this session: {self.controller.games_played}")
            storage_service.cleanup_temp(config.temp_dir)

    def _print(self, text: str) -> None:
        print(text, file=self._out, flush=True)


def watch_for_enter(stop_event: threading.Event, stream: TextIO = sys.stdin) -> threading.Thread:
    """Set *stop_event* every time a line arrives on *stream*."""

    def _reader(readline: Callable[[], str]) -> None:
        while True:
            line = readline()
            if not line:
                return
            stop_event.set()

    thread = threading.Thread(
        target=_reader, args=(stream.readline,), name="stdin-watcher", daemon=True
    )
    thread.start()
    return thread
