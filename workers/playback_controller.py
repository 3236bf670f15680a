"""
workers/playback_controller.py – Foreground loop that plays prepared games.

Each game runs until the emulator exits, the user presses Enter, or the
session is cancelled; the emulator is then asked to close and killed if it is
still alive after the grace period.
"""

import logging
import subprocess
import sys
import threading
from typing import Optional, TextIO

from models.game_entry import PreparedGame
from models.session_config import StreamingConfig
from services import emulator_service
from services.exceptions import EmulatorLaunchError
from workers.handoff import HandoffBuffer

logger = logging.getLogger(__name__)

BANNER_WIDTH: int = 64


class PlaybackController:
    def __init__(
        self,
        config: StreamingConfig,
        buffer: HandoffBuffer,
        cancel_event: threading.Event,
        stop_event: Optional[threading.Event] = None,
        *,
        out: Optional[TextIO] = None,
    ) -> None:
        self._config = config
        self._buffer = buffer
        self._cancel = cancel_event
        self._stop = stop_event or threading.Event()
        self._out = out or sys.stdout
        self._process: Optional[subprocess.Popen] = None
        self.games_played = 0

    def run(self) -> int:
        """Play games until cancelled; returns the number of games played."""
        try:
            while not self._cancel.is_set():
                self._print("\nWaiting for next game to be ready...")
                game = self._buffer.wait_for_game(
                    self._cancel, self._config.poll_interval
                )
                if game is None:
                    break
                self.games_played += 1
                self._show_title(game)
                self.play(game)
        finally:
            self.close_current()
        return self.games_played

    def play(self, game: PreparedGame) -> Optional[str]:
        """
        Launch *game* and wait for it to end.

        Returns how the session ended (see emulator_service.wait_for_stop), or
        None when the emulator could not be started.
        """
        self._stop.clear()
        args = self._config.profile.build_emulator_args(game.playable_path)
        try:
            self._process = emulator_service.launch(self._config.emulator_path, args)
        except EmulatorLaunchError as exc:
            logger.error("Skipping %s: %s", game.title, exc)
            return None

        self._print("Press Enter to stop and continue to next game...\n")
        try:
            outcome = emulator_service.wait_for_stop(
                self._process,
                self._stop,
                self._cancel,
                self._config.process_poll_interval,
            )
            logger.debug("Play session for %s ended: %s", game.title, outcome)
            return outcome
        finally:
            self.close_current()

    def close_current(self) -> None:
        process, self._process = self._process, None
        if process is not None:
            emulator_service.close(process, self._config.close_grace_period)

    # ── Console output ────────────────────────────────────────────────────────

    def _show_title(self, game: PreparedGame) -> None:
        heading = f"{self._config.profile.name} Streaming - NOW PLAYING"
        self._print("╔" + "═" * BANNER_WIDTH + "╗")
        self._print("║" + heading.center(BANNER_WIDTH)[:BANNER_WIDTH] + "║")
        self._print("╚" + "═" * BANNER_WIDTH + "╝")
        self._print(f"\n  Game #{self.games_played}\n")
        self._print(f"  {game.title}")
        self._print(f"  {game.playable_path.name}\n")
        self._print(f"  Games ready in queue: {self._buffer.queued}\n")

    def _print(self, text: str) -> None:
        print(text, file=self._out, flush=True)
