"""
workers/handoff.py – Shared buffer between the preparation worker and playback.

The ready queue and the set of file names currently being prepared share one
condition variable, so publishing a game and releasing its claim happen in a
single step and ``occupancy()`` never counts a game twice.
"""

import threading
from collections import deque
from typing import Deque, Optional, Set

from models.game_entry import PreparedGame


class HandoffBuffer:
    def __init__(self) -> None:
        self._cond = threading.Condition()
        self._ready: Deque[PreparedGame] = deque()
        self._preparing: Set[str] = set()

    # ── Producer side ─────────────────────────────────────────────────────────

    def claim(self, file_name: str) -> bool:
        """Mark *file_name* as being prepared; False if it already is."""
        with self._cond:
            if file_name in self._preparing:
                return False
            self._preparing.add(file_name)
            return True

    def release(self, file_name: str) -> None:
        """Drop the claim on *file_name* after a failed attempt."""
        with self._cond:
            self._preparing.discard(file_name)
            self._cond.notify_all()

    def publish(self, game: PreparedGame, file_name: str) -> None:
        """Queue *game* and drop the claim on *file_name* atomically."""
        with self._cond:
            self._ready.append(game)
            self._preparing.discard(file_name)
            self._cond.notify_all()

    # ── Consumer side ─────────────────────────────────────────────────────────

    def try_take(self) -> Optional[PreparedGame]:
        with self._cond:
            return self._ready.popleft() if self._ready else None

    def wait_for_game(
        self, cancel_event: threading.Event, poll_interval: float = 0.5
    ) -> Optional[PreparedGame]:
        """
        Block until a game is ready or *cancel_event* is set.

        The condition wait is bounded by *poll_interval* so cancellation is
        noticed within that time.
        """
        with self._cond:
            while not self._ready:
                if cancel_event.is_set():
                    return None
                self._cond.wait(poll_interval)
            return self._ready.popleft()

    # ── Introspection ─────────────────────────────────────────────────────────

    def occupancy(self) -> int:
        """Queued plus in-preparation games."""
        with self._cond:
            return len(self._ready) + len(self._preparing)

    @property
    def queued(self) -> int:
        with self._cond:
            return len(self._ready)

    @property
    def preparing(self) -> int:
        with self._cond:
            return len(self._preparing)
