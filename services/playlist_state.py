"""
services/playlist_state.py – Persistent shuffled playlist with a progress cursor.

The whole record is rewritten after every mutation, so progress survives a
crash at any point.  An entry counts as played as soon as get_next() hands it
out.
"""

import json
import logging
import os
import random
import threading
from datetime import datetime
from pathlib import Path
from typing import Iterable, List, Optional

from models.playlist_record import PlaylistRecord

logger = logging.getLogger(__name__)


def _key(name: str) -> str:
    return name.casefold()


class PlaylistState:
    """
    Shuffled ordering of catalogue file names, persisted to *state_path*.

    Parameters
    ----------
    state_path : JSON file holding the record.
    rng        : Random source used for shuffling (seed it in tests).
    """

    def __init__(self, state_path: Path, rng: Optional[random.Random] = None) -> None:
        self.state_path = state_path
        self._rng = rng or random.Random()
        self._lock = threading.RLock()
        self._record = PlaylistRecord()
        state_path.parent.mkdir(parents=True, exist_ok=True)

    # ── Read-only views ───────────────────────────────────────────────────────

    @property
    def record(self) -> PlaylistRecord:
        """A copy of the current record."""
        with self._lock:
            return PlaylistRecord(
                shuffled_order=list(self._record.shuffled_order),
                cursor=self._record.cursor,
                created_at=self._record.created_at,
                last_played=self._record.last_played,
            )

    @property
    def has_saved_state(self) -> bool:
        return self.state_path.exists()

    @property
    def games_played(self) -> int:
        with self._lock:
            return self._record.cursor

    @property
    def total_games(self) -> int:
        with self._lock:
            return len(self._record.shuffled_order)

    def remaining(self) -> List[str]:
        with self._lock:
            return self._record.shuffled_order[self._record.cursor:]

    def peek_next(self) -> Optional[str]:
        with self._lock:
            order, cursor = self._record.shuffled_order, self._record.cursor
            return order[cursor] if cursor < len(order) else None

    # ── Mutations ─────────────────────────────────────────────────────────────

    def initialize(
        self,
        current_entries: Iterable[str],
        force_reset: bool = False,
        reset_progress_only: bool = False,
    ) -> None:
        """
        Load or create the playlist for *current_entries*.

        * force_reset, or no usable saved record: new shuffle, cursor 0.
        * reset_progress_only: saved order kept, cursor back to 0.
        * saved entries equal the current ones: resume unchanged.
        * otherwise: reconcile the saved order with the current entries.
        """
        current = list(current_entries)
        with self._lock:
            if force_reset:
                self.delete_state()
                self._create(current)
                self.save()
                return

            loaded = self._try_load()
            if loaded is None:
                self._create(current)
                self.save()
                return
            self._record = loaded

            if reset_progress_only:
                self.reset_progress()
                return

            saved_keys = {_key(n) for n in self._record.shuffled_order}
            current_keys = {_key(n) for n in current}
            if saved_keys == current_keys:
                return

            self._reconcile(current)
            self.save()

    def get_next(self) -> Optional[str]:
        """Return the entry at the cursor and advance; None when exhausted."""
        with self._lock:
            order = self._record.shuffled_order
            if self._record.cursor >= len(order):
                return None
            name = order[self._record.cursor]
            self._record.cursor += 1
            self._record.last_played = name
            self.save()
            return name

    def reset_progress(self) -> None:
        """Restart from the beginning, keeping the order."""
        with self._lock:
            self._record.cursor = 0
            self._record.last_played = None
            self.save()

    def full_reset(self, entries: Iterable[str]) -> None:
        """Start over with a brand new shuffle of *entries*."""
        with self._lock:
            self._create(list(entries))
            self.save()

    # ── Persistence ───────────────────────────────────────────────────────────

    def save(self) -> None:
        """Overwrite the state file; failures are logged, not raised."""
        with self._lock:
            payload = json.dumps(self._record.to_dict(), indent=2)
            tmp_path = self.state_path.with_name(self.state_path.name + ".tmp")
            try:
                tmp_path.write_text(payload, encoding="utf-8")
                os.replace(tmp_path, self.state_path)
            except OSError as exc:
                logger.warning("Could not save playlist state: %s", exc)

    def delete_state(self) -> None:
        try:
            if self.state_path.exists():
                self.state_path.unlink()
        except OSError as exc:
            logger.warning("Could not delete playlist state: %s", exc)

    def _try_load(self) -> Optional[PlaylistRecord]:
        if not self.state_path.exists():
            return None
        try:
            data = json.loads(self.state_path.read_text(encoding="utf-8"))
            record = PlaylistRecord.from_dict(data)
        except (OSError, ValueError, TypeError, KeyError) as exc:
            logger.warning("Could not load playlist state: %s", exc)
            return None
        if not record.shuffled_order:
            return None
        return record

    # ── Private helpers ───────────────────────────────────────────────────────

    def _create(self, entries: List[str]) -> None:
        order = list(entries)
        self._rng.shuffle(order)
        self._record = PlaylistRecord(
            shuffled_order=order,
            cursor=0,
            created_at=datetime.now(),
            last_played=None,
        )

    def _reconcile(self, current: List[str]) -> None:
        """
        Drop vanished entries, keep survivors in order, append newcomers
        shuffled.  The cursor moves back by the number of removed entries that
        sat before it, so "games already played" stays accurate.
        """
        current_keys = {_key(n) for n in current}
        saved = self._record.shuffled_order
        saved_keys = {_key(n) for n in saved}

        survivors = [n for n in saved if _key(n) in current_keys]
        removed_before = sum(
            1 for n in saved[: self._record.cursor] if _key(n) not in current_keys
        )

        newcomers = [n for n in current if _key(n) not in saved_keys]
        self._rng.shuffle(newcomers)

        self._record.shuffled_order = survivors + newcomers
        self._record.cursor = max(0, self._record.cursor - removed_before)
        logger.info(
            "Playlist reconciled: %d removed, %d added",
            len(saved) - len(survivors), len(newcomers),
        )
