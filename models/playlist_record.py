"""
models/playlist_record.py – Persisted shuffled order and progress cursor.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional


@dataclass
class PlaylistRecord:
    """
    One streaming playlist as stored on disk.

    ``cursor`` indexes the next unplayed entry of ``shuffled_order`` and is
    kept within ``0 <= cursor <= len(shuffled_order)``.
    """

    shuffled_order: List[str] = field(default_factory=list)
    cursor: int = 0
    created_at: datetime = field(default_factory=datetime.now)
    last_played: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "shuffledOrder": list(self.shuffled_order),
            "cursor": self.cursor,
            "createdAt": self.created_at.isoformat(),
            "lastPlayed": self.last_played,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "PlaylistRecord":
        """
        Build a record from its JSON form.

        Raises
        ------
        ValueError / TypeError / KeyError when the document is malformed.
        """
        order = data["shuffledOrder"]
        if not isinstance(order, list) or not all(isinstance(n, str) for n in order):
            raise ValueError("shuffledOrder must be a list of file names")

        cursor = int(data.get("cursor", 0))
        cursor = min(max(cursor, 0), len(order))

        created_raw = data.get("createdAt")
        created_at = datetime.fromisoformat(created_raw) if created_raw else datetime.now()

        last_played = data.get("lastPlayed")
        if last_played is not None and not isinstance(last_played, str):
            raise ValueError("lastPlayed must be a string or null")

        return cls(
            shuffled_order=list(order),
            cursor=cursor,
            created_at=created_at,
            last_played=last_played,
        )
