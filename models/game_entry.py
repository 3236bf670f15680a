"""
models/game_entry.py – Data models for catalogue entries and prepared games.
"""

from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class RemoteCatalogEntry:
    """
    Represents one downloadable file in the remote catalogue.

    Attributes
    ----------
    file_name     : Name of the file inside the catalogue; the entry's identity.
    url           : Absolute download URL.
    size_bytes    : Size reported by the catalogue (0 when unknown).
    title         : Cleaned display title; cosmetic only.
    is_compressed : True when the file must be extracted before playing.
    """

    file_name: str
    url: str
    size_bytes: int = 0
    title: str = ""
    is_compressed: bool = False

    def __str__(self) -> str:
        return f"{self.title or self.file_name}  ({self.file_name})"


@dataclass(frozen=True)
class PreparedGame:
    """
    A fully downloaded and extracted game, ready to launch.

    Attributes
    ----------
    title         : Display title shown when the game starts.
    playable_path : File handed to the emulator.
    extracted_dir : Per-title cache folder holding the playable file.
    file_name     : Catalogue file name the game was prepared from.
    """

    title: str
    playable_path: Path
    extracted_dir: Path
    file_name: str = ""

    def __str__(self) -> str:
        return f"{self.title}  →  {self.playable_path.name}"
