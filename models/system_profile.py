"""
models/system_profile.py – Per-system streaming rules.

Every difference between the streaming systems (which catalogue files count as
games, which extracted file to launch, how the emulator takes its argument)
lives in a SystemProfile so the download/extract/play pipeline stays generic.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Tuple

MIB: int = 1024 * 1024


@dataclass(frozen=True)
class FormatRule:
    """A playable file suffix, optionally requiring a minimum file size."""

    suffix: str
    min_bytes: int = 0

    def matches(self, path: Path) -> bool:
        if path.suffix.lower() != self.suffix:
            return False
        if self.min_bytes <= 0:
            return True
        try:
            return path.stat().st_size > self.min_bytes
        except OSError:
            return False


@dataclass(frozen=True)
class SystemProfile:
    """
    Capability value consumed by the catalogue loader, extractor, pipeline and
    playback controller.

    Attributes
    ----------
    key                     : Short CLI name (``psx``, ``ps2`` …).
    name                    : Human-readable system name.
    default_catalog_url     : Catalogue used when none is given.
    catalog_extensions      : Catalogue file suffixes that count as games.
    compressed_extensions   : Suffixes that must be extracted.
    excluded_name_fragments : Case-insensitive substrings marking auxiliary
                              catalogue files (torrents, BIOS dumps …).
    playable_formats        : Priority-ordered playable file rules.
    ignored_suffixes        : Extracted files never considered playable.
    emulator_args           : Argument template; ``{path}`` is replaced by the
                              playable file.
    emulator_commands       : Executable names looked up on PATH when no
                              emulator is configured.
    state_file_name         : Playlist state file inside the games directory.
    """

    key: str
    name: str
    default_catalog_url: str
    catalog_extensions: Tuple[str, ...]
    compressed_extensions: Tuple[str, ...]
    excluded_name_fragments: Tuple[str, ...]
    playable_formats: Tuple[FormatRule, ...]
    ignored_suffixes: Tuple[str, ...] = ()
    emulator_args: Tuple[str, ...] = ("{path}",)
    emulator_commands: Tuple[str, ...] = ()
    state_file_name: str = "stream_progress.json"

    def is_catalog_file(self, file_name: str) -> bool:
        lower = file_name.lower()
        if not lower.endswith(self.catalog_extensions):
            return False
        return not any(frag in lower for frag in self.excluded_name_fragments)

    def is_compressed(self, file_name: str) -> bool:
        return file_name.lower().endswith(self.compressed_extensions)

    def build_emulator_args(self, playable_path: Path) -> List[str]:
        return [arg.format(path=str(playable_path)) for arg in self.emulator_args]


PSX = SystemProfile(
    key="psx",
    name="PlayStation",
    default_catalog_url="https://archive.org/download/tekken-3-usa.-7z",
    catalog_extensions=(".zip", ".7z", ".rar"),
    compressed_extensions=(".zip", ".7z", ".rar"),
    excluded_name_fragments=("torrent", "scph", "bitmap", "bios", "_files"),
    playable_formats=(
        # .cue references its .bin tracks, so it wins over a raw track file.
        FormatRule(".cue"),
        FormatRule(".chd"),
        FormatRule(".iso"),
        FormatRule(".bin", min_bytes=1 * MIB),
        FormatRule(".img"),
        FormatRule(".pbp"),
    ),
    emulator_commands=("duckstation-qt", "duckstation"),
    state_file_name="stream_psx_progress.json",
)

PS2 = SystemProfile(
    key="ps2",
    name="PlayStation 2",
    default_catalog_url="https://archive.org/download/playstation2_essentials",
    catalog_extensions=(".iso", ".chd", ".7z", ".zip", ".rar"),
    compressed_extensions=(".7z", ".zip", ".rar"),
    excluded_name_fragments=("torrent",),
    playable_formats=(
        FormatRule(".iso"),
        FormatRule(".chd"),
        FormatRule(".bin", min_bytes=100 * MIB),
        FormatRule(".cue"),
    ),
    ignored_suffixes=(".txt", ".nfo"),
    emulator_commands=("pcsx2-qt", "pcsx2"),
    state_file_name="stream_ps2_progress.json",
)

XBOX360 = SystemProfile(
    key="xbox360",
    name="Xbox 360",
    default_catalog_url="https://archive.org/download/XBOX-360-ISO",
    catalog_extensions=(".iso", ".xex", ".7z", ".zip"),
    compressed_extensions=(".7z", ".zip"),
    excluded_name_fragments=("torrent",),
    playable_formats=(
        FormatRule(".iso"),
        FormatRule(".xex"),
        FormatRule(".xcp"),
    ),
    emulator_commands=("xenia", "xenia_canary"),
    state_file_name="stream_xbox360_progress.json",
)

PROFILES: Dict[str, SystemProfile] = {p.key: p for p in (PSX, PS2, XBOX360)}
