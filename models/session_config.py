"""
models/session_config.py – Explicit configuration for one streaming session.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from models.system_profile import SystemProfile

TEMP_DIR_NAME: str = ".streaming_temp"


@dataclass(frozen=True)
class StreamingConfig:
    """
    Values shared by the pipeline, the playback controller and the session.

    Intervals are in seconds; tests shrink them to keep runs short.
    """

    profile: SystemProfile
    catalog_url: str
    emulator_path: Path
    games_dir: Path
    locale: Optional[str] = None
    force_reset: bool = False
    reset_progress_only: bool = False
    look_ahead: int = 2
    prepare_interval: float = 1.0
    error_backoff: float = 5.0
    poll_interval: float = 0.5
    process_poll_interval: float = 0.1
    close_grace_period: float = 3.0

    @property
    def temp_dir(self) -> Path:
        return self.games_dir / TEMP_DIR_NAME

    @property
    def state_path(self) -> Path:
        return self.games_dir / self.profile.state_file_name
