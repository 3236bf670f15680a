"""
services/emulator_service.py – Launching and closing the external emulator.

Security notes
--------------
* Arguments are passed to subprocess as a list (never shell=True), so the
  playable path reaches the emulator as one argument whatever it contains.
* The emulator path comes from configuration, never from catalogue data.
"""

import logging
import shutil
import subprocess
import threading
from pathlib import Path
from typing import List, Optional, Sequence

from services.exceptions import EmulatorLaunchError, EmulatorNotFoundError

logger = logging.getLogger(__name__)

# ── Configuration ────────────────────────────────────────────────────────────
PROCESS_POLL_SECONDS: float = 0.1
CLOSE_GRACE_SECONDS: float = 3.0
KILL_WAIT_SECONDS: float = 5.0


def resolve_emulator(configured: Optional[str], commands: Sequence[str] = ()) -> Path:
    """
    Return the emulator executable to use.

    *configured* wins when given; otherwise the first of *commands* found on
    PATH is used.

    Raises
    ------
    EmulatorNotFoundError when nothing usable exists.
    """
    if configured:
        path = Path(configured).expanduser()
        if path.is_file():
            return path
        found = shutil.which(configured)
        if found:
            return Path(found)
        raise EmulatorNotFoundError(f"Emulator not found at: {configured}")

    for command in commands:
        found = shutil.which(command)
        if found:
            return Path(found)
    raise EmulatorNotFoundError(
        "No emulator configured and none of "
        f"{', '.join(commands) or '(no commands)'} found on PATH."
    )


def launch(emulator_path: Path, args: List[str]) -> subprocess.Popen:
    """
    Start the emulator.

    Raises
    ------
    EmulatorLaunchError when the process cannot be created.
    """
    cmd = [str(emulator_path), *args]
    logger.info("Launching: %s", cmd)
    try:
        return subprocess.Popen(cmd, shell=False, stdin=subprocess.DEVNULL)
    except OSError as exc:
        raise EmulatorLaunchError(f"Failed to start emulator: {exc}") from exc


def wait_for_stop(
    process: subprocess.Popen,
    stop_event: threading.Event,
    cancel_event: threading.Event,
    poll_interval: float = PROCESS_POLL_SECONDS,
) -> str:
    """
    Block until the process exits, the user asks to stop, or the session is
    cancelled.

    Returns
    -------
    ``"exited"``, ``"stopped"`` or ``"cancelled"``.
    """
    while True:
        if process.poll() is not None:
            return "exited"
        if cancel_event.is_set():
            return "cancelled"
        if stop_event.wait(poll_interval):
            return "stopped"


def close(process: subprocess.Popen, grace_period: float = CLOSE_GRACE_SECONDS) -> Optional[int]:
    """
    Ask the process to exit, then force-terminate it after *grace_period*.

    Returns the exit code, or None if the process could not be reaped.
    """
    if process.poll() is not None:
        return process.returncode

    logger.debug("Requesting emulator shutdown (pid %s)", process.pid)
    try:
        process.terminate()
        return process.wait(timeout=grace_period)
    except subprocess.TimeoutExpired:
        logger.info("Emulator did not exit within %.1fs; killing it.", grace_period)
    except OSError as exc:
        logger.warning("Could not signal emulator: %s", exc)

    try:
        process.kill()
        return process.wait(timeout=KILL_WAIT_SECONDS)
    except (OSError, subprocess.TimeoutExpired) as exc:
        logger.warning("Could not kill emulator (pid %s): %s", process.pid, exc)
        return None
