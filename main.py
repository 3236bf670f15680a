"""
main.py – romstream command-line entry point.

Parses arguments, configures logging and runs one StreamingSession.
Exit code 0 on normal or interrupted completion, 1 on any error.
"""

import argparse
import logging
import os
import sys
from pathlib import Path
from typing import List, Optional

from models.session_config import StreamingConfig
from models.system_profile import PROFILES
from services import emulator_service, locale_filter
from services.exceptions import ROMStreamError
from workers.streaming_session import StreamingSession, watch_for_enter

logger = logging.getLogger("romstream")

DEFAULT_GAMES_ROOT = Path.home() / "Games"
LOG_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="romstream",
        description="Stream games from a remote catalogue into an emulator, "
        "keeping the next games downloaded and ready.",
    )
    parser.add_argument("system", choices=sorted(PROFILES), help="system to stream")
    parser.add_argument(
        "catalog_url", nargs="?", default=None,
        help="catalogue URL (archive.org item or HTML directory index)",
    )
    parser.add_argument(
        "--emulator", default=os.environ.get("ROMSTREAM_EMULATOR"),
        help="emulator executable (default: $ROMSTREAM_EMULATOR or a known command on PATH)",
    )
    parser.add_argument(
        "--games-dir", type=Path, default=None,
        help="where prepared games are cached (default: $ROMSTREAM_GAMES_DIR or ~/Games/<SYSTEM>)",
    )
    parser.add_argument(
        "-l", "--locale", type=str.lower, default=None,
        help="region filter: en, jp, eu or * (default: all regions)",
    )
    reset = parser.add_mutually_exclusive_group()
    reset.add_argument(
        "--reset", action="store_true", help="reshuffle the playlist from scratch"
    )
    reset.add_argument(
        "--reset-progress", action="store_true",
        help="restart the saved playlist order from the beginning",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="debug logging")
    return parser


def build_config(args: argparse.Namespace) -> StreamingConfig:
    profile = PROFILES[args.system]
    games_dir = args.games_dir
    if games_dir is None:
        env_dir = os.environ.get("ROMSTREAM_GAMES_DIR")
        games_dir = Path(env_dir) if env_dir else DEFAULT_GAMES_ROOT / profile.key.upper()

    emulator = emulator_service.resolve_emulator(args.emulator, profile.emulator_commands)

    return StreamingConfig(
        profile=profile,
        catalog_url=args.catalog_url or profile.default_catalog_url,
        emulator_path=emulator,
        games_dir=games_dir.expanduser(),
        locale=args.locale,
        force_reset=args.reset,
        reset_progress_only=args.reset_progress,
    )


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format=LOG_FORMAT,
    )
    # httpx logs every request at INFO.
    logging.getLogger("httpx").setLevel(logging.WARNING)

    if not locale_filter.is_valid_locale(args.locale):
        parser.error(f"unknown locale {args.locale!r}; use en, jp, eu or *")

    session: Optional[StreamingSession] = None
    try:
        config = build_config(args)
        session = StreamingSession(config)
        watch_for_enter(session.stop_event)
        session.run()
    except KeyboardInterrupt:
        print("\n\nShutting down...")
        if session is not None:
            session.cancel_event.set()
        return 0
    except ROMStreamError as exc:
        logger.error("%s", exc)
        return 1
    except Exception:  # noqa: BLE001
        logger.exception("Unhandled error")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
