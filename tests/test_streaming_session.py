import io
import json
import random
import sys
import threading
import zipfile
from pathlib import Path

import pytest

from fakes import BASE_URL
from services.exceptions import CatalogFetchError, EmulatorNotFoundError
from workers.streaming_session import StreamingSession, watch_for_enter


def zip_bytes(members: dict) -> bytes:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as zf:
        for name, data in members.items():
            zf.writestr(name, data)
    return buffer.getvalue()


class CancelAfter(io.StringIO):
    """Console stand-in that ends the session once *games* titles were shown."""

    def __init__(self, cancel: threading.Event, games: int) -> None:
        super().__init__()
        self._cancel = cancel
        self._marker = f"Game #{games}"

    def write(self, text):
        written = super().write(text)
        if self._marker in self.getvalue():
            self._cancel.set()
        return written


def run_with_deadline(session, seconds=20.0):
    """Run *session*, cancelling it if it has not finished after *seconds*."""
    timer = threading.Timer(seconds, session.cancel_event.set)
    timer.daemon = True
    timer.start()
    try:
        return session.run()
    finally:
        timer.cancel()


@pytest.fixture
def catalogue(fake_archive):
    fake_archive.metadata = {
        "files": [
            {"name": "Tekken 3 (USA).zip", "size": "100"},
            {"name": "Ape Escape (USA).zip", "size": "100"},
            {"name": "psx-collection_archive.torrent"},
        ]
    }
    # The "cue" is a valid Python script so the interpreter can stand in for the emulator.
    for name in ("Tekken 3 (USA).zip", "Ape Escape (USA).zip"):
        fake_archive.files[name] = zip_bytes({"disc.cue": b"pass\n"})
    return fake_archive


def test_plays_games_and_persists_progress(make_config, catalogue):
    config = make_config(emulator_path=Path(sys.executable))
    cancel = threading.Event()
    out = CancelAfter(cancel, games=2)

    session = StreamingSession(
        config, transport=catalogue.transport(), rng=random.Random(1),
        cancel_event=cancel, out=out,
    )
    played = run_with_deadline(session)

    assert played >= 2
    text = out.getvalue()
    assert "Found 2 games available for streaming" in text
    assert "Session ended." in text

    state = json.loads(config.state_path.read_text())
    assert sorted(state["shuffledOrder"]) == ["Ape Escape (USA).zip", "Tekken 3 (USA).zip"]
    assert state["cursor"] >= 1
    assert not session.worker.is_alive()
    assert (config.games_dir / "Tekken 3" / "disc.cue").exists()
    assert list(config.temp_dir.iterdir()) == []


def test_missing_emulator_is_fatal(make_config, tmp_path):
    config = make_config(emulator_path=tmp_path / "nowhere")
    with pytest.raises(EmulatorNotFoundError):
        StreamingSession(config, out=io.StringIO()).run()


def test_catalogue_failure_is_fatal(make_config, fake_archive):
    session = StreamingSession(make_config(), transport=fake_archive.transport(), out=io.StringIO())
    with pytest.raises(CatalogFetchError):
        session.run()


def test_empty_catalogue(make_config, fake_archive):
    fake_archive.metadata = {"files": [{"name": "readme.txt"}]}
    out = io.StringIO()
    session = StreamingSession(make_config(), transport=fake_archive.transport(), out=out)

    assert session.run() == 0
    assert "No games found!" in out.getvalue()


def test_resume_message(make_config, catalogue):
    config = make_config()
    config.games_dir.mkdir(parents=True)
    config.state_path.write_text(json.dumps({
        "shuffledOrder": ["Tekken 3 (USA).zip", "Ape Escape (USA).zip"],
        "cursor": 1,
        "createdAt": "2024-01-01T00:00:00",
        "lastPlayed": "Tekken 3 (USA).zip",
    }))
    session = StreamingSession(config, transport=catalogue.transport(), out=io.StringIO())
    session.cancel_event.set()

    session.run()

    text = session._out.getvalue()
    assert "Resuming: 1/2 games played" in text
    assert "1 games left this round, starting with Ape Escape" in text


def test_enter_sets_stop_event():
    stop = threading.Event()
    thread = watch_for_enter(stop, io.StringIO("\n"))
    assert stop.wait(5)
    thread.join(5)
    assert not thread.is_alive()


def test_game_numbers_restart_each_session(make_config, catalogue):
    config = make_config(emulator_path=Path(sys.executable))
    config.games_dir.mkdir(parents=True)
    config.state_path.write_text(json.dumps({
        "shuffledOrder": ["Tekken 3 (USA).zip", "Ape Escape (USA).zip"],
        "cursor": 1,
        "createdAt": "2024-01-01T00:00:00",
        "lastPlayed": "Tekken 3 (USA).zip",
    }))
    cancel = threading.Event()
    out = CancelAfter(cancel, games=1)
    session = StreamingSession(config, transport=catalogue.transport(), cancel_event=cancel, out=out)

    played = run_with_deadline(session)

    text = out.getvalue()
    assert played == 1
    assert "Game #1" in text
    assert "Game #2" not in text
    assert "Games played this session: 1" in text
