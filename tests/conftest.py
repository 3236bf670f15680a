import threading

import pytest

from fakes import BASE_URL, FakeArchive
from models.session_config import StreamingConfig
from models.system_profile import PSX
from services import download_service, storage_service
from services.http_session import ArchiveSession


@pytest.fixture
def fake_archive() -> FakeArchive:
    return FakeArchive()


@pytest.fixture
def session(fake_archive):
    with ArchiveSession(BASE_URL, transport=fake_archive.transport()) as s:
        yield s


@pytest.fixture(autouse=True)
def no_backoff(monkeypatch):
    monkeypatch.setattr(download_service, "RETRY_BACKOFF_SECONDS", 0.0)
    monkeypatch.setattr(storage_service, "DISK_SAFETY_BUFFER_BYTES", 0)


@pytest.fixture
def make_config(tmp_path):
    def _make(**overrides) -> StreamingConfig:
        emulator = tmp_path / "emulator"
        emulator.write_text("")
        values = dict(
            profile=PSX,
            catalog_url=BASE_URL,
            emulator_path=emulator,
            games_dir=tmp_path / "games",
            prepare_interval=0.01,
            error_backoff=0.01,
            poll_interval=0.01,
            process_poll_interval=0.01,
            close_grace_period=2.0,
        )
        values.update(overrides)
        return StreamingConfig(**values)

    return _make


@pytest.fixture
def cancel_event():
    event = threading.Event()
    yield event
    event.set()
