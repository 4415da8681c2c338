import io
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient
from reportlab.pdfgen import canvas

from config import Settings
from main import create_app
from modules.signing.services import DocumentStore, RetentionSweeper, SessionRegistry, SigningProtocol


class FakeClock:
    def __init__(self, start=datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


class RecordingScheduler:
    def __init__(self):
        self.scheduled = []

    def __call__(self, session_id):
        self.scheduled.append(session_id)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(tmp_path):
    return DocumentStore(
        max_size=1024 * 1024,
        directory=str(tmp_path / "uploads"),
        spill_threshold=4096,
    )


@pytest.fixture
def registry(clock):
    return SessionRegistry(clock)


@pytest.fixture
def removals():
    return RecordingScheduler()


@pytest.fixture
def protocol(registry, store, removals):
    return SigningProtocol(registry, store, schedule_removal=removals)


@pytest.fixture
def sweeper(registry, store, clock):
    return RetentionSweeper(
        registry,
        store,
        session_ttl=timedelta(hours=1),
        prestorage_ttl=timedelta(minutes=30),
        grace=timedelta(seconds=10),
        clock=clock,
    )


@pytest.fixture
def settings(tmp_path):
    return Settings(
        STORAGE_DIR=str(tmp_path / "uploads"),
        MAX_PAYLOAD_MB=1,
        SPILL_THRESHOLD_KB=4,
        DOWNLOAD_GRACE_SECONDS=10,
        LOG_LEVEL="DEBUG",
    )


@pytest.fixture
def app(settings, clock):
    return create_app(settings, clock)


@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c


@pytest.fixture(scope="session")
def example_pdf():
    buffer = io.BytesIO()
    c = canvas.Canvas(buffer)
    c.drawString(100, 750, "Este es un PDF de prueba para firmar.")
    c.save()
    buffer.seek(0)
    return buffer.read()
