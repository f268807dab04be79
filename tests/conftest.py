from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

from app.core.config import Settings
from app.core.database import get_session
from app.main import app
from app.models.storage import StorageSlot  # noqa: F401 registers the table
from app.storage import ListStore, MemoryBackend, watch_history_config, watch_later_config


class TickingClock:
    """Returns a later UTC time on every call."""

    def __init__(self, start: datetime = datetime(2024, 1, 1, tzinfo=timezone.utc)):
        self.now = start

    def __call__(self) -> datetime:
        self.now += timedelta(seconds=1)
        return self.now


@pytest.fixture
def settings():
    return Settings(_env_file=None)


@pytest.fixture
def clock():
    return TickingClock()


@pytest.fixture
def slots():
    """Key-value substrate shared by the store fixtures."""
    return MemoryBackend()


@pytest.fixture
def watch_later(settings, slots, clock):
    return ListStore(watch_later_config(settings), [slots], clock=clock)


@pytest.fixture
def history(settings, slots, clock):
    return ListStore(watch_history_config(settings), [slots], clock=clock)


@pytest.fixture
def engine():
    """In-memory SQLite engine with the storage tables created."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session(engine):
    with Session(engine) as session:
        yield session


@pytest.fixture
def client(engine):
    """TestClient whose key-value slots live in the in-memory database."""

    def override_session():
        with Session(engine) as session:
            yield session

    app.dependency_overrides[get_session] = override_session
    yield TestClient(app)
    app.dependency_overrides.clear()
