from datetime import datetime, timedelta

import pytest
from fastapi import FastAPI
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from election.api import api_router
from election.api.election_routes import get_clock
from election.api.websocket_routes import get_websocket_manager
from election.core.database import get_db, init_db
from election.services.election_service import ElectionService
from election.services.websocket_service import WebSocketManager

ORGANIZER = "0xOrganizer"
OUTSIDER = "0xOutsider"


class FakeClock:
    """Manually advanced clock returning naive UTC datetimes."""

    def __init__(self, start=datetime(2024, 1, 1, 12, 0, 0)):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += timedelta(seconds=seconds)


class RecordingManager:
    """Stands in for the WebSocket manager and keeps every broadcast."""

    def __init__(self):
        self.messages = []

    async def broadcast_to_election(self, message, election_id):
        self.messages.append((election_id, message))


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def recorder():
    return RecordingManager()


@pytest.fixture
def service(db, clock, recorder):
    return ElectionService(db, recorder, clock)


@pytest.fixture
def ws_manager():
    return WebSocketManager()


@pytest.fixture
def app(session_factory, clock, ws_manager):
    app = FastAPI()
    app.include_router(api_router, prefix="/api")

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_clock] = lambda: clock
    app.dependency_overrides[get_websocket_manager] = lambda: ws_manager
    return app
