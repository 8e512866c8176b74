import os
import tempfile

# Must be set before anything under app/ is imported.
_TMP_DIR = tempfile.mkdtemp(prefix="nearby-chat-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{_TMP_DIR}/app.db"
os.environ["LOG_FILE"] = ""
os.environ["LOG_LEVEL"] = "INFO"
os.environ["AUTH_VERIFY_MODE"] = "hs256"
os.environ["AUTH_JWT_SECRET"] = "test-secret"
os.environ["CHAT_OPEN_WINDOWS"] = "6-9,11-15,17-23"
os.environ["CHAT_RADIUS_METERS"] = "3000"
os.environ["HISTORY_RADIUS_METERS"] = "500"

import pytest
from jose import jwt
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from app.core.init_db import init_db
from app.services.location_store import LocationStore
from app.services.message_store import MessageStore


class FakeChannel:
    """Stands in for a WebSocket: records every frame pushed to it."""

    def __init__(self):
        self.sent = []

    async def send_json(self, data):
        self.sent.append(data)

    def events(self, name):
        return [f["data"] for f in self.sent if f["event"] == name]


class BrokenChannel:
    async def send_json(self, data):
        raise RuntimeError("socket closed")


@pytest.fixture
def session_factory(tmp_path):
    engine = create_engine(
        f"sqlite:///{tmp_path}/chat.db",
        connect_args={"check_same_thread": False},
    )
    init_db(engine)
    yield sessionmaker(bind=engine, autoflush=False, autocommit=False)
    engine.dispose()


@pytest.fixture
def broken_session_factory():
    engine = create_engine("sqlite:////nonexistent-nearby-chat-dir/chat.db")
    yield sessionmaker(bind=engine)
    engine.dispose()


@pytest.fixture
def location_store(session_factory):
    return LocationStore(session_factory)


@pytest.fixture
def message_store(session_factory):
    return MessageStore(session_factory)


@pytest.fixture
def make_token():
    def _make(sub: str, **claims) -> str:
        return jwt.encode({"sub": sub, **claims}, "test-secret", algorithm="HS256")
    return _make
