"""Shared test fixtures and configuration for backend tests."""
import pytest
from fastapi.testclient import TestClient

from devtea.chat.membership import MembershipManager
from devtea.chat.messages import MessageEngine
from devtea.chat.store import ConversationStore
from devtea.config import AppSettings
from devtea.main import create_app


class FakeClock:
    """Manually advanced millisecond clock for the store."""

    def __init__(self, start: int = 1_700_000_000_000):
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += int(seconds * 1000)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(clock):
    """A seeded store driven by the fake clock."""
    return ConversationStore(clock=clock)


@pytest.fixture
def membership(store):
    return MembershipManager(store)


@pytest.fixture
def engine(store, membership):
    return MessageEngine(store, membership)


@pytest.fixture
def app():
    """A fresh application with its own in-memory state."""
    return create_app(AppSettings())


@pytest.fixture
def api_client(app):
    """Provide a TestClient bound to a fresh app."""
    return TestClient(app)


@pytest.fixture
def command(api_client):
    """Post one command to the command endpoint and return the response."""
    def _post(type_, data=None, user_id=None):
        return api_client.post(
            "/api/websocket",
            json={"type": type_, "data": data or {}, "userId": user_id},
        )
    return _post
