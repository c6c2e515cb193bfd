"""Shared test fixtures and configuration for backend tests."""
import json

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketState

from termchat.auth.service import AccountService, reset_account_service, set_account_service
from termchat.auth.tokens import get_token_store, reset_token_store
from termchat.chat.manager import Connection, SessionManager, reset_session_manager
from termchat.config import AppSettings, reset_config, set_config
from termchat.main import app


class FakeWebSocket:
    """Stands in for a Starlette WebSocket in SessionManager unit tests."""

    def __init__(self) -> None:
        self.client_state = WebSocketState.CONNECTED
        self.application_state = WebSocketState.CONNECTED
        self.sent = []

    async def send_text(self, text: str) -> None:
        self.sent.append(text)


@pytest.fixture(autouse=True)
def isolated_state():
    """Fresh config, room, token table and account store for every test.

    bcrypt runs with the minimum cost factor so the gate tests stay fast.
    """
    set_config(AppSettings())
    reset_session_manager()
    reset_token_store()
    set_account_service(AccountService(secret_key="test-secret", bcrypt_rounds=4))
    yield
    reset_session_manager()
    reset_token_store()
    reset_account_service()
    reset_config()


@pytest.fixture
def api_client():
    """Provide a TestClient for the main FastAPI app.

    Used as a context manager so every WebSocket session shares one event
    loop, as they do under uvicorn.
    """
    with TestClient(app) as client:
        yield client


@pytest.fixture
def join_token():
    """A join token issued straight from the token table."""
    return get_token_store().issue("test-pc").token


@pytest.fixture
def manager():
    return SessionManager()


@pytest.fixture
def connect(manager):
    """Factory: open a fake connection and optionally join it under ``name``.

    Frames queued before the factory returns are discarded so each test
    starts reading from an empty outbox.
    """

    def _connect(name=None):
        connection = manager.open(FakeWebSocket(), {"pc_name": "test-pc"})
        if name is not None:
            manager.join(connection, name)
            drain(connection)
        return connection

    return _connect


def drain(connection: Connection):
    """Pop every queued frame off a connection's outbox, decoded."""
    frames = []
    while not connection.outbox.empty():
        frames.append(json.loads(connection.outbox.get_nowait()))
    return frames


@pytest.fixture(name="drain")
def drain_fixture():
    return drain
