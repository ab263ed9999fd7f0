# tests/conftest.py
import json
import logging

import pytest

from chat_relay import (
    CallbackPersistenceSink,
    ChatRelay,
    ClientConnection,
    InMemoryDialogRepository,
    InMemorySessionStore,
)


class FakeWebSocket:
    """Records frames sent to it; optionally fails on send."""

    def __init__(self, fail_send: bool = False):
        self.sent = []
        self.closed = None
        self.fail_send = fail_send

    async def send_text(self, data: str):
        if self.fail_send:
            raise ConnectionResetError("peer went away")
        self.sent.append(json.loads(data))

    async def close(self, code: int = 1000, reason: str = ""):
        self.closed = (code, reason)


def php_session(user_id, name="User"):
    """Session blob the way the web application stores it."""
    name_len = len(name.encode("utf-8"))
    return f'User|a:2:{{s:7:"user_id";i:{user_id};s:4:"name";s:{name_len}:"{name}";}}'


@pytest.fixture
def make_connection():
    def _make(fail_send: bool = False) -> ClientConnection:
        return ClientConnection(websocket=FakeWebSocket(fail_send=fail_send), ip_address="127.0.0.1")
    return _make


@pytest.fixture
def session_store():
    store = InMemorySessionStore()
    for user_id, name in ((1, "Alice"), (2, "Bob"), (3, "Carol"), (4, "Dave")):
        store.put(f"PHPREDIS_SESSION:sess-{user_id}", php_session(user_id, name))
    return store


@pytest.fixture
def dialog_repo():
    return InMemoryDialogRepository({42: [1, 2, 3], 7: [1, 4]})


@pytest.fixture
def saved():
    """Collects persistence hook calls."""
    return {"plain": [], "unread": []}


@pytest.fixture
def sink(saved):
    return CallbackPersistenceSink(
        plain_save=lambda message: saved["plain"].append(message),
        unread_save=lambda message, unread: saved["unread"].append((message, list(unread))),
    )


@pytest.fixture
def chat_log():
    log = logging.getLogger("tests.chat_log")
    log.setLevel(logging.INFO)
    return log


@pytest.fixture
def relay(session_store, dialog_repo, sink, chat_log):
    return ChatRelay(session_store, dialog_repo, persistence=sink, chat_log=chat_log)


@pytest.fixture
def connect(relay, make_connection):
    """Open an authenticated connection for a user id."""
    async def _connect(user_id, fail_send: bool = False) -> ClientConnection:
        connection = make_connection(fail_send=fail_send)
        session = await relay.on_open(connection, f"session_id=sess-{user_id}")
        assert session is not None
        return connection
    return _connect
