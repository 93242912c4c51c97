import asyncio
import json
import time

import pytest
from fastapi.testclient import TestClient

from relay.gateway import Gateway
from relay.sessions import SessionRegistry
from server import create_app


class FakeConnection:
    """Stands in for a websocket connection; records every delivered frame."""

    def __init__(self):
        self.frames = []
        self.closed = False

    def deliver(self, frame):
        if self.closed:
            raise ConnectionError("closed")
        self.frames.append(frame)

    def types(self):
        return [f["type"] for f in self.frames]

    def of_type(self, frame_type):
        return [f for f in self.frames if f["type"] == frame_type]

    def clear(self):
        self.frames.clear()


def send(gateway, connection, **frame):
    asyncio.run(gateway.handle_raw(connection, json.dumps(frame)))


def wait_until(predicate, timeout=2.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return False


@pytest.fixture
def registry():
    return SessionRegistry()


@pytest.fixture
def gateway():
    return Gateway()


@pytest.fixture
def connect(gateway):
    """Join a fake connection to the gateway and return it with its user id."""

    def _connect(username, room_id=None, **extra):
        conn = FakeConnection()
        frame = {"type": "join", "username": username, **extra}
        if room_id:
            frame["roomId"] = room_id
        send(gateway, conn, **frame)
        user_id = conn.of_type("connection_established")[0]["userId"]
        return conn, user_id

    return _connect


@pytest.fixture
def client():
    with TestClient(create_app()) as c:
        yield c
