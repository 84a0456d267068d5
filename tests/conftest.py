"""Shared fixtures for the real-time client tests.

Provides:
- ``FakeSocket`` / ``FakeConnector``: in-memory stand-ins for a websockets connection
- ``make_token``: signed JWT with a chosen expiry
- ``bus``: a fresh EventBus per test
- ``connector``: a FakeConnector
- ``make_manager``: ConnectionManager factory with millisecond timeouts
- ``wait_until``: poll a predicate while letting the event loop run
"""

from __future__ import annotations

import asyncio
import json
import time
from typing import Any, Callable

import jwt
import pytest

from meucuidador.realtime.config import Config, ConnectionConfig, ReconnectConfig
from meucuidador.realtime.connection import ConnectionGuard, ConnectionManager, get_connection_guard
from meucuidador.realtime.credentials import StaticTokenSource
from meucuidador.realtime.events import EventBus

_CLOSED = object()

SIGNING_KEY = "meucuidador-test-signing-key-0123456789"


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


class FakeSocket:
    """Async-iterable socket whose inbound frames are fed by the test."""

    def __init__(self, url: str = "ws://test/ws"):
        self.url = url
        self.sent: list[str] = []
        self.closed = False
        self.close_code: int | None = None
        self.close_reason: str | None = None
        self.send_error: Exception | None = None
        self._incoming: asyncio.Queue = asyncio.Queue()

    # -- server side -------------------------------------------------------

    def feed(self, frame: Any) -> None:
        """Deliver a frame to the client (dicts are JSON-encoded)."""
        self._incoming.put_nowait(json.dumps(frame) if isinstance(frame, dict) else frame)

    def drop(self, code: int | None = None) -> None:
        """Server-side close; ``None`` means no close frame (abnormal)."""
        if self.closed:
            return
        self.closed = True
        self.close_code = code
        self._incoming.put_nowait(_CLOSED)

    # -- client side -------------------------------------------------------

    async def send(self, text: str) -> None:
        if self.send_error is not None:
            raise self.send_error
        self.sent.append(text)

    async def close(self, code: int = 1000, reason: str = "") -> None:
        if self.closed:
            return
        self.closed = True
        self.close_code = code
        self.close_reason = reason
        self._incoming.put_nowait(_CLOSED)

    def __aiter__(self):
        return self

    async def __anext__(self) -> str:
        item = await self._incoming.get()
        if item is _CLOSED:
            raise StopAsyncIteration
        return item

    @property
    def sent_frames(self) -> list[dict]:
        return [json.loads(text) for text in self.sent]


class FakeConnector:
    """Connector returning FakeSockets; can be told to fail."""

    def __init__(self):
        self.sockets: list[FakeSocket] = []
        self.urls: list[str] = []
        self.fail_remaining = 0
        self.broken_sends = 0  # next N sockets fail every send

    async def __call__(self, url: str) -> FakeSocket:
        self.urls.append(url)
        if self.fail_remaining > 0:
            self.fail_remaining -= 1
            raise OSError("connection refused")
        ws = FakeSocket(url)
        if self.broken_sends > 0:
            self.broken_sends -= 1
            ws.send_error = OSError("broken pipe")
        self.sockets.append(ws)
        return ws

    @property
    def calls(self) -> int:
        return len(self.urls)

    @property
    def latest(self) -> FakeSocket:
        return self.sockets[-1]

    @property
    def open_count(self) -> int:
        return sum(1 for ws in self.sockets if not ws.closed)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def make_token(expires_in: float = 3600, **claims: Any) -> str:
    payload = {"userId": 3, "exp": int(time.time() + expires_in), **claims}
    return jwt.encode(payload, SIGNING_KEY, algorithm="HS256")


def fast_config(
    auth_timeout: float = 0.2,
    base_delay: float = 0.01,
    max_delay: float = 0.05,
    max_attempts: int = 5,
) -> Config:
    return Config(
        connection=ConnectionConfig(page_url="http://test", auth_timeout=auth_timeout),
        reconnect=ReconnectConfig(
            base_delay=base_delay,
            max_delay=max_delay,
            max_attempts=max_attempts,
        ),
    )


async def wait_until(predicate: Callable[[], bool], timeout: float = 1.0) -> None:
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(0.001)


async def settle(rounds: int = 10) -> None:
    for _ in range(rounds):
        await asyncio.sleep(0)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _release_process_guard():
    get_connection_guard().reset()
    yield
    get_connection_guard().reset()


@pytest.fixture
def bus() -> EventBus:
    return EventBus()


@pytest.fixture
def connector() -> FakeConnector:
    return FakeConnector()


@pytest.fixture
def token() -> str:
    return make_token()


@pytest.fixture
async def make_manager(bus, connector, token):
    """Factory for managers wired to the fake connector; disconnects them afterwards."""
    created: list[ConnectionManager] = []

    def factory(
        config: Config | None = None,
        token_source: StaticTokenSource | None = None,
        guard: ConnectionGuard | None = None,
        **kwargs: Any,
    ) -> ConnectionManager:
        manager = ConnectionManager(
            token_source=token_source or StaticTokenSource(token),
            config=config or fast_config(),
            bus=bus,
            connector=kwargs.pop("connector", connector),
            guard=guard or ConnectionGuard(),
            **kwargs,
        )
        created.append(manager)
        return manager

    yield factory

    for manager in created:
        await manager.aclose()


async def authenticate(manager: ConnectionManager, connector: FakeConnector) -> FakeSocket:
    """Drive a manager through connect -> auth_success."""
    manager.connect(True)
    await wait_until(lambda: manager.state.value == "awaiting_auth")
    ws = connector.latest
    ws.feed({"type": "auth_success", "message": "ok"})
    await wait_until(manager.is_connected)
    return ws
