"""Shared test fixtures for rxsocketmode tests."""

import asyncio
import json

import pytest
from opentelemetry.sdk._logs import LoggerProvider
from websockets.exceptions import ConnectionClosedOK
from websockets.frames import Close

URL = "wss://socketmode.test/link?ticket=1"

HELLO = json.dumps(
    {
        "type": "hello",
        "num_connections": 1,
        "debug_info": {"host": "applink-test"},
        "connection_info": {"app_id": "A1"},
    }
)


def event_frame(envelope_id: str, event_kind: str, **fields) -> str:
    """An events_api envelope whose nested event has type ``event_kind``."""
    return json.dumps(
        {
            "envelope_id": envelope_id,
            "type": "events_api",
            "accepts_response_payload": False,
            "payload": {"event": {"type": event_kind, **fields}},
        }
    )


def _closed_ok() -> ConnectionClosedOK:
    return ConnectionClosedOK(Close(1000, ""), Close(1000, ""), rcvd_then_sent=True)


class FakeTransport:
    """In-memory stand-in for an open WebSocket connection.

    Frames (or exceptions, which ``recv`` raises) are fed into an inbox.
    Everything written with ``send`` lands in :attr:`sent`.
    """

    def __init__(self, frames=(), auto_pong: bool = False):
        self._inbox: asyncio.Queue = asyncio.Queue()
        self.sent: list[str] = []
        self.closed = False
        self.send_error: Exception | None = None
        self.auto_pong = auto_pong
        for frame in frames:
            self.feed(frame)

    def feed(self, frame) -> None:
        self._inbox.put_nowait(frame)

    async def send(self, message: str) -> None:
        if self.closed:
            raise _closed_ok()
        if self.send_error is not None:
            raise self.send_error
        self.sent.append(message)
        if self.auto_pong:
            data = json.loads(message)
            if data.get("type") == "ping":
                self.feed(json.dumps({"type": "pong", "id": data["id"]}))

    async def recv(self):
        if self.closed and self._inbox.empty():
            raise _closed_ok()
        item = await self._inbox.get()
        if isinstance(item, BaseException):
            raise item
        return item

    async def close(self) -> None:
        if not self.closed:
            self.closed = True
            self.feed(_closed_ok())

    def decoded(self) -> list[dict]:
        return [json.loads(m) for m in self.sent]

    def acks(self) -> list[str]:
        return [d["envelope_id"] for d in self.decoded() if set(d) == {"envelope_id"}]

    def messages(self) -> list[dict]:
        return [d for d in self.decoded() if d.get("type") == "message"]


class FakeConnector:
    """Connector returning the queued outcomes in order.

    Each outcome is a :class:`FakeTransport` or an exception to raise. Once
    the outcomes run out every further attempt is refused with OSError.
    """

    def __init__(self, outcomes=()):
        self._outcomes = list(outcomes)
        self.urls: list[str] = []

    @property
    def attempts(self) -> int:
        return len(self.urls)

    async def __call__(self, url: str):
        self.urls.append(url)
        if not self._outcomes:
            raise OSError("connection refused")
        outcome = self._outcomes.pop(0)
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


@pytest.fixture
def logger_provider():
    """A LoggerProvider without processors, so tests stay quiet."""
    return LoggerProvider()
