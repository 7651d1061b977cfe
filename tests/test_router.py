"""Tests for rxsocketmode.routing.router - ack, dispatch and control frames."""

import asyncio
import json
from unittest.mock import MagicMock

import pytest

from conftest import HELLO, event_frame
from rxsocketmode import EnvelopeRouter, HandlerError, HandlerRegistry, MalformedFrame
from rxsocketmode.mechanism import TransportFailure
from rxsocketmode.telemetry import OTelLogger


class Wire:
    """Collects frames written by the router."""

    def __init__(self, fail: Exception | None = None):
        self.frames: list[dict] = []
        self.fail = fail

    async def __call__(self, frame: str) -> None:
        if self.fail is not None:
            raise self.fail
        self.frames.append(json.loads(frame))


def make_router(registry=None, wire=None, **kwargs):
    registry = registry if registry is not None else HandlerRegistry()
    wire = wire if wire is not None else Wire()
    logger = OTelLogger(MagicMock(), source="test")
    return EnvelopeRouter(registry, wire, logger, **kwargs), registry, wire


def test_event_acked_before_handlers_run():
    router, registry, wire = make_router()
    order = []
    registry.register_handler("message", lambda p: order.append(("handler", len(wire.frames))))

    asyncio.run(router.handle_frame(event_frame("abc-1", "message")))

    assert wire.frames == [{"envelope_id": "abc-1"}]
    assert order == [("handler", 1)]
    assert router.acks_sent == 1


def test_sync_and_async_handlers_in_registration_order():
    router, registry, _ = make_router()
    order = []

    async def first(payload):
        await asyncio.sleep(0)
        order.append("async")

    registry.register_handler("message", first)
    registry.register_handler("message", lambda p: order.append("sync"))

    asyncio.run(router.handle_frame(event_frame("e1", "message")))

    assert order == ["async", "sync"]


def test_wildcard_and_envelope_type_handlers():
    router, registry, _ = make_router()
    seen = []
    registry.register_handler("*", lambda p: seen.append("any"))
    registry.register_handler("events_api", lambda p: seen.append("type"))
    registry.register_handler("app_mention", lambda p: seen.append("kind"))

    asyncio.run(router.handle_frame(event_frame("e1", "app_mention")))

    assert seen == ["type", "kind", "any"]


def test_non_events_api_envelope_routes_by_type():
    router, registry, wire = make_router()
    seen = []
    registry.register_handler("slash_commands", seen.append)
    frame = json.dumps(
        {"envelope_id": "s1", "type": "slash_commands", "payload": {"command": "/go"}}
    )

    asyncio.run(router.handle_frame(frame))

    assert seen == [{"command": "/go"}]
    assert wire.frames == [{"envelope_id": "s1"}]


def test_unhandled_event_is_still_acked():
    router, _, wire = make_router()

    asyncio.run(router.handle_frame(event_frame("e1", "reaction_added")))

    assert wire.frames == [{"envelope_id": "e1"}]


def test_handler_exception_reported_and_isolated():
    router, registry, _ = make_router()
    errors = []
    router.errors.subscribe(errors.append)
    seen = []

    async def broken(payload):
        raise KeyError("missing")

    registry.register_handler("message", broken)
    registry.register_handler("message", lambda p: seen.append(p))

    asyncio.run(router.handle_frame(event_frame("e1", "message")))

    assert len(seen) == 1
    assert len(errors) == 1
    assert isinstance(errors[0], HandlerError)
    assert isinstance(errors[0].exception, KeyError)
    assert errors[0].envelope_id == "e1"


def test_ack_failure_propagates_and_skips_handlers():
    wire = Wire(fail=TransportFailure(OSError("closed"), source="test"))
    router, registry, _ = make_router(wire=wire)
    called = []
    registry.register_handler("message", called.append)

    with pytest.raises(TransportFailure):
        asyncio.run(router.handle_frame(event_frame("e1", "message")))

    assert called == []
    assert router.acks_sent == 0


def test_malformed_frame_dropped():
    router, _, wire = make_router()
    errors = []
    router.errors.subscribe(errors.append)

    result = asyncio.run(router.handle_frame(b"\xff\xfe"))

    assert result is None
    assert wire.frames == []
    assert isinstance(errors[0], MalformedFrame)


def test_ping_answered_with_matching_pong():
    router, _, wire = make_router()

    asyncio.run(router.handle_frame(json.dumps({"type": "ping", "id": 42})))

    assert wire.frames == [{"type": "pong", "id": 42}]


def test_pong_forwarded():
    on_pong = MagicMock()
    router, _, wire = make_router(on_pong=on_pong)

    asyncio.run(router.handle_frame(json.dumps({"type": "pong", "id": 3})))

    assert wire.frames == []
    assert on_pong.call_args[0][0].ping_id == 3


def test_disconnect_forwarded_without_ack():
    on_disconnect = MagicMock()
    router, _, wire = make_router(on_disconnect=on_disconnect)

    asyncio.run(
        router.handle_frame(json.dumps({"type": "disconnect", "reason": "warning"}))
    )

    assert wire.frames == []
    assert on_disconnect.call_args[0][0].reason == "warning"


def test_hello_recorded_not_acked():
    router, _, wire = make_router()

    asyncio.run(router.handle_frame(HELLO))

    assert wire.frames == []
    assert router.connection_info["num_connections"] == 1
    assert router.connection_info["connection_info"] == {"app_id": "A1"}


def test_ack_echo_ignored():
    router, _, wire = make_router()
    envelopes = []
    router.envelopes.subscribe(envelopes.append)

    asyncio.run(router.handle_frame(json.dumps({"envelope_id": "x"})))

    assert wire.frames == []
    assert envelopes[0].envelope_id == "x"
    assert router.envelopes_received == 1


def test_hello_with_non_mapping_metadata():
    router, _, _ = make_router()
    frame = json.dumps(
        {"type": "hello", "debug_info": "applink-7", "connection_info": ["x"]}
    )

    envelope = asyncio.run(router.handle_frame(frame))

    assert envelope is not None
    assert router.connection_info["debug_info"] == {}
    assert router.connection_info["connection_info"] == {}
