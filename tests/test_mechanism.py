"""Tests for rxsocketmode.mechanism and rxsocketmode.utils."""

import pytest

from rxsocketmode import (
    AuthRejected,
    HandlerError,
    HandshakeTimeout,
    MalformedFrame,
    NotConnected,
    ReconnectExhausted,
    RxException,
    SendError,
    TransportFailure,
)
from rxsocketmode.utils import get_full_error_info, get_short_error_info, truncate

# =============================================================================
# Error taxonomy
# =============================================================================


def test_rx_exception_message():
    e = RxException(ValueError("bad"), source="Client", note="connect")
    assert str(e) == "<Client> connect: bad"
    assert isinstance(e.exception, ValueError)


@pytest.mark.parametrize("cls", [NotConnected, TransportFailure, HandshakeTimeout])
def test_send_errors_share_a_base(cls):
    assert issubclass(cls, SendError)


def test_handshake_timeout_is_retryable_transport_failure():
    assert issubclass(HandshakeTimeout, TransportFailure)


@pytest.mark.parametrize("cls", [AuthRejected, ReconnectExhausted, MalformedFrame])
def test_fatal_and_frame_errors_are_not_send_errors(cls):
    assert not issubclass(cls, SendError)
    assert issubclass(cls, RxException)


def test_error_payloads():
    assert ReconnectExhausted(OSError(), attempts=4).attempts == 4
    assert MalformedFrame(ValueError(), raw="{").raw == "{"
    err = HandlerError(KeyError("k"), event_kind="message", envelope_id="e1")
    assert (err.event_kind, err.envelope_id) == ("message", "e1")


# =============================================================================
# utils
# =============================================================================


def test_short_error_info():
    assert get_short_error_info(ValueError("oops")) == "ValueError: oops"


def test_full_error_info_contains_traceback():
    try:
        raise RuntimeError("deep")
    except RuntimeError as e:
        info = get_full_error_info(e)
    assert "Traceback" in info
    assert "RuntimeError: deep" in info


def test_truncate():
    assert truncate("short") == "short"
    assert truncate("x" * 130, limit=120) == "x" * 120 + "...(+10 chars)"
    assert truncate(b"\xffabc") == "�abc"
