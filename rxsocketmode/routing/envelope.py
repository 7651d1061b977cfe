"""Envelope decoding and wire encoding.

Inbound frames are JSON objects keyed by ``type``:

    {"type": "hello", "num_connections": 1, "connection_info": {...}}
    {"type": "events_api", "envelope_id": "abc-1", "payload": {...}}
    {"type": "disconnect", "reason": "refresh_requested"}
    {"type": "ping", "id": 7}  /  {"type": "pong", "id": 7}

Any frame carrying a non-empty ``envelope_id`` and a type other than the
control types is an event envelope and must be acknowledged with
``{"envelope_id": "<id>"}``.
"""

import json
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from ..mechanism import MalformedFrame
from ..utils import truncate

HELLO_TYPE = "hello"
DISCONNECT_TYPE = "disconnect"
PING_TYPE = "ping"
PONG_TYPE = "pong"
EVENTS_API_TYPE = "events_api"


class EnvelopeKind(Enum):
    """Closed set of envelope kinds the router understands."""

    HELLO = "hello"
    EVENT = "event"
    DISCONNECT = "disconnect"
    ACK = "ack"
    PING_CONTROL = "ping_control"


@dataclass(frozen=True)
class Envelope:
    """A single decoded inbound unit.

    Attributes:
        kind: Envelope kind.
        type: Raw wire ``type`` (``"events_api"``, ``"slash_commands"``...).
            Empty for bare acknowledgments.
        envelope_id: Correlation id; always non-empty for EVENT envelopes.
        payload: Opaque payload. For control frames this is the whole frame.
        received_at: Wall-clock decode time.
    """

    kind: EnvelopeKind
    type: str
    envelope_id: str | None = None
    payload: Any = None
    received_at: float = field(default_factory=time.time)
    raw: dict = field(default_factory=dict, repr=False, compare=False)

    @property
    def event_kind(self) -> str:
        """Routing key: nested ``payload.event.type`` for events_api, else ``type``."""
        if self.type == EVENTS_API_TYPE and isinstance(self.payload, dict):
            event = self.payload.get("event")
            if isinstance(event, dict):
                inner = event.get("type")
                if isinstance(inner, str) and inner:
                    return inner
        return self.type

    @property
    def ping_id(self) -> Any:
        return self.raw.get("id")

    @property
    def is_pong(self) -> bool:
        return self.type == PONG_TYPE

    @property
    def reason(self) -> str | None:
        return self.raw.get("reason")

    @property
    def retry_attempt(self) -> int:
        return int(self.raw.get("retry_attempt") or 0)

    @property
    def retry_reason(self) -> str:
        return self.raw.get("retry_reason") or ""

    @property
    def accepts_response_payload(self) -> bool:
        return bool(self.raw.get("accepts_response_payload", False))


def decode_envelope(raw: str | bytes, source: str = "decode_envelope") -> Envelope:
    """Decode one inbound frame.

    Raises:
        MalformedFrame: If the frame is not a JSON object, has no usable
            ``type``, or is an event without an ``envelope_id``.
    """
    try:
        data = json.loads(raw)
    except (TypeError, ValueError) as e:
        raise MalformedFrame(e, source=source, note="invalid JSON", raw=raw) from e

    if not isinstance(data, dict):
        raise MalformedFrame(
            ValueError(f"expected a JSON object, got {type(data).__name__}"),
            source=source,
            note="invalid frame",
            raw=raw,
        )

    frame_type = data.get("type")
    envelope_id = data.get("envelope_id")
    if envelope_id is not None and not isinstance(envelope_id, str):
        raise MalformedFrame(
            ValueError(f"envelope_id must be a string, got {envelope_id!r}"),
            source=source,
            note="invalid envelope_id",
            raw=raw,
        )

    if frame_type is None:
        # A frame with only an envelope_id is an acknowledgment echo
        if envelope_id:
            return Envelope(
                kind=EnvelopeKind.ACK, type="", envelope_id=envelope_id, raw=data
            )
        raise MalformedFrame(
            ValueError("missing 'type'"),
            source=source,
            note=f"invalid frame {truncate(raw)}",
            raw=raw,
        )
    if not isinstance(frame_type, str) or not frame_type:
        raise MalformedFrame(
            ValueError(f"'type' must be a non-empty string, got {frame_type!r}"),
            source=source,
            note="invalid frame",
            raw=raw,
        )

    if frame_type == HELLO_TYPE:
        return Envelope(kind=EnvelopeKind.HELLO, type=frame_type, payload=data, raw=data)
    if frame_type == DISCONNECT_TYPE:
        return Envelope(
            kind=EnvelopeKind.DISCONNECT, type=frame_type, payload=data, raw=data
        )
    if frame_type in (PING_TYPE, PONG_TYPE):
        return Envelope(
            kind=EnvelopeKind.PING_CONTROL, type=frame_type, payload=data, raw=data
        )

    if not envelope_id:
        raise MalformedFrame(
            ValueError(f"'{frame_type}' frame without envelope_id"),
            source=source,
            note="unknown or unacknowledgeable envelope",
            raw=raw,
        )
    return Envelope(
        kind=EnvelopeKind.EVENT,
        type=frame_type,
        envelope_id=envelope_id,
        payload=data.get("payload"),
        raw=data,
    )


def encode_ack(envelope_id: str) -> str:
    """Acknowledgment frame echoing ``envelope_id``."""
    if not envelope_id:
        raise ValueError("envelope_id must be non-empty")
    return json.dumps({"envelope_id": envelope_id})


def encode_ping(ping_id: int) -> str:
    return json.dumps({"type": PING_TYPE, "id": ping_id})


def encode_pong(ping_id: Any) -> str:
    return json.dumps({"type": PONG_TYPE, "id": ping_id})


def encode_outbound(destination: str, body: Any) -> str:
    """Wire frame for an outbound message.

    String bodies become ``{"type": "message", "channel": ..., "text": ...}``;
    mapping bodies are merged over ``{"type": "message", "channel": ...}``.
    """
    frame: dict[str, Any] = {"type": "message", "channel": destination}
    if isinstance(body, dict):
        frame.update(body)
        frame["channel"] = destination
    else:
        frame["text"] = str(body)
    return json.dumps(frame)
