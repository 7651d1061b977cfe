"""Inbound side: envelope codec, handler registry and router."""

from .envelope import (
    Envelope,
    EnvelopeKind,
    decode_envelope,
    encode_ack,
    encode_outbound,
    encode_ping,
    encode_pong,
)
from .registry import ANY_KIND, Handler, HandlerRegistry
from .router import EnvelopeRouter

__all__ = [
    # envelope
    "Envelope",
    "EnvelopeKind",
    "decode_envelope",
    "encode_ack",
    "encode_ping",
    "encode_pong",
    "encode_outbound",
    # registry
    "ANY_KIND",
    "Handler",
    "HandlerRegistry",
    # router
    "EnvelopeRouter",
]
