"""Convenience exports for the :mod:`rxsocketmode` package."""

from .delivery import OutboundMessage, OutboundQueue, RateLimiter  # noqa: F401
from .mechanism import (  # noqa: F401
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
from .routing import (  # noqa: F401
    ANY_KIND,
    Envelope,
    EnvelopeKind,
    EnvelopeRouter,
    HandlerRegistry,
    decode_envelope,
)
from .telemetry import configure_metrics, configure_telemetry  # noqa: F401
from .ws import (  # noqa: F401
    ConnectionState,
    ConnectionStats,
    RetryPolicy,
    SendStatus,
    SocketModeClient,
    SocketModeConfig,
)

__all__ = [
    # errors
    "RxException",
    "SendError",
    "NotConnected",
    "TransportFailure",
    "HandshakeTimeout",
    "AuthRejected",
    "ReconnectExhausted",
    "MalformedFrame",
    "HandlerError",

    # delivery
    "RateLimiter",
    "OutboundMessage",
    "OutboundQueue",

    # routing
    "ANY_KIND",
    "Envelope",
    "EnvelopeKind",
    "EnvelopeRouter",
    "HandlerRegistry",
    "decode_envelope",

    # client
    "ConnectionState",
    "ConnectionStats",
    "SendStatus",
    "SocketModeClient",
    "SocketModeConfig",
    "RetryPolicy",

    # telemetry
    "configure_telemetry",
    "configure_metrics",
]
