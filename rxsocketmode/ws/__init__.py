"""WebSocket supervision: configuration, backoff, transport and client."""

from .client import ConnectionState, ConnectionStats, SendStatus, SocketModeClient
from .config import SocketModeConfig
from .retry import BackoffState, RetryPolicy
from .transport import Connector, WSTransport, websockets_connector

__all__ = [
    # config
    "SocketModeConfig",
    "RetryPolicy",
    "BackoffState",
    # transport
    "WSTransport",
    "Connector",
    "websockets_connector",
    # client
    "ConnectionState",
    "ConnectionStats",
    "SendStatus",
    "SocketModeClient",
]
