"""Transport seam between the supervisor and the WebSocket library.

The supervisor only needs ``send``/``recv``/``close`` on an open connection;
:func:`websockets_connector` provides them through :mod:`websockets`.
Tests substitute an in-memory connection with the same shape.
"""

from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Protocol

import websockets

if TYPE_CHECKING:
    from .config import SocketModeConfig


class WSTransport(Protocol):
    """Minimal surface of an open WebSocket connection."""

    async def send(self, message: str) -> None: ...

    async def recv(self) -> str | bytes: ...

    async def close(self) -> None: ...


Connector = Callable[[str], Awaitable[WSTransport]]


def websockets_connector(config: "SocketModeConfig") -> Connector:
    """Connector opening connections with :func:`websockets.connect`.

    Protocol-level pings are disabled; liveness is checked with
    application-level ping/pong frames by the supervisor.
    """

    async def _connect(url: str) -> WSTransport:
        return await websockets.connect(
            url,
            ping_interval=None,
            max_size=None,
            open_timeout=config.handshake_timeout,
            close_timeout=config.close_timeout,
        )

    return _connect
