"""Client configuration.

The values are produced by an external loader and handed to the client as
one frozen :class:`SocketModeConfig`. Durations are in seconds.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field, fields
from typing import Any

from .retry import RetryPolicy

_RETRY_KEYS = {
    "max_reconnect_attempts": "max_retries",
    "base_delay": "base_delay",
    "max_delay": "max_delay",
    "backoff_factor": "backoff_factor",
    "jitter": "jitter",
}


@dataclass(frozen=True)
class SocketModeConfig:
    """Typed Socket Mode client configuration.

    Attributes:
        ping_interval: Seconds between keepalive pings.
        pong_timeout: Seconds to wait for the matching pong.
        handshake_timeout: Seconds to wait for the hello envelope.
        receive_timeout: Max seconds without any inbound frame. None relies
            on the keepalive alone.
        send_timeout: Max seconds a single transport write may take.
        close_timeout: Max seconds to wait for a transport close.
        max_burst: Sends per destination allowed within one rate window.
        rate_window: Length of a rate window in seconds.
        flush_interval: Tick of the keepalive/flush task.
        buffer_while_disconnected: Queue sends made while disconnected
            instead of raising NotConnected.
        retry_policy: Reconnection backoff.
    """

    ping_interval: float = 30.0
    pong_timeout: float = 10.0
    handshake_timeout: float = 10.0
    receive_timeout: float | None = None
    send_timeout: float = 5.0
    close_timeout: float = 1.0
    max_burst: int = 5
    rate_window: float = 1.0
    flush_interval: float = 0.5
    buffer_while_disconnected: bool = False
    retry_policy: RetryPolicy = field(default_factory=RetryPolicy)

    def __post_init__(self):
        for name in (
            "ping_interval",
            "pong_timeout",
            "handshake_timeout",
            "send_timeout",
            "close_timeout",
            "rate_window",
            "flush_interval",
        ):
            value = getattr(self, name)
            if value <= 0:
                raise ValueError(f"{name} must be > 0, got {value}")
        if self.receive_timeout is not None and self.receive_timeout <= 0:
            raise ValueError(
                f"receive_timeout must be > 0 or None, got {self.receive_timeout}"
            )
        if self.max_burst < 1:
            raise ValueError(f"max_burst must be >= 1, got {self.max_burst}")

    @classmethod
    def from_mapping(cls, values: Mapping[str, Any]) -> "SocketModeConfig":
        """Build a config from a flat mapping.

        Backoff keys (``max_reconnect_attempts``, ``base_delay``,
        ``max_delay``, ``backoff_factor``, ``jitter``) are folded into the
        retry policy; every other key must name a field.

        Raises:
            ValueError: On unknown keys or invalid values.
        """
        own = {f.name for f in fields(cls)} - {"retry_policy"}
        retry_kwargs: dict[str, Any] = {}
        kwargs: dict[str, Any] = {}
        for key, value in values.items():
            if key in _RETRY_KEYS:
                retry_kwargs[_RETRY_KEYS[key]] = value
            elif key in own:
                kwargs[key] = value
            else:
                raise ValueError(f"Unknown configuration key '{key}'.")
        if retry_kwargs:
            kwargs["retry_policy"] = RetryPolicy(**retry_kwargs)
        return cls(**kwargs)
