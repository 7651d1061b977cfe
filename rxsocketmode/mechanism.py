"""Core error types for :mod:`rxsocketmode`.

Error taxonomy:
    - TransportFailure: transient read/write/connect failure, recovered by
      reconnection (HandshakeTimeout is one of them)
    - MalformedFrame: undecodable or unknown inbound frame, logged and dropped
    - AuthRejected: remote refused the credentials, fatal
    - HandlerError: a registered handler raised, caught at dispatch
    - ReconnectExhausted: reconnect attempts exceeded, fatal
    - NotConnected: a send was attempted without a live link
"""


class RxException(Exception):
    """Base class for all rxsocketmode exceptions."""

    def __init__(self, exception: Exception, source: str = "Unknown", note: str = ""):
        super().__init__(f"<{source}> {note}: {exception}")
        self.exception = exception
        self.source = source
        self.note = note

    def __str__(self):
        return f"<{self.source}> {self.note}: {self.exception}"


class SendError(RxException):
    """Base class for errors returned by the outbound send API."""


class NotConnected(SendError):
    """Raised when a frame is sent while the link is not CONNECTED."""


class TransportFailure(SendError):
    """Raised on transport-level read, write or connect failure."""


class HandshakeTimeout(TransportFailure):
    """Raised when no hello envelope arrives within the handshake timeout."""


class AuthRejected(RxException):
    """Raised when the remote refuses the connection right after connect.

    Retrying with the same credentials cannot succeed, so this is never retried.
    """


class ReconnectExhausted(RxException):
    """Raised from ``run()`` once the reconnect attempt ceiling is exceeded."""

    def __init__(
        self,
        exception: Exception,
        source: str = "Unknown",
        note: str = "",
        attempts: int = 0,
    ):
        super().__init__(exception, source=source, note=note)
        self.attempts = attempts


class MalformedFrame(RxException):
    """Raised when an inbound frame cannot be decoded into an envelope."""

    def __init__(
        self,
        exception: Exception,
        source: str = "Unknown",
        note: str = "",
        raw: str | bytes | None = None,
    ):
        super().__init__(exception, source=source, note=note)
        self.raw = raw


class HandlerError(RxException):
    """Wraps an exception raised by a registered handler."""

    def __init__(
        self,
        exception: Exception,
        source: str = "Unknown",
        note: str = "",
        event_kind: str = "",
        envelope_id: str | None = None,
    ):
        super().__init__(exception, source=source, note=note)
        self.event_kind = event_kind
        self.envelope_id = envelope_id
