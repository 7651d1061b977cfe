"""Inbound frame routing.

:class:`EnvelopeRouter` decodes inbound frames, acknowledges event
envelopes, fans them out to registered handlers and answers control
frames. It never tears the connection down on its own: malformed frames
and handler failures are logged, reported on :attr:`EnvelopeRouter.errors`
and dropped.

Per-kind behavior:
    - HELLO: record connection metadata, no ack
    - EVENT: ack ``{"envelope_id": ...}`` first, then dispatch
    - DISCONNECT: ask the supervisor for a graceful reconnect
    - PING_CONTROL: answer pings with a matching pong, forward pongs
    - ACK: ignored
"""

import contextlib
import inspect
from collections.abc import Awaitable, Callable
from typing import Any

from opentelemetry.trace import Tracer
from reactivex import Observable
from reactivex.subject import Subject

from ..mechanism import HandlerError, MalformedFrame, RxException
from ..telemetry import OTelLogger, SocketModeMetrics
from ..utils import get_full_error_info, get_short_error_info, truncate
from .envelope import (
    Envelope,
    EnvelopeKind,
    decode_envelope,
    encode_ack,
    encode_pong,
)
from .registry import HandlerRegistry


class EnvelopeRouter:
    """Decode, acknowledge and dispatch inbound frames.

    Args:
        registry: Handlers to dispatch event envelopes to.
        send_frame: Coroutine function writing one text frame to the
            transport. Used for acks and pongs; its errors propagate.
        logger: Logger for routing diagnostics.
        on_disconnect: Called with the envelope when the remote requests a
            reconnect.
        on_pong: Called with the envelope when a pong arrives.
        tracer: Optional tracer; each dispatch runs in a span.
        metrics: Optional instruments to record into.
        name: Source name used in logs and errors.
    """

    def __init__(
        self,
        registry: HandlerRegistry,
        send_frame: Callable[[str], Awaitable[None]],
        logger: OTelLogger,
        on_disconnect: Callable[[Envelope], None] | None = None,
        on_pong: Callable[[Envelope], None] | None = None,
        tracer: Tracer | None = None,
        metrics: SocketModeMetrics | None = None,
        name: str = "EnvelopeRouter",
    ):
        self._registry = registry
        self._send_frame = send_frame
        self._logger = logger
        self._on_disconnect = on_disconnect
        self._on_pong = on_pong
        self._tracer = tracer
        self._metrics = metrics
        self._name = name

        self._envelopes: Subject[Envelope] = Subject()
        self._errors: Subject[RxException] = Subject()

        self.connection_info: dict[str, Any] = {}
        self.envelopes_received = 0
        self.acks_sent = 0

    @property
    def envelopes(self) -> Observable:
        """Every successfully decoded envelope, emitted after it is routed."""
        return self._envelopes

    @property
    def errors(self) -> Observable:
        """:class:`MalformedFrame` and :class:`HandlerError` reports."""
        return self._errors

    async def handle_frame(self, raw: str | bytes) -> Envelope | None:
        """Decode and route one inbound frame.

        Returns:
            The routed envelope, or None if the frame was malformed and dropped.

        Raises:
            SendError: If writing an ack or pong failed.
        """
        try:
            envelope = decode_envelope(raw, source=self._name)
        except MalformedFrame as e:
            self._logger.warning(
                f"Dropping malformed frame: {get_short_error_info(e.exception)}",
                frame=truncate(raw),
            )
            if self._metrics is not None:
                self._metrics.frames_malformed.add(1)
            self._errors.on_next(e)
            return None

        await self.route(envelope)
        return envelope

    async def route(self, envelope: Envelope) -> None:
        """Route an already decoded envelope."""
        self.envelopes_received += 1
        if self._metrics is not None:
            self._metrics.envelopes_inbound.add(1, {"type": envelope.type or "ack"})

        if envelope.kind == EnvelopeKind.EVENT:
            await self._acknowledge(envelope)
            await self._dispatch(envelope)
        elif envelope.kind == EnvelopeKind.HELLO:
            self._record_hello(envelope)
        elif envelope.kind == EnvelopeKind.DISCONNECT:
            self._logger.info(
                f"Remote requested disconnect: {envelope.reason or 'unknown'}"
            )
            if self._on_disconnect is not None:
                self._on_disconnect(envelope)
        elif envelope.kind == EnvelopeKind.PING_CONTROL:
            if envelope.is_pong:
                self._logger.debug(f"Pong {envelope.ping_id}")
                if self._on_pong is not None:
                    self._on_pong(envelope)
            else:
                await self._send_frame(encode_pong(envelope.ping_id))
                self._logger.debug(f"Answered ping {envelope.ping_id}")
        else:
            self._logger.debug(f"Ignoring ack echo for {envelope.envelope_id}")

        self._envelopes.on_next(envelope)

    def _record_hello(self, envelope: Envelope) -> None:
        raw = envelope.raw
        debug_info = raw.get("debug_info")
        connection_info = raw.get("connection_info")
        self.connection_info = {
            "num_connections": raw.get("num_connections"),
            "debug_info": debug_info if isinstance(debug_info, dict) else {},
            "connection_info": (
                connection_info if isinstance(connection_info, dict) else {}
            ),
        }
        host = self.connection_info["debug_info"].get("host", "unknown")
        self._logger.info(
            f"Received hello (host={host},"
            f" connections={self.connection_info['num_connections']})"
        )

    async def _acknowledge(self, envelope: Envelope) -> None:
        assert envelope.envelope_id is not None
        await self._send_frame(encode_ack(envelope.envelope_id))
        self.acks_sent += 1
        if self._metrics is not None:
            self._metrics.acks_sent.add(1, {"type": envelope.type})
        self._logger.debug(
            f"Acknowledged {envelope.type} envelope",
            **{"envelope.id": envelope.envelope_id},
        )

    async def _dispatch(self, envelope: Envelope) -> None:
        handlers = self._registry.resolve(envelope.type, envelope.event_kind)
        if not handlers:
            self._logger.debug(
                f"No handler registered for '{envelope.event_kind}'",
                **{"envelope.id": envelope.envelope_id or ""},
            )
            return

        span = (
            self._tracer.start_as_current_span(
                "socketmode.dispatch",
                attributes={
                    "socketmode.envelope_id": envelope.envelope_id or "",
                    "socketmode.type": envelope.type,
                    "socketmode.event_kind": envelope.event_kind,
                    "socketmode.handlers": len(handlers),
                },
            )
            if self._tracer is not None
            else contextlib.nullcontext()
        )
        with span:
            for kind, handler in handlers:
                await self._invoke(kind, handler, envelope)

    async def _invoke(self, kind: str, handler, envelope: Envelope) -> None:
        try:
            result = handler(envelope.payload)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            handler_name = getattr(handler, "__qualname__", repr(handler))
            error = HandlerError(
                e,
                source=self._name,
                note=f"handler {handler_name} for '{kind}' failed",
                event_kind=kind,
                envelope_id=envelope.envelope_id,
            )
            self._logger.error(
                f"Handler {handler_name} for '{kind}' raised:\n"
                f"{get_full_error_info(e)}",
                **{"envelope.id": envelope.envelope_id or ""},
            )
            if self._metrics is not None:
                self._metrics.handler_errors.add(1, {"event_kind": kind})
            self._errors.on_next(error)
