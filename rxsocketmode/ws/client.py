"""Supervised Socket Mode client.

Provides ConnectionState, SendStatus, ConnectionStats and SocketModeClient,
which owns the WebSocket link: connect and hello handshake, keepalive,
inbound routing, rate-limited outbound delivery, and reconnection with
exponential backoff.
"""

import asyncio
import concurrent.futures
import time
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

from opentelemetry.metrics import MeterProvider
from opentelemetry.sdk._logs import LoggerProvider
from opentelemetry.trace import TracerProvider
from reactivex import Observable
from reactivex import operators as ops
from reactivex.subject import BehaviorSubject
from websockets.exceptions import (
    ConnectionClosed,
    ConnectionClosedOK,
    InvalidHandshake,
    InvalidStatus,
    InvalidURI,
)

from ..delivery import OutboundMessage, OutboundQueue, RateLimiter
from ..mechanism import (
    AuthRejected,
    HandshakeTimeout,
    MalformedFrame,
    NotConnected,
    ReconnectExhausted,
    RxException,
    SendError,
    TransportFailure,
)
from ..routing import (
    Envelope,
    EnvelopeKind,
    EnvelopeRouter,
    HandlerRegistry,
    decode_envelope,
    encode_outbound,
    encode_ping,
)
from ..telemetry import (
    LogContext,
    MetricsHelper,
    OTelLogger,
    SocketModeMetrics,
    get_default_providers,
)
from ..utils import get_full_error_info, get_short_error_info
from .config import SocketModeConfig
from .retry import BackoffState
from .transport import Connector, WSTransport, websockets_connector

UrlSource = str | Callable[[], Awaitable[str]]

_DISCONNECT_REQUESTED = "disconnect requested"
_SHUTDOWN = "shutdown"


class ConnectionState(Enum):
    """Lifecycle states of the supervised link."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"
    CLOSED = "closed"  # terminal


class SendStatus(Enum):
    """Successful outcomes of :meth:`SocketModeClient.send`."""

    SENT = "sent"
    QUEUED = "queued"


@dataclass(frozen=True)
class ConnectionStats:
    """Read-only snapshot returned by :meth:`SocketModeClient.get_stats`."""

    connected: bool
    state: ConnectionState
    reconnect_count: int
    last_ping: float | None
    last_pong: float | None
    uptime: float
    messages_sent: int
    messages_queued: int
    envelopes_received: int
    acks_sent: int
    last_disconnect_reason: str | None


class SocketModeClient:
    """A supervised, reconnecting Socket Mode client.

    Inbound frames are routed through an :class:`EnvelopeRouter` to the
    handlers in ``registry``; outbound messages go through a
    :class:`RateLimiter` and, when refused or disconnected, an
    :class:`OutboundQueue` that is flushed by the keepalive task.

    Key Features
    ------------
    * **Hello handshake**: ``connect()`` only succeeds once the remote has
      sent its hello envelope.
    * **Auto-reconnect**: transport errors, unexpected closes and missed
      pongs trigger reconnection with exponential backoff; a remote
      disconnect request reconnects immediately.
    * **Fatal errors surface**: ``run()`` raises ``AuthRejected`` and
      ``ReconnectExhausted`` instead of retrying forever.
    * **Observable state**: ``connection_state``, ``envelopes`` and
      ``errors`` are ReactiveX streams.

    Parameters
    ----------
    url : str | Callable[[], Awaitable[str]]
        WebSocket URL, or a coroutine function returning a fresh URL for
        every connection attempt (Socket Mode URLs are single-use).
    config : SocketModeConfig | None
        Timeouts, keepalive, rate limit and retry policy.
    registry : HandlerRegistry | None
        Handlers to dispatch to. Frozen when ``run()`` starts.
    connector : Connector | None
        Opens the transport. Defaults to :func:`websockets_connector`.
    limiter, queue : RateLimiter | None, OutboundQueue | None
        Outbound structures; created from ``config`` when omitted.
    name : str | None
        Source name used in logs.
    tracer_provider, logger_provider, meter_provider
        Optional OTel providers. Without a logger provider the console
        default from :func:`get_default_providers` is used.

    Example
    -------
    >>> registry = HandlerRegistry()
    >>> client = SocketModeClient(fetch_url, registry=registry)
    >>> @registry.on("app_mention")
    ... async def reply(payload):
    ...     await client.send(payload["event"]["channel"], "hi")
    >>> await client.run()
    """

    def __init__(
        self,
        url: UrlSource,
        config: SocketModeConfig | None = None,
        registry: HandlerRegistry | None = None,
        connector: Connector | None = None,
        limiter: RateLimiter | None = None,
        queue: OutboundQueue | None = None,
        name: str | None = None,
        tracer_provider: TracerProvider | None = None,
        logger_provider: LoggerProvider | None = None,
        meter_provider: MeterProvider | None = None,
    ):
        self._url = url
        self.config = config if config else SocketModeConfig()
        self.registry = registry if registry is not None else HandlerRegistry()
        self._connector = connector or websockets_connector(self.config)
        self._name = name if name else "SocketModeClient"

        if logger_provider is None:
            default_tracer_provider, logger_provider = get_default_providers(
                "rxsocketmode"
            )
            tracer_provider = tracer_provider or default_tracer_provider

        self._base_logger = OTelLogger(
            logger_provider.get_logger(f"rxsocketmode.{self._name}"),
            source=self._name,
            context=LogContext(service="rxsocketmode", component="supervisor"),
        )
        self._logger = self._base_logger
        tracer = (
            tracer_provider.get_tracer(f"rxsocketmode.{self._name}")
            if tracer_provider
            else None
        )
        self._metrics = SocketModeMetrics(MetricsHelper(meter_provider, "rxsocketmode"))

        self.limiter = (
            limiter
            if limiter is not None
            else RateLimiter(
                max_burst=self.config.max_burst, window=self.config.rate_window
            )
        )
        self.queue = queue if queue is not None else OutboundQueue()
        self._backoff = BackoffState(self.config.retry_policy)

        self.router = EnvelopeRouter(
            self.registry,
            self.send_frame,
            logger=self._base_logger.with_context(
                source=f"{self._name}:router", component="router"
            ),
            on_disconnect=self._handle_disconnect_request,
            on_pong=self._handle_pong,
            tracer=tracer,
            metrics=self._metrics,
            name=f"{self._name}:router",
        )

        self._state = ConnectionState.DISCONNECTED
        self._state_subject: BehaviorSubject[ConnectionState] = BehaviorSubject(
            ConnectionState.DISCONNECTED
        )

        self._ws: WSTransport | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._running = False
        self._shutdown = asyncio.Event()
        self._wakeup = asyncio.Event()

        self._disconnect_requested = False
        self._has_connected = False
        self._connected_at: float | None = None

        self._ping_id = 0
        self._pending_ping: tuple[int, float] | None = None
        self._last_ping_sent = 0.0

        self.reconnect_count = 0
        self.messages_sent = 0
        self._last_ping: float | None = None
        self._last_pong: float | None = None
        self._last_disconnect_reason: str | None = None

    # ------------------------------------------------------------------ #
    # observable surface
    # ------------------------------------------------------------------ #

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def backoff(self) -> BackoffState:
        return self._backoff

    @property
    def connection_state(self) -> Observable:
        """Stream of connection state changes.

        New subscribers immediately receive the current state.
        """
        return self._state_subject.pipe(ops.share())

    @property
    def envelopes(self) -> Observable:
        return self.router.envelopes

    @property
    def errors(self) -> Observable:
        return self.router.errors

    def get_stats(self) -> ConnectionStats:
        """Snapshot of connection statistics. Never blocks the read loop."""
        connected_at = self._connected_at
        return ConnectionStats(
            connected=self._state == ConnectionState.CONNECTED,
            state=self._state,
            reconnect_count=self.reconnect_count,
            last_ping=self._last_ping,
            last_pong=self._last_pong,
            uptime=time.monotonic() - connected_at if connected_at is not None else 0.0,
            messages_sent=self.messages_sent,
            messages_queued=self.queue.size(),
            envelopes_received=self.router.envelopes_received,
            acks_sent=self.router.acks_sent,
            last_disconnect_reason=self._last_disconnect_reason,
        )

    def register_handler(self, event_kind: str, handler) -> None:
        self.registry.register_handler(event_kind, handler)

    def _set_connection_state(self, state: ConnectionState) -> None:
        if state is self._state:
            return
        self._state = state
        self._logger.debug(f"Connection state: {state.value}")
        self._state_subject.on_next(state)

    # ------------------------------------------------------------------ #
    # connect & handshake
    # ------------------------------------------------------------------ #

    async def _resolve_url(self) -> str:
        if isinstance(self._url, str):
            return self._url
        try:
            return await self._url()
        except RxException:
            raise
        except (OSError, TimeoutError) as e:
            raise TransportFailure(
                e, source=self._name, note="resolving the connection URL failed"
            ) from e

    async def connect(self) -> None:
        """Open a fresh connection and wait for the hello envelope.

        Raises:
            HandshakeTimeout: No hello within ``handshake_timeout``.
            AuthRejected: The remote refused or closed right after connect.
            TransportFailure: Any other network error while connecting.
            NotConnected: The client is closed.
            RuntimeError: A connection is already open or being opened.
        """
        if self._state == ConnectionState.CLOSED or self._shutdown.is_set():
            raise NotConnected(
                RuntimeError("client is closed"), source=self._name, note="connect"
            )
        if self._state in (ConnectionState.CONNECTED, ConnectionState.CONNECTING):
            raise RuntimeError(f"{self._name} is already {self._state.value}")
        previous = self._state
        self._set_connection_state(ConnectionState.CONNECTING)
        try:
            url = await self._resolve_url()
            ws = await self._open_transport(url)
            try:
                hello = await self._await_hello(ws)
            except BaseException:
                await self._close_transport(ws)
                raise
        except BaseException:
            self._set_connection_state(
                ConnectionState.RECONNECTING
                if previous == ConnectionState.RECONNECTING
                else ConnectionState.DISCONNECTED
            )
            raise

        self._ws = ws
        self._logger = self._base_logger.with_context(connection_id=uuid.uuid4().hex)
        self._disconnect_requested = False
        self._pending_ping = None
        self._last_ping_sent = time.monotonic()
        self._connected_at = time.monotonic()
        self._backoff.reset()
        self._set_connection_state(ConnectionState.CONNECTED)

        if self._has_connected:
            self.reconnect_count += 1
            self._metrics.reconnects.add(1)
        self._has_connected = True
        self._logger.info("Connected.")

        try:
            await self.router.route(hello)
        except Exception as e:
            self._logger.error(f"Routing hello failed:\n{get_full_error_info(e)}")

    async def _open_transport(self, url: str) -> WSTransport:
        remote_desc = url.split("?", 1)[0]
        self._logger.info(f"Connecting to {remote_desc}")
        try:
            return await asyncio.wait_for(
                self._connector(url), self.config.handshake_timeout
            )
        except TimeoutError as e:
            raise HandshakeTimeout(
                e, source=self._name, note="opening handshake timed out"
            ) from e
        except InvalidStatus as e:
            status = e.response.status_code
            if status in (401, 403):
                raise AuthRejected(
                    e, source=self._name, note=f"connection refused with HTTP {status}"
                ) from e
            raise TransportFailure(
                e, source=self._name, note=f"connection refused with HTTP {status}"
            ) from e
        except InvalidURI as e:
            # not retryable
            raise RxException(e, source=self._name, note="invalid URI") from e
        except (OSError, InvalidHandshake) as e:
            raise TransportFailure(e, source=self._name, note="connect failed") from e

    async def _await_hello(self, ws: WSTransport) -> Envelope:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.config.handshake_timeout
        while True:
            remaining = deadline - loop.time()
            if remaining <= 0:
                raise HandshakeTimeout(
                    TimeoutError("no hello received"), source=self._name, note="handshake"
                )
            try:
                raw = await asyncio.wait_for(ws.recv(), remaining)
            except TimeoutError as e:
                raise HandshakeTimeout(
                    e, source=self._name, note="no hello received"
                ) from e
            except ConnectionClosed as e:
                if e.rcvd is not None:
                    # the remote closed deliberately before saying hello
                    raise AuthRejected(
                        e, source=self._name, note="remote closed right after connect"
                    ) from e
                raise TransportFailure(
                    e, source=self._name, note="connection lost during handshake"
                ) from e
            except OSError as e:
                raise TransportFailure(e, source=self._name, note="handshake") from e

            try:
                envelope = decode_envelope(raw, source=self._name)
            except MalformedFrame as e:
                self._logger.warning(
                    f"Ignoring malformed frame before hello: {e.exception}"
                )
                continue
            if envelope.kind == EnvelopeKind.HELLO:
                return envelope
            self._logger.debug(f"Ignoring '{envelope.type}' frame before hello")

    async def _close_transport(self, ws: WSTransport) -> None:
        try:
            await asyncio.wait_for(ws.close(), self.config.close_timeout)
        except (TimeoutError, OSError, ConnectionClosed) as e:
            self._logger.debug(f"Transport close: {get_short_error_info(e)}")

    async def _release_transport(self) -> None:
        ws, self._ws = self._ws, None
        self._connected_at = None
        if ws is not None:
            await self._close_transport(ws)

    # ------------------------------------------------------------------ #
    # outbound
    # ------------------------------------------------------------------ #

    async def send_frame(self, frame: str) -> None:
        """Write one text frame.

        Returns once the transport accepted the write; this does not mean the
        remote received it.

        Raises:
            NotConnected: The link is not CONNECTED.
            TransportFailure: The write failed or exceeded ``send_timeout``.
        """
        ws = self._ws
        if self._state != ConnectionState.CONNECTED or ws is None:
            raise NotConnected(
                ConnectionError(f"state is {self._state.value}"),
                source=self._name,
                note="send_frame",
            )
        try:
            await asyncio.wait_for(ws.send(frame), self.config.send_timeout)
        except TimeoutError as e:
            if self._shutdown.is_set():
                self._logger.debug("Send timed out during shutdown, ignored.")
                return
            raise TransportFailure(e, source=self._name, note="send timed out") from e
        except (ConnectionClosed, OSError) as e:
            raise TransportFailure(e, source=self._name, note="send failed") from e

    async def send(self, destination: str, body: Any) -> SendStatus:
        """Send ``body`` to ``destination``, queuing it when it cannot go now.

        Messages to the same destination are transmitted in call order: a
        message is queued behind any message already waiting for its
        destination.

        Returns:
            SendStatus.SENT if written now, SendStatus.QUEUED if deferred.

        Raises:
            NotConnected: The client is closed, or disconnected while
                ``buffer_while_disconnected`` is off.
            TransportFailure: The transport write failed.
        """
        message = OutboundMessage(destination, body)
        if self._state == ConnectionState.CLOSED or self._shutdown.is_set():
            raise NotConnected(
                RuntimeError("client is closed"), source=self._name, note="send"
            )
        if self._state != ConnectionState.CONNECTED:
            if not self.config.buffer_while_disconnected:
                raise NotConnected(
                    ConnectionError(f"state is {self._state.value}"),
                    source=self._name,
                    note="send",
                )
            return self._defer(message, "disconnected")

        if self.queue.pending(destination) or not self.limiter.can_send(destination):
            return self._defer(message, "rate limited")

        try:
            await self._transmit(message)
        except SendError:
            self.limiter.release(destination)
            raise
        # flush right away in case capacity freed up for queued messages
        self._wakeup.set()
        return SendStatus.SENT

    def send_threadsafe(
        self, destination: str, body: Any
    ) -> concurrent.futures.Future:
        """Schedule :meth:`send` on the client's loop from another thread."""
        loop = self._loop
        if loop is None or not self._running:
            raise NotConnected(
                RuntimeError("client is not running"),
                source=self._name,
                note="send_threadsafe",
            )
        return asyncio.run_coroutine_threadsafe(self.send(destination, body), loop)

    def _defer(self, message: OutboundMessage, why: str) -> SendStatus:
        self.queue.enqueue(message)
        self._metrics.messages_queued.add(1)
        self._logger.debug(
            f"Queued message ({why}), {self.queue.size()} waiting",
            **{"message.destination": message.destination},
        )
        return SendStatus.QUEUED

    async def _transmit(self, message: OutboundMessage) -> None:
        await self.send_frame(encode_outbound(message.destination, message.body))
        self.messages_sent += 1
        self._metrics.messages_sent.add(1)

    # ------------------------------------------------------------------ #
    # keepalive
    # ------------------------------------------------------------------ #

    async def _send_ping(self) -> None:
        self._ping_id += 1
        now = time.monotonic()
        # pending before the write, the pong may be routed before send returns
        self._pending_ping = (self._ping_id, now)
        self._last_ping_sent = now
        self._last_ping = time.time()
        await self.send_frame(encode_ping(self._ping_id))
        self._logger.debug(f"Ping {self._ping_id}")

    def _handle_pong(self, envelope: Envelope) -> None:
        pending = self._pending_ping
        if pending is not None and envelope.ping_id == pending[0]:
            self._pending_ping = None
            self._last_pong = time.time()
        else:
            self._logger.debug(f"Unexpected pong {envelope.ping_id}")

    def _handle_disconnect_request(self, envelope: Envelope) -> None:
        self._disconnect_requested = True
        self._last_disconnect_reason = envelope.reason or "unknown"

    async def _keepalive_loop(self) -> str:
        """Send pings, enforce pong deadlines and flush the outbound queue."""
        cfg = self.config
        while not self._shutdown.is_set():
            self._wakeup.clear()
            try:
                await asyncio.wait_for(self._wakeup.wait(), cfg.flush_interval)
            except TimeoutError:
                pass
            if self._shutdown.is_set():
                break

            now = time.monotonic()
            pending = self._pending_ping
            if pending is not None:
                if now - pending[1] > cfg.pong_timeout:
                    self._logger.warning(
                        f"No pong for ping {pending[0]} within {cfg.pong_timeout}s"
                    )
                    return "pong timeout"
            elif now - self._last_ping_sent >= cfg.ping_interval:
                try:
                    await self._send_ping()
                except SendError as e:
                    self._logger.warning(f"Ping failed: {get_short_error_info(e)}")
                    return "ping failed"

            if self.queue.size():
                try:
                    await self.queue.flush(self._transmit, self.limiter)
                except SendError as e:
                    self._logger.warning(f"Flush failed: {get_short_error_info(e)}")
                    return "flush failed"
        return _SHUTDOWN

    # ------------------------------------------------------------------ #
    # read loop
    # ------------------------------------------------------------------ #

    async def _read_loop(self, ws: WSTransport) -> str:
        """Receive frames and hand them to the router until the link ends."""
        timeout = self.config.receive_timeout
        while not self._shutdown.is_set():
            try:
                if timeout is None:
                    raw = await ws.recv()
                else:
                    raw = await asyncio.wait_for(ws.recv(), timeout)
            except TimeoutError:
                self._logger.warning(f"No frame received within {timeout}s")
                return "receive timeout"
            except ConnectionClosedOK:
                self._logger.info("Connection closed by remote.")
                return "closed by remote"
            except ConnectionClosed as e:
                self._logger.warning(
                    f"Connection closed with error: {get_short_error_info(e)}"
                )
                return "closed with error"
            except OSError as e:
                self._logger.warning(f"Network error: {get_short_error_info(e)}")
                return "read error"

            if self._shutdown.is_set():
                # no new dispatch once shutdown has begun
                break
            try:
                await self.router.handle_frame(raw)
            except SendError as e:
                self._logger.warning(f"Reply failed: {get_short_error_info(e)}")
                return "write error"
            except Exception as e:
                # a broken frame or subscriber must not end the connection
                self._logger.error(f"Routing failed:\n{get_full_error_info(e)}")
            if self._disconnect_requested:
                return _DISCONNECT_REQUESTED
        return _SHUTDOWN

    async def _serve_connection(self) -> bool:
        """Run the read and keepalive tasks until one of them ends.

        Returns:
            True if the remote asked for the disconnect (graceful).
        """
        ws = self._ws
        assert ws is not None
        reader = asyncio.create_task(self._read_loop(ws))
        keeper = asyncio.create_task(self._keepalive_loop())
        done, pending = await asyncio.wait(
            {reader, keeper}, return_when=asyncio.FIRST_COMPLETED
        )

        if self._shutdown.is_set():
            # closing the transport unblocks recv; an in-flight handler finishes
            await self._release_transport()
            keeper.cancel()
            await asyncio.gather(reader, keeper, return_exceptions=True)
            return False

        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)

        reasons = [task.result() for task in done]
        await self._release_transport()
        reason = next((r for r in reasons if r != _SHUTDOWN), _SHUTDOWN)
        graceful = reason == _DISCONNECT_REQUESTED
        if not graceful:
            self._last_disconnect_reason = reason
        self._logger.info(f"Connection ended: {reason}")
        return graceful

    # ------------------------------------------------------------------ #
    # supervision
    # ------------------------------------------------------------------ #

    async def _try_connect(self) -> bool:
        try:
            await self.connect()
            return True
        except TransportFailure as e:
            self._logger.warning(f"Connect failed: {get_short_error_info(e)}")
            return False

    async def _backoff_sleep(self, delay: float) -> bool:
        """Sleep ``delay`` seconds. Returns True if shutdown interrupted it."""
        try:
            await asyncio.wait_for(self._shutdown.wait(), timeout=delay)
            return True
        except TimeoutError:
            return False

    async def _reconnect(self, immediate: bool) -> bool:
        """Reconnect with exponential backoff.

        Returns:
            True once connected, False if shutdown interrupted.

        Raises:
            ReconnectExhausted: ``max_retries`` consecutive attempts failed.
            AuthRejected: The remote refused the credentials.
        """
        self._set_connection_state(ConnectionState.RECONNECTING)
        if immediate and not self._shutdown.is_set():
            self._logger.info("Reconnecting at the remote's request.")
            if await self._try_connect():
                return True

        while not self._shutdown.is_set():
            if self._backoff.exhausted:
                attempts = self._backoff.attempt_count
                self._logger.error(f"Max retries ({attempts}) exhausted.")
                raise ReconnectExhausted(
                    ConnectionError(f"gave up after {attempts} reconnect attempts"),
                    source=self._name,
                    note="reconnect",
                    attempts=attempts,
                )
            delay = self._backoff.next_delay()
            self._metrics.backoff_delay.record(delay)
            self._logger.info(
                f"Reconnect attempt {self._backoff.attempt_count} in {delay:.2f}s"
            )
            if await self._backoff_sleep(delay):
                return False
            if await self._try_connect():
                return True
        return False

    async def _supervise(self) -> None:
        if self._shutdown.is_set():
            return
        connected = await self._try_connect()
        immediate = False
        while not self._shutdown.is_set():
            if not connected:
                connected = await self._reconnect(immediate)
                if not connected:
                    return
            immediate = await self._serve_connection()
            connected = False

    async def run(self) -> None:
        """Connect and supervise the link until closed or a fatal error.

        Returns normally after :meth:`close`.

        Raises:
            AuthRejected: The remote refused the credentials.
            ReconnectExhausted: Reconnect attempts exceeded ``max_retries``.
        """
        if self._running:
            raise RuntimeError(f"{self._name} is already running")
        self._loop = asyncio.get_running_loop()
        self._running = True
        self.registry.freeze()
        try:
            await self._supervise()
        except (AuthRejected, ReconnectExhausted) as e:
            self._logger.error(f"Fatal: {e}")
            raise
        except asyncio.CancelledError:
            self._logger.info("Client run cancelled.")
            raise
        except Exception as e:
            self._logger.error(f"Unexpected error:\n{get_full_error_info(e)}")
            raise
        finally:
            self._running = False
            await self._release_transport()
            self._set_connection_state(ConnectionState.CLOSED)
            self._state_subject.on_completed()
            self._logger.info("Closed.")

    async def close(self) -> None:
        """Cooperative shutdown.

        Interrupts a backoff sleep, unblocks the read loop by closing the
        transport and stops further reconnection. ``run()`` then returns.
        """
        if self._shutdown.is_set():
            return
        self._logger.info("Closing...")
        self._shutdown.set()
        self._wakeup.set()
        if not self._running:
            await self._release_transport()
            self._set_connection_state(ConnectionState.CLOSED)
