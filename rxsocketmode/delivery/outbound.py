"""Outbound message buffering.

:class:`OutboundQueue` holds messages that could not be sent immediately,
either because the rate limiter refused them or because the link was down.
Messages to the same destination leave the queue in the order they entered
it; ordering across destinations is not guaranteed.

The queue has many producers and a single consumer (the client's
keepalive/flush task). Mutations happen under a short lock; the lock is
never held while a message is being transmitted.

Example:
    >>> queue = OutboundQueue()
    >>> queue.enqueue(OutboundMessage("C1", "first"))
    >>> queue.enqueue(OutboundMessage("C1", "second"))
    >>> sent = await queue.flush(transmit, limiter)
"""

import threading
import time
from collections import deque
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

from .ratelimit import RateLimiter


@dataclass(eq=False)
class OutboundMessage:
    """A message waiting to be transmitted.

    Attributes:
        destination: Destination key (e.g. a channel identifier).
        body: Message body, a string or a JSON-serializable mapping.
        enqueued_at: Wall-clock time the message was created.
    """

    destination: str
    body: Any
    enqueued_at: float = field(default_factory=time.time)

    def __post_init__(self):
        if not self.destination:
            raise ValueError("destination must be a non-empty string")


class OutboundQueue:
    """Insertion-ordered, thread-safe queue of :class:`OutboundMessage`."""

    def __init__(self):
        self._buffer: deque[OutboundMessage] = deque()
        self._lock = threading.Lock()

    def enqueue(self, message: OutboundMessage) -> None:
        """Append a message to the tail of the queue."""
        with self._lock:
            self._buffer.append(message)

    def pending(self, destination: str) -> int:
        """Number of queued messages addressed to ``destination``."""
        with self._lock:
            return sum(1 for m in self._buffer if m.destination == destination)

    def snapshot(self) -> list[OutboundMessage]:
        """Copy of the queue contents in order."""
        with self._lock:
            return list(self._buffer)

    def size(self) -> int:
        with self._lock:
            return len(self._buffer)

    def clear(self) -> list[OutboundMessage]:
        """Drop every queued message and return them."""
        with self._lock:
            items = list(self._buffer)
            self._buffer.clear()
            return items

    def _remove(self, message: OutboundMessage) -> None:
        with self._lock:
            try:
                self._buffer.remove(message)
            except ValueError:
                # cleared concurrently
                pass

    async def flush(
        self,
        transmit: Callable[[OutboundMessage], Awaitable[None]],
        limiter: RateLimiter,
    ) -> int:
        """Try to transmit every queued message, honoring ``limiter``.

        Walks a snapshot in order. Once a destination is refused by the
        limiter it stays blocked for the rest of the pass, so a later
        message can never overtake an earlier one to the same destination.
        Messages still blocked remain queued for the next pass.

        Args:
            transmit: Coroutine function writing one message to the transport.
            limiter: Rate limiter consulted before each transmit.

        Returns:
            Number of messages transmitted.

        Raises:
            Whatever ``transmit`` raises. The failing message gets its
            rate-limit slot back and it and everything after it stay queued.
        """
        blocked: set[str] = set()
        sent = 0
        for message in self.snapshot():
            if message.destination in blocked:
                continue
            if not limiter.can_send(message.destination):
                blocked.add(message.destination)
                continue
            try:
                await transmit(message)
            except Exception:
                limiter.release(message.destination)
                raise
            self._remove(message)
            sent += 1
        return sent

    def __len__(self) -> int:
        return self.size()
