"""Per-destination send-rate gate.

Policy (token/leaky-bucket hybrid):
    - If at least ``window`` seconds elapsed since the destination's last
      accepted send, the burst counter refills to zero and the send is
      accepted as the first slot of a new window.
    - Otherwise the send is accepted while the burst counter is below
      ``max_burst``, incrementing the counter.

With the defaults (``window=1.0``, ``max_burst=5``) a destination gets five
accepted sends in quick succession and the sixth is refused until a full
window passes without an accepted send.

Example:
    >>> limiter = RateLimiter(max_burst=5)
    >>> [limiter.can_send("C123") for _ in range(6)]
    [True, True, True, True, True, False]
"""

import threading
import time
from collections.abc import Callable
from dataclasses import dataclass


@dataclass
class RateLimitEntry:
    """Bookkeeping for one destination.

    Attributes:
        last_send_time: Clock reading of the last accepted send.
        burst_count: Sends accepted since the window last refilled.
    """

    last_send_time: float
    burst_count: int = 0


class RateLimiter:
    """Thread-safe per-destination rate limiter.

    Decision and commit happen under one lock, so two concurrent callers for
    the same destination can never both take the last slot.

    Args:
        max_burst: Sends allowed per window (must be >= 1).
        window: Length of one time unit in seconds.
        clock: Monotonic clock, injectable for tests.
    """

    def __init__(
        self,
        max_burst: int = 5,
        window: float = 1.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_burst < 1:
            raise ValueError(f"max_burst must be >= 1, got {max_burst}")
        if window <= 0:
            raise ValueError(f"window must be > 0, got {window}")
        self._max_burst = max_burst
        self._window = window
        self._clock = clock
        self._entries: dict[str, RateLimitEntry] = {}
        self._lock = threading.Lock()

    @property
    def max_burst(self) -> int:
        return self._max_burst

    @property
    def window(self) -> float:
        return self._window

    def can_send(self, destination: str) -> bool:
        """Decide whether ``destination`` may send now, committing if so.

        Returns:
            True if the send is accepted (bookkeeping already updated),
            False if the caller must enqueue the message instead.
        """
        now = self._clock()
        with self._lock:
            entry = self._entries.get(destination)
            if entry is None or now - entry.last_send_time >= self._window:
                self._entries[destination] = RateLimitEntry(
                    last_send_time=now, burst_count=1
                )
                return True
            if entry.burst_count < self._max_burst:
                entry.burst_count += 1
                entry.last_send_time = now
                return True
            return False

    def release(self, destination: str) -> None:
        """Give back the slot taken by the last accepted send.

        Called when the transmit that followed :meth:`can_send` failed.
        """
        with self._lock:
            entry = self._entries.get(destination)
            if entry is not None and entry.burst_count > 0:
                entry.burst_count -= 1

    def retry_after(self, destination: str) -> float:
        """Seconds until ``destination`` is guaranteed a slot (0.0 if now)."""
        now = self._clock()
        with self._lock:
            entry = self._entries.get(destination)
            if entry is None or entry.burst_count < self._max_burst:
                return 0.0
            return max(0.0, self._window - (now - entry.last_send_time))

    def entry(self, destination: str) -> RateLimitEntry | None:
        """Return a copy of the bookkeeping for ``destination``."""
        with self._lock:
            entry = self._entries.get(destination)
            if entry is None:
                return None
            return RateLimitEntry(entry.last_send_time, entry.burst_count)

    def reset(self, destination: str | None = None) -> None:
        """Forget one destination, or all of them."""
        with self._lock:
            if destination is None:
                self._entries.clear()
            else:
                self._entries.pop(destination, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
