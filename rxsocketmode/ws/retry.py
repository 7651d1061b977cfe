"""Reconnection backoff.

:class:`RetryPolicy` is the immutable configuration, :class:`BackoffState`
the per-client counter driven by the supervisor.

The n-th consecutive failure waits ``min(max_delay, base_delay * factor**n)``
seconds, so with ``base_delay=1`` and ``max_delay=30`` three failures in a
row wait 2 s, 4 s and 8 s.
"""

import random
from dataclasses import dataclass


@dataclass(frozen=True)
class RetryPolicy:
    """Configurable retry behavior for reconnection.

    Attributes:
        max_retries: Maximum number of consecutive reconnect attempts.
            None means retry forever (delays plateau at max_delay).
        base_delay: Delay unit in seconds.
        max_delay: Upper bound of a single delay in seconds.
        backoff_factor: Multiplier for exponential backoff.
        jitter: Randomization factor (0.0-1.0) applied to each delay.
    """

    max_retries: int | None = None
    base_delay: float = 1.0
    max_delay: float = 30.0
    backoff_factor: float = 2.0
    jitter: float = 0.0

    def __post_init__(self):
        if self.max_retries is not None and self.max_retries < 0:
            raise ValueError(f"max_retries must be >= 0, got {self.max_retries}")
        if self.base_delay < 0:
            raise ValueError(f"base_delay must be >= 0, got {self.base_delay}")
        if self.max_delay < self.base_delay:
            raise ValueError(
                f"max_delay ({self.max_delay}) must be >= base_delay"
                f" ({self.base_delay})"
            )
        if self.backoff_factor < 1.0:
            raise ValueError(
                f"backoff_factor must be >= 1.0, got {self.backoff_factor}"
            )
        if not 0.0 <= self.jitter <= 1.0:
            raise ValueError(f"jitter must be within [0, 1], got {self.jitter}")

    def get_delay(self, attempt: int) -> float:
        """Delay before reconnect attempt number ``attempt`` (1-indexed)."""
        delay = min(self.base_delay * (self.backoff_factor**attempt), self.max_delay)
        if self.jitter:
            jitter_range = delay * self.jitter
            delay += random.uniform(-jitter_range, jitter_range)
        return max(0.0, delay)


class BackoffState:
    """Consecutive-failure counter of one client.

    Incremented on every failed connect or abnormal disconnect and reset to
    zero as soon as a connection reaches CONNECTED.
    """

    def __init__(self, policy: RetryPolicy):
        self._policy = policy
        self.attempt_count = 0

    @property
    def base_delay(self) -> float:
        return self._policy.base_delay

    @property
    def max_delay(self) -> float:
        return self._policy.max_delay

    @property
    def exhausted(self) -> bool:
        """True once another attempt would exceed ``max_retries``."""
        limit = self._policy.max_retries
        return limit is not None and self.attempt_count >= limit

    def next_delay(self) -> float:
        """Count one more failure and return the delay to sleep before retrying."""
        self.attempt_count += 1
        return self._policy.get_delay(self.attempt_count)

    def reset(self) -> None:
        self.attempt_count = 0
