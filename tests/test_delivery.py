"""Tests for rxsocketmode.delivery - rate limiting and the outbound queue."""

import asyncio
from concurrent.futures import ThreadPoolExecutor

import pytest

from rxsocketmode import OutboundMessage, OutboundQueue, RateLimiter


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


# =============================================================================
# RateLimiter
# =============================================================================


def test_burst_of_five_then_refused():
    clock = FakeClock()
    limiter = RateLimiter(max_burst=5, window=1.0, clock=clock)

    results = [limiter.can_send("C1") for _ in range(6)]

    assert results == [True] * 5 + [False]
    assert limiter.entry("C1").burst_count == 5


def test_window_elapsed_resets_burst():
    clock = FakeClock()
    limiter = RateLimiter(max_burst=2, window=1.0, clock=clock)
    assert limiter.can_send("C1")
    assert limiter.can_send("C1")
    assert not limiter.can_send("C1")

    clock.now += 1.0

    assert limiter.can_send("C1")
    assert limiter.entry("C1").burst_count == 1


def test_destinations_are_independent():
    limiter = RateLimiter(max_burst=1, window=1.0, clock=FakeClock())
    assert limiter.can_send("C1")
    assert not limiter.can_send("C1")
    assert limiter.can_send("C2")
    assert len(limiter) == 2


def test_refusal_does_not_touch_bookkeeping():
    clock = FakeClock()
    limiter = RateLimiter(max_burst=1, window=1.0, clock=clock)
    limiter.can_send("C1")
    clock.now += 0.5
    limiter.can_send("C1")

    assert limiter.entry("C1").last_send_time == 1000.0
    assert limiter.retry_after("C1") == pytest.approx(0.5)


def test_retry_after_zero_when_capacity_left():
    limiter = RateLimiter(max_burst=3, window=1.0, clock=FakeClock())
    limiter.can_send("C1")
    assert limiter.retry_after("C1") == 0.0
    assert limiter.retry_after("unknown") == 0.0


def test_reset():
    limiter = RateLimiter(max_burst=1, window=1.0, clock=FakeClock())
    limiter.can_send("C1")
    limiter.can_send("C2")
    limiter.reset("C1")
    assert limiter.entry("C1") is None
    limiter.reset()
    assert len(limiter) == 0


def test_concurrent_callers_never_exceed_burst():
    limiter = RateLimiter(max_burst=5, window=60.0)
    with ThreadPoolExecutor(max_workers=8) as pool:
        results = list(pool.map(lambda _: limiter.can_send("C1"), range(200)))
    assert sum(results) == 5


@pytest.mark.parametrize("kwargs", [{"max_burst": 0}, {"window": 0}])
def test_invalid_limits(kwargs):
    with pytest.raises(ValueError):
        RateLimiter(**kwargs)


# =============================================================================
# OutboundQueue
# =============================================================================


def test_message_requires_destination():
    with pytest.raises(ValueError):
        OutboundMessage("", "body")


def test_queue_bookkeeping():
    queue = OutboundQueue()
    queue.enqueue(OutboundMessage("C1", "a"))
    queue.enqueue(OutboundMessage("C2", "b"))
    queue.enqueue(OutboundMessage("C1", "c"))

    assert len(queue) == 3
    assert queue.pending("C1") == 2
    assert [m.body for m in queue.snapshot()] == ["a", "b", "c"]

    dropped = queue.clear()
    assert [m.body for m in dropped] == ["a", "b", "c"]
    assert queue.size() == 0


def test_flush_preserves_per_destination_order():
    clock = FakeClock()
    limiter = RateLimiter(max_burst=1, window=1.0, clock=clock)
    queue = OutboundQueue()
    for dest, body in [("C1", "1a"), ("C2", "2a"), ("C1", "1b"), ("C2", "2b")]:
        queue.enqueue(OutboundMessage(dest, body))
    sent: list[str] = []

    async def transmit(message):
        sent.append(message.body)

    assert asyncio.run(queue.flush(transmit, limiter)) == 2
    assert sent == ["1a", "2a"]
    assert [m.body for m in queue.snapshot()] == ["1b", "2b"]

    clock.now += 1.0
    assert asyncio.run(queue.flush(transmit, limiter)) == 2
    assert sent == ["1a", "2a", "1b", "2b"]
    assert len(queue) == 0


def test_refused_destination_blocks_later_messages_in_same_pass():
    clock = FakeClock()
    limiter = RateLimiter(max_burst=1, window=1.0, clock=clock)
    limiter.can_send("C1")
    queue = OutboundQueue()
    queue.enqueue(OutboundMessage("C1", "first"))
    queue.enqueue(OutboundMessage("C1", "second"))

    async def transmit(message):
        raise AssertionError("nothing may be sent")

    assert asyncio.run(queue.flush(transmit, limiter)) == 0
    assert [m.body for m in queue.snapshot()] == ["first", "second"]


def test_flush_failure_keeps_message_queued():
    limiter = RateLimiter(max_burst=5, window=1.0, clock=FakeClock())
    queue = OutboundQueue()
    queue.enqueue(OutboundMessage("C1", "ok"))
    queue.enqueue(OutboundMessage("C1", "fails"))
    queue.enqueue(OutboundMessage("C1", "after"))
    sent = []

    async def transmit(message):
        if message.body == "fails":
            raise OSError("write failed")
        sent.append(message.body)

    with pytest.raises(OSError):
        asyncio.run(queue.flush(transmit, limiter))

    assert sent == ["ok"]
    assert [m.body for m in queue.snapshot()] == ["fails", "after"]


def test_release_gives_back_the_last_slot():
    limiter = RateLimiter(max_burst=2, window=1.0, clock=FakeClock())
    assert limiter.can_send("C1")
    assert limiter.can_send("C1")
    assert not limiter.can_send("C1")

    limiter.release("C1")

    assert limiter.entry("C1").burst_count == 1
    assert limiter.can_send("C1")
    limiter.release("unknown")


def test_failed_flush_does_not_consume_a_slot():
    limiter = RateLimiter(max_burst=1, window=1.0, clock=FakeClock())
    queue = OutboundQueue()
    queue.enqueue(OutboundMessage("C1", "retry me"))
    attempts = []

    async def transmit(message):
        attempts.append(message.body)
        if len(attempts) == 1:
            raise OSError("write failed")

    with pytest.raises(OSError):
        asyncio.run(queue.flush(transmit, limiter))
    assert asyncio.run(queue.flush(transmit, limiter)) == 1

    assert attempts == ["retry me", "retry me"]
    assert len(queue) == 0
