"""Outbound delivery: per-destination rate limiting and buffering."""

from .outbound import OutboundMessage, OutboundQueue
from .ratelimit import RateLimitEntry, RateLimiter

__all__ = [
    "RateLimiter",
    "RateLimitEntry",
    "OutboundMessage",
    "OutboundQueue",
]
