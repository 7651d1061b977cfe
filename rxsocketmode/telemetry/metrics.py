"""OTel metrics for the Socket Mode client.

Provides :class:`MetricsHelper`, a convenience wrapper around an OTel
``Meter``, and :class:`SocketModeMetrics`, the fixed set of instruments
the client records into.
"""

from opentelemetry.metrics import Counter, Histogram, Meter, MeterProvider
from opentelemetry.metrics import get_meter_provider


class MetricsHelper:
    """Convenience wrapper around an OTel ``Meter``.

    Args:
        meter_provider: Provider to obtain a meter from. ``None`` uses the
            global provider, which is a no-op until the application
            installs one.
        instrumentation_name: Identifies the instrumentation library.
    """

    def __init__(
        self,
        meter_provider: MeterProvider | None,
        instrumentation_name: str,
    ):
        provider = meter_provider if meter_provider is not None else get_meter_provider()
        self._meter: Meter = provider.get_meter(instrumentation_name)

    def counter(
        self,
        name: str,
        description: str = "",
        unit: str = "1",
    ) -> Counter:
        """Create (or retrieve) a monotonic counter instrument."""
        return self._meter.create_counter(name, description=description, unit=unit)

    def histogram(
        self,
        name: str,
        description: str = "",
        unit: str = "s",
    ) -> Histogram:
        """Create (or retrieve) a histogram instrument."""
        return self._meter.create_histogram(name, description=description, unit=unit)


class SocketModeMetrics:
    """Instruments recorded by the client, router and outbound path."""

    def __init__(self, helper: MetricsHelper):
        self.envelopes_inbound = helper.counter(
            "socketmode.envelopes.inbound",
            description="Envelopes decoded from inbound frames",
        )
        self.acks_sent = helper.counter(
            "socketmode.acks.sent",
            description="Acknowledgments written for event envelopes",
        )
        self.frames_malformed = helper.counter(
            "socketmode.frames.malformed",
            description="Inbound frames dropped because they could not be decoded",
        )
        self.handler_errors = helper.counter(
            "socketmode.handler.errors",
            description="Exceptions raised by registered handlers",
        )
        self.messages_sent = helper.counter(
            "socketmode.messages.sent",
            description="Outbound messages written to the transport",
        )
        self.messages_queued = helper.counter(
            "socketmode.messages.queued",
            description="Outbound messages deferred to the queue",
        )
        self.reconnects = helper.counter(
            "socketmode.reconnects",
            description="Successful reconnections after the first connect",
        )
        self.backoff_delay = helper.histogram(
            "socketmode.reconnect.backoff",
            description="Backoff sleep before a reconnect attempt",
        )
