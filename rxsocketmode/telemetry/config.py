"""OTel provider configuration for rxsocketmode components.

Provides :func:`configure_telemetry` (tracer + logger providers),
:func:`configure_metrics` (meter provider), and :func:`get_default_providers`
(lazy singleton with console output).

Every provider built here shares one resource: ``service.name``,
``service.version`` and any extra attributes the caller passes, typically
``socketmode.client.name`` so several bots in one process can be told apart.
"""

from collections.abc import Mapping

from opentelemetry.sdk._logs import LoggerProvider
from opentelemetry.sdk._logs.export import (
    BatchLogRecordProcessor,
    LogRecordExporter,
    SimpleLogRecordProcessor,
)
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import (
    ConsoleMetricExporter,
    MetricExporter,
    PeriodicExportingMetricReader,
)
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, SpanExporter

from .exporters import ConsoleLogRecordExporter

CLIENT_NAME_ATTRIBUTE = "socketmode.client.name"


def build_resource(
    service_name: str,
    service_version: str = "",
    attributes: Mapping[str, str] | None = None,
) -> Resource:
    """Resource shared by the tracer, logger and meter providers.

    Extra ``attributes`` cannot override the service name or version.
    """
    merged = dict(attributes or {})
    merged["service.name"] = service_name
    merged["service.version"] = service_version
    return Resource.create(merged)


def configure_telemetry(
    service_name: str = "rxsocketmode",
    service_version: str = "",
    span_exporter: SpanExporter | None = None,
    log_exporter: LogRecordExporter | None = None,
    batch_logs: bool = True,
    log_format: str | None = None,
    attributes: Mapping[str, str] | None = None,
) -> tuple[TracerProvider, LoggerProvider]:
    """
    Configure OTel providers for rxsocketmode components.

    Returns the providers for explicit injection into components; does NOT
    set global providers.

    Args:
        service_name: Service identifier for resource attributes.
        service_version: Service version for resource attributes.
        span_exporter: Optional span exporter.
        log_exporter: Optional log exporter.
        batch_logs: If True, use BatchLogRecordProcessor (network exporters).
            If False, use SimpleLogRecordProcessor (immediate, console).
        log_format: ``"text"`` or ``"json"``. When given without a
            ``log_exporter``, records go to stderr through
            :class:`ConsoleLogRecordExporter`, unbatched.
        attributes: Extra resource attributes, e.g. the client name.

    Example:
        >>> tracer_provider, logger_provider = configure_telemetry(
        ...     service_name="my-bot",
        ...     log_format="json",
        ...     attributes={CLIENT_NAME_ATTRIBUTE: "EchoBot"},
        ... )
        >>> client = SocketModeClient(url, logger_provider=logger_provider)
    """
    if log_exporter is None and log_format is not None:
        log_exporter = ConsoleLogRecordExporter(format=log_format)
        batch_logs = False

    resource = build_resource(service_name, service_version, attributes)

    tracer_provider = TracerProvider(resource=resource)
    if span_exporter:
        tracer_provider.add_span_processor(BatchSpanProcessor(span_exporter))

    logger_provider = LoggerProvider(resource=resource)
    if log_exporter:
        processor = (
            BatchLogRecordProcessor(log_exporter)
            if batch_logs
            else SimpleLogRecordProcessor(log_exporter)
        )
        logger_provider.add_log_record_processor(processor)

    return tracer_provider, logger_provider


# =============================================================================
# Default Providers
# =============================================================================


_default_tracer_provider: TracerProvider | None = None
_default_logger_provider: LoggerProvider | None = None


def get_default_providers(
    service_name: str = "rxsocketmode",
) -> tuple[TracerProvider, LoggerProvider]:
    """Providers used by a client constructed without any.

    Built on first call with text output to stderr; later calls return the
    same pair whatever ``service_name`` they pass.
    """
    global _default_tracer_provider, _default_logger_provider

    if _default_logger_provider is None:
        _default_tracer_provider, _default_logger_provider = configure_telemetry(
            service_name=service_name,
            log_format="text",
        )

    assert _default_tracer_provider is not None
    return _default_tracer_provider, _default_logger_provider


# =============================================================================
# Metrics Configuration
# =============================================================================


def configure_metrics(
    service_name: str = "rxsocketmode",
    service_version: str = "",
    metric_exporter: MetricExporter | None = None,
    export_interval_ms: int = 10_000,
    attributes: Mapping[str, str] | None = None,
) -> MeterProvider:
    """Meter provider feeding :class:`SocketModeMetrics` to an exporter.

    Without a ``metric_exporter`` the counters are printed to stdout by
    ``ConsoleMetricExporter`` every ``export_interval_ms``.

    Example::

        meter_provider = configure_metrics(service_name="my-bot")
        client = SocketModeClient(url, meter_provider=meter_provider)
    """
    if export_interval_ms <= 0:
        raise ValueError(f"export_interval_ms must be > 0, got {export_interval_ms}")
    exporter = (
        metric_exporter if metric_exporter is not None else ConsoleMetricExporter()
    )
    reader = PeriodicExportingMetricReader(
        exporter, export_interval_millis=export_interval_ms
    )
    return MeterProvider(
        resource=build_resource(service_name, service_version, attributes),
        metric_readers=[reader],
    )
