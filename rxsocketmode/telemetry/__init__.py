"""OpenTelemetry configuration helpers for rxsocketmode components.

This package provides OTel provider configuration, a structured logger
wrapper, a console log-record exporter, and metrics helpers.
"""

from .config import (
    CLIENT_NAME_ATTRIBUTE,
    build_resource,
    configure_metrics,
    configure_telemetry,
    get_default_providers,
)
from .exporters import (
    LOG_FORMAT,
    ConsoleLogRecordExporter,
)
from .logger import (
    LogContext,
    OTelLogger,
    format_log_record,
    format_log_record_json,
)
from .metrics import MetricsHelper, SocketModeMetrics

__all__ = [
    # config
    "CLIENT_NAME_ATTRIBUTE",
    "build_resource",
    "configure_telemetry",
    "configure_metrics",
    "get_default_providers",
    # logger
    "OTelLogger",
    "LogContext",
    "format_log_record",
    "format_log_record_json",
    # exporters
    "ConsoleLogRecordExporter",
    "LOG_FORMAT",
    # metrics
    "MetricsHelper",
    "SocketModeMetrics",
]
