"""OTel log-record exporter for console output.

Provides :class:`ConsoleLogRecordExporter`, writing either human-readable
lines or JSON lines to a stream (stderr by default).
"""

import sys
from collections.abc import Sequence
from typing import Literal, TextIO

from opentelemetry.sdk._logs._internal import ReadableLogRecord
from opentelemetry.sdk._logs.export import (
    LogRecordExporter,
    LogRecordExportResult,
)

from .logger import format_log_record, format_log_record_json

LOG_FORMAT = Literal["text", "json"]


class ConsoleLogRecordExporter(LogRecordExporter):
    """OTel LogRecordExporter that writes CLI-friendly output.

    Unlike OTel's ConsoleLogExporter which outputs verbose JSON,
    the default ``"text"`` format is one short line per record:

        2026-02-03T10:30:00Z [INFO] rxsocketmode/supervisor SocketModeClient: 'Connected'

    Parameters:
        format: "text" for human-readable lines, "json" for JSON lines.
        stream: Target stream. ``None`` resolves ``sys.stderr`` at export
            time so that redirection in tests is honored.
    """

    def __init__(self, format: LOG_FORMAT = "text", stream: TextIO | None = None):
        if format not in ("text", "json"):
            raise ValueError(f"Unsupported log format '{format}'.")
        self._formatter = (
            format_log_record_json if format == "json" else format_log_record
        )
        self._stream = stream

    def _target(self) -> TextIO:
        return self._stream if self._stream is not None else sys.stderr

    def export(self, batch: Sequence[ReadableLogRecord]) -> LogRecordExportResult:
        """Export log records to the target stream.

        Returns:
            LogRecordExportResult.SUCCESS on success, FAILURE if the
            stream raised.
        """
        stream = self._target()
        try:
            for readable_record in batch:
                stream.write(self._formatter(readable_record.log_record))
            stream.flush()
            return LogRecordExportResult.SUCCESS
        except (OSError, ValueError):
            return LogRecordExportResult.FAILURE

    def shutdown(self) -> None:
        """Shutdown the exporter (no-op for console)."""
        pass

    def force_flush(self, timeout_millis: int = 30000) -> bool:
        self._target().flush()
        return True
