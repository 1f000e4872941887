"""Log formatters for the relayer.

``JSONFormatter`` is the default for machine consumption; ``TextFormatter``
produces the one-line console format operators read while tailing logs.
"""

import json
import time
import traceback
from typing import Any, Dict, Optional

from .core import LogContext, LogEntry, LogFormatter


class JSONFormatter(LogFormatter):
    """JSON log formatter."""

    def __init__(
        self,
        include_context: bool = True,
        include_extra: bool = True,
        include_process: bool = False,
        timestamp_format: str = "iso",
        indent: Optional[int] = None,
    ):
        self.include_context = include_context
        self.include_extra = include_extra
        self.include_process = include_process
        self.timestamp_format = timestamp_format
        self.indent = indent

    def format(self, entry: LogEntry) -> str:
        """Format log entry as JSON."""
        data: Dict[str, Any] = {
            "timestamp": self._format_timestamp(entry.timestamp),
            "level": entry.level.value,
            "logger": entry.logger_name,
            "message": entry.message,
        }

        if self.include_context:
            data["context"] = {
                k: v for k, v in entry.context.to_dict().items() if v
            }

        if entry.exception is not None:
            data["exception"] = {
                "type": type(entry.exception).__name__,
                "message": str(entry.exception),
                "traceback": "".join(
                    traceback.format_exception(
                        type(entry.exception),
                        entry.exception,
                        entry.exception.__traceback__,
                    )
                ),
            }

        if self.include_extra and entry.extra:
            data["extra"] = entry.extra

        if self.include_process:
            data["thread_id"] = entry.thread_id
            data["process_id"] = entry.process_id

        return json.dumps(data, indent=self.indent, ensure_ascii=False, default=str)

    def _format_timestamp(self, timestamp: float) -> str:
        """Format timestamp."""
        if self.timestamp_format == "iso":
            return (
                time.strftime("%Y-%m-%dT%H:%M:%S", time.gmtime(timestamp))
                + f".{int((timestamp % 1) * 1000000):06d}Z"
            )
        elif self.timestamp_format == "unix":
            return str(timestamp)
        else:
            return time.strftime(self.timestamp_format, time.gmtime(timestamp))


class TextFormatter(LogFormatter):
    """Text log formatter: ``timestamp [LEVEL] logger: message {extra}``."""

    def __init__(self, timestamp_format: str = "%Y-%m-%d %H:%M:%S"):
        self.timestamp_format = timestamp_format

    def format(self, entry: LogEntry) -> str:
        """Format log entry."""
        line = (
            f"{time.strftime(self.timestamp_format, time.gmtime(entry.timestamp))} "
            f"[{entry.level.value.upper()}] {entry.logger_name}: {entry.message}"
        )

        context = self._format_context(entry.context)
        if context:
            line += f" | {context}"

        if entry.extra:
            line += f" {json.dumps(entry.extra, default=str, sort_keys=True)}"

        if entry.exception is not None:
            line += f" ({type(entry.exception).__name__}: {entry.exception})"

        return line

    def _format_context(self, context: LogContext) -> str:
        """Format context."""
        parts = []
        if context.relayer_id:
            parts.append(f"relayer={context.relayer_id}")
        if context.direction:
            parts.append(f"direction={context.direction}")
        if context.chain:
            parts.append(f"chain={context.chain}")
        if context.component:
            parts.append(f"component={context.component}")

        return " ".join(parts)
