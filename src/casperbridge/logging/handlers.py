"""Log handlers for the relayer.

Console, file and in-memory handlers. The file handler creates its parent
directory on first open so ``logs/error.log`` style paths work out of the box.
"""

import os
import sys
import threading
from typing import Any, Dict, List, Optional, TextIO

from .core import LogEntry, LogHandler, LogLevel


class ConsoleHandler(LogHandler):
    """Console log handler."""

    def __init__(self, stream: Optional[TextIO] = None, level: LogLevel = LogLevel.DEBUG):
        super().__init__(level=level)
        self.stream = stream or sys.stdout

    def emit(self, entry: LogEntry) -> None:
        """Emit log entry to console."""
        with self._lock:
            self.stream.write(self.render(entry) + "\n")
            self.stream.flush()


class FileHandler(LogHandler):
    """File log handler."""

    def __init__(
        self,
        filename: str,
        mode: str = "a",
        encoding: str = "utf-8",
        level: LogLevel = LogLevel.DEBUG,
        delay: bool = True,
    ):
        super().__init__(level=level)
        self.filename = filename
        self.mode = mode
        self.encoding = encoding
        self.stream: Optional[TextIO] = None

        if not delay:
            self._open()

    def _open(self) -> None:
        """Open file stream."""
        if self.stream is None:
            directory = os.path.dirname(self.filename)
            if directory:
                os.makedirs(directory, exist_ok=True)
            self.stream = open(self.filename, self.mode, encoding=self.encoding)

    def emit(self, entry: LogEntry) -> None:
        """Emit log entry to file."""
        with self._lock:
            self._open()
            self.stream.write(self.render(entry) + "\n")
            self.stream.flush()

    def close(self) -> None:
        """Close handler."""
        with self._lock:
            if self.stream is not None:
                self.stream.close()
                self.stream = None


class MemoryHandler(LogHandler):
    """Keeps the most recent entries in memory."""

    def __init__(self, max_size: int = 1000, level: LogLevel = LogLevel.TRACE):
        super().__init__(level=level)
        self.max_size = max_size
        self.buffer: List[LogEntry] = []
        self._buffer_lock = threading.RLock()

    def emit(self, entry: LogEntry) -> None:
        """Emit log entry to memory."""
        with self._buffer_lock:
            self.buffer.append(entry)
            if len(self.buffer) > self.max_size:
                self.buffer.pop(0)

    def get_logs(self) -> List[Dict[str, Any]]:
        """Get all logs from memory."""
        with self._buffer_lock:
            return [
                {
                    "timestamp": entry.timestamp,
                    "level": entry.level.value,
                    "message": entry.message,
                    "logger_name": entry.logger_name,
                    "extra": entry.extra,
                    "formatted": self.render(entry),
                }
                for entry in self.buffer
            ]

    def entries_at(self, level: LogLevel) -> List[LogEntry]:
        """Entries logged at exactly ``level``."""
        with self._buffer_lock:
            return [entry for entry in self.buffer if entry.level is level]

    def clear_logs(self) -> None:
        """Clear all logs from memory."""
        with self._buffer_lock:
            self.buffer.clear()
