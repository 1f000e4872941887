"""Relayer logging system.

Structured logging with JSON and text formatting, console, file and memory
handlers. Loggers come from a ``LogManager`` that the bridge context owns.
"""

import os
from typing import Optional

from .core import (
    LogContext,
    LogEntry,
    LogFormatter,
    LogHandler,
    LogLevel,
    LogManager,
    RelayLogger,
)
from .formatters import JSONFormatter, TextFormatter
from .handlers import ConsoleHandler, FileHandler, MemoryHandler


def setup_logging(
    level: LogLevel = LogLevel.INFO,
    log_dir: Optional[str] = None,
    relayer_id: Optional[str] = None,
) -> LogManager:
    """Build the standard relayer sinks.

    Console output in text form; when ``log_dir`` is given, an error-only
    ``error.log`` and a ``combined.log`` in JSON next to it.
    """
    manager = LogManager(level=level, context=LogContext(relayer_id=relayer_id))

    console = ConsoleHandler()
    console.set_formatter(TextFormatter())
    manager.add_handler("console", console)

    if log_dir:
        errors = FileHandler(os.path.join(log_dir, "error.log"), level=LogLevel.ERROR)
        errors.set_formatter(JSONFormatter())
        manager.add_handler("error_file", errors)

        combined = FileHandler(os.path.join(log_dir, "combined.log"))
        combined.set_formatter(JSONFormatter())
        manager.add_handler("combined_file", combined)

    return manager


__all__ = [
    # Core
    "LogLevel",
    "LogContext",
    "LogEntry",
    "LogFormatter",
    "LogHandler",
    "LogManager",
    "RelayLogger",
    "setup_logging",
    # Formatters
    "JSONFormatter",
    "TextFormatter",
    # Handlers
    "ConsoleHandler",
    "FileHandler",
    "MemoryHandler",
]
