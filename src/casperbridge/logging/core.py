"""Core logging interfaces and data structures for the relayer.

Loggers are handed out by a ``LogManager`` owned by the bridge context
rather than by a process-wide singleton, so two relayer instances (or two
tests) never share handlers.
"""

import json
import os
import sys
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class LogLevel(Enum):
    """Log levels."""

    TRACE = "trace"
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"
    FATAL = "fatal"

    @property
    def rank(self) -> int:
        return _LEVEL_ORDER.index(self)

    @classmethod
    def parse(cls, value: str) -> "LogLevel":
        """Parse a level name such as ``"info"`` or ``"WARN"``."""
        name = value.strip().lower()
        if name == "warn":
            name = "warning"
        return cls(name)


_LEVEL_ORDER = list(LogLevel)


@dataclass
class LogContext:
    """Log context information."""

    relayer_id: Optional[str] = None
    component: Optional[str] = None
    chain: Optional[str] = None
    direction: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Convert context to dictionary."""
        return {
            "relayer_id": self.relayer_id,
            "component": self.component,
            "chain": self.chain,
            "direction": self.direction,
            "metadata": self.metadata,
        }

    def merged_with(self, other: Optional["LogContext"]) -> "LogContext":
        """Return a context where fields set on ``other`` win."""
        if other is None:
            return self
        return LogContext(
            relayer_id=other.relayer_id or self.relayer_id,
            component=other.component or self.component,
            chain=other.chain or self.chain,
            direction=other.direction or self.direction,
            metadata={**self.metadata, **other.metadata},
        )


@dataclass
class LogEntry:
    """Log entry data structure."""

    timestamp: float
    level: LogLevel
    message: str
    logger_name: str
    context: LogContext
    exception: Optional[BaseException] = None
    extra: Dict[str, Any] = field(default_factory=dict)
    thread_id: Optional[int] = None
    process_id: Optional[int] = None

    def __post_init__(self):
        if self.thread_id is None:
            self.thread_id = threading.get_ident()
        if self.process_id is None:
            self.process_id = os.getpid()

    def to_dict(self) -> Dict[str, Any]:
        """Convert log entry to dictionary."""
        return {
            "timestamp": self.timestamp,
            "level": self.level.value,
            "message": self.message,
            "logger_name": self.logger_name,
            "context": self.context.to_dict(),
            "exception": str(self.exception) if self.exception else None,
            "extra": self.extra,
            "thread_id": self.thread_id,
            "process_id": self.process_id,
        }

    def to_json(self) -> str:
        """Convert log entry to JSON string."""
        return json.dumps(self.to_dict(), default=str)


class LogFormatter(ABC):
    """Abstract log formatter."""

    @abstractmethod
    def format(self, entry: LogEntry) -> str:
        """Format log entry."""
        pass


class LogHandler(ABC):
    """Abstract log handler."""

    def __init__(self, name: str = None, level: LogLevel = LogLevel.DEBUG):
        self.name = name or self.__class__.__name__
        self.formatter: Optional[LogFormatter] = None
        self.level: LogLevel = level
        self._lock = threading.RLock()

    def set_formatter(self, formatter: LogFormatter) -> None:
        """Set formatter."""
        with self._lock:
            self.formatter = formatter

    def set_level(self, level: LogLevel) -> None:
        """Set log level."""
        with self._lock:
            self.level = level

    def should_handle(self, entry: LogEntry) -> bool:
        """Check if handler should handle the entry."""
        with self._lock:
            return entry.level.rank >= self.level.rank

    def render(self, entry: LogEntry) -> str:
        """Format the entry, falling back to a one-line default."""
        if self.formatter:
            return self.formatter.format(entry)
        return (
            f"{entry.timestamp} [{entry.level.value.upper()}] "
            f"{entry.logger_name}: {entry.message}"
        )

    @abstractmethod
    def emit(self, entry: LogEntry) -> None:
        """Emit log entry."""
        pass

    def handle(self, entry: LogEntry) -> None:
        """Handle log entry."""
        if self.should_handle(entry):
            self.emit(entry)

    def close(self) -> None:
        """Release handler resources."""


class LogManager:
    """Routes log entries from named loggers to the registered handlers."""

    def __init__(
        self,
        level: LogLevel = LogLevel.INFO,
        context: Optional[LogContext] = None,
        handlers: Optional[Dict[str, LogHandler]] = None,
    ):
        self.level = level
        self.loggers: Dict[str, "RelayLogger"] = {}
        self.handlers: Dict[str, LogHandler] = dict(handlers or {})
        self._context = context or LogContext()
        self._lock = threading.RLock()

    def get_logger(self, name: str, context: Optional[LogContext] = None) -> "RelayLogger":
        """Get logger, optionally bound to a component-level context."""
        key = (
            name
            if context is None
            else f"{name}#{context.component}/{context.chain}/{context.direction}"
        )
        with self._lock:
            if key not in self.loggers:
                self.loggers[key] = RelayLogger(name, self, context)
            return self.loggers[key]

    def add_handler(self, name: str, handler: LogHandler) -> None:
        """Add handler."""
        with self._lock:
            self.handlers[name] = handler

    def remove_handler(self, name: str) -> None:
        """Remove handler."""
        with self._lock:
            handler = self.handlers.pop(name, None)
        if handler is not None:
            handler.close()

    def set_context(self, context: LogContext) -> None:
        """Set relayer-wide context."""
        with self._lock:
            self._context = context

    def get_context(self) -> LogContext:
        """Get relayer-wide context."""
        with self._lock:
            return self._context

    def log(
        self,
        level: LogLevel,
        message: str,
        logger_name: str = "root",
        context: Optional[LogContext] = None,
        exception: Optional[BaseException] = None,
        extra: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Log a message."""
        with self._lock:
            entry = LogEntry(
                timestamp=time.time(),
                level=level,
                message=message,
                logger_name=logger_name,
                context=self._context.merged_with(context),
                exception=exception,
                extra=extra or {},
            )

            for handler in list(self.handlers.values()):
                handler.handle(entry)

    def shutdown(self) -> None:
        """Close all handlers."""
        with self._lock:
            for handler in self.handlers.values():
                handler.close()
            self.handlers.clear()
            self.loggers.clear()


class RelayLogger:
    """Named logger bound to a ``LogManager``."""

    def __init__(
        self, name: str, manager: LogManager, context: Optional[LogContext] = None
    ):
        self.name = name
        self.manager = manager
        self.context = context

    def is_enabled_for(self, level: LogLevel) -> bool:
        """Check if logger is enabled for level."""
        return level.rank >= self.manager.level.rank

    def log(
        self,
        level: LogLevel,
        message: str,
        context: Optional[LogContext] = None,
        exception: Optional[BaseException] = None,
        extra: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Log a message."""
        if not self.is_enabled_for(level):
            return
        bound = self.context.merged_with(context) if self.context else context
        self.manager.log(
            level=level,
            message=message,
            logger_name=self.name,
            context=bound,
            exception=exception,
            extra=extra,
        )

    def trace(self, message: str, **kwargs) -> None:
        """Log trace message."""
        self.log(LogLevel.TRACE, message, **kwargs)

    def debug(self, message: str, **kwargs) -> None:
        """Log debug message."""
        self.log(LogLevel.DEBUG, message, **kwargs)

    def info(self, message: str, **kwargs) -> None:
        """Log info message."""
        self.log(LogLevel.INFO, message, **kwargs)

    def warning(self, message: str, **kwargs) -> None:
        """Log warning message."""
        self.log(LogLevel.WARNING, message, **kwargs)

    def error(self, message: str, **kwargs) -> None:
        """Log error message."""
        self.log(LogLevel.ERROR, message, **kwargs)

    def critical(self, message: str, **kwargs) -> None:
        """Log critical message."""
        self.log(LogLevel.CRITICAL, message, **kwargs)

    def fatal(self, message: str, **kwargs) -> None:
        """Log fatal message."""
        self.log(LogLevel.FATAL, message, **kwargs)

    def exception(self, message: str, **kwargs) -> None:
        """Log exception message."""
        exc = sys.exc_info()[1]
        if exc is not None:
            kwargs.setdefault("exception", exc)
        self.log(LogLevel.ERROR, message, **kwargs)
