#!/usr/bin/env python3
"""Structured logging for destfs.

This module provides a structured logger with:
- Log levels matching Python's logging module
- Key-value context appended to messages
- Context-local context stacks (safe across asyncio tasks)
- Optional rotating file output

Example:
    >>> logger = Logger("destfs.write", level=LogLevel.DEBUG)
    >>> logger.info("Wrote file", path="/out/a.txt", size=5)
    >>> with logger.add_context(file="/out/a.txt"):
    ...     logger.debug("Reconciling metadata")
"""

import logging
import logging.handlers
from contextlib import contextmanager
from contextvars import ContextVar
from enum import IntEnum
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Context stack shared by all loggers; each asyncio task sees its own copy
_context_stack: ContextVar[Tuple[Dict[str, Any], ...]] = ContextVar(
    "destfs_log_context", default=()
)


class LogLevel(IntEnum):
    """Log levels matching Python's logging module."""

    NOTSET = logging.NOTSET  # 0, defer to parent
    DEBUG = logging.DEBUG  # 10
    INFO = logging.INFO  # 20
    WARNING = logging.WARNING  # 30
    ERROR = logging.ERROR  # 40
    CRITICAL = logging.CRITICAL  # 50


class Logger:
    """Structured logger with context support.

    Wraps a stdlib logger. Messages get the merged context appended as
    ``key=value`` pairs, and the raw context is attached to the record as
    ``record.context`` for handlers that want it.
    """

    def __init__(
        self,
        name: str = "destfs",
        level: Union[LogLevel, str] = LogLevel.INFO,
        handlers: Optional[List[logging.Handler]] = None,
    ):
        """Initialize logger.

        Args:
            name: Logger name (dotted, children of "destfs")
            level: Minimum log level to output
            handlers: Handlers to install; when omitted the logger
                propagates to its parent instead
        """
        self.name = name
        self.logger = logging.getLogger(name)
        self.set_level(level)

        if handlers is not None:
            self.logger.handlers.clear()
            for handler in handlers:
                self.logger.addHandler(handler)
            self.logger.propagate = False

    @staticmethod
    def create_console_handler() -> logging.StreamHandler:
        """Create a console handler with the default format."""
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
        return handler

    @staticmethod
    def create_file_handler(
        filename: Union[str, Path],
        max_bytes: int = 10 * 1024 * 1024,  # 10MB
        backup_count: int = 5,
    ) -> logging.handlers.RotatingFileHandler:
        """Create rotating file handler.

        Args:
            filename: Path to log file
            max_bytes: Maximum size before rotation
            backup_count: Number of backup files to keep

        Returns:
            Configured rotating file handler
        """
        handler = logging.handlers.RotatingFileHandler(
            filename, maxBytes=max_bytes, backupCount=backup_count
        )
        handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
        return handler

    def add_handler(self, handler: logging.Handler) -> None:
        self.logger.addHandler(handler)

    def remove_handler(self, handler: logging.Handler) -> None:
        self.logger.removeHandler(handler)

    def set_level(self, level: Union[LogLevel, str]) -> None:
        """Set the minimum log level.

        Args:
            level: New log level (LogLevel or string)
        """
        if isinstance(level, str):
            level = LogLevel[level.upper()]
        self.logger.setLevel(level)

    def get_level(self) -> LogLevel:
        return LogLevel(self.logger.getEffectiveLevel())

    def _get_context(self) -> Dict[str, Any]:
        context: Dict[str, Any] = {}
        for ctx in _context_stack.get():
            context.update(ctx)
        return context

    def _format_message(self, msg: str, context: Dict[str, Any]) -> str:
        if context:
            ctx_str = " ".join(f"{k}={v}" for k, v in context.items())
            return f"{msg} | {ctx_str}"
        return msg

    @contextmanager
    def add_context(self, **kwargs):
        """Context manager to add temporary context.

        Args:
            **kwargs: Key-value pairs to add to context

        Example:
            >>> with logger.add_context(path="/out/a.txt"):
            ...     logger.info("Writing")
        """
        token = _context_stack.set(_context_stack.get() + (kwargs,))
        try:
            yield
        finally:
            _context_stack.reset(token)

    def _log(self, level: LogLevel, msg: str, context: Dict[str, Any], **kwargs) -> None:
        if not self.logger.isEnabledFor(level):
            return
        combined_context = self._get_context()
        combined_context.update(context)
        formatted_msg = self._format_message(msg, combined_context)
        self.logger.log(level, formatted_msg, extra={"context": combined_context}, **kwargs)

    def debug(self, msg: str, **context) -> None:
        self._log(LogLevel.DEBUG, msg, context)

    def info(self, msg: str, **context) -> None:
        self._log(LogLevel.INFO, msg, context)

    def warning(self, msg: str, **context) -> None:
        self._log(LogLevel.WARNING, msg, context)

    def error(self, msg: str, **context) -> None:
        self._log(LogLevel.ERROR, msg, context)

    def exception(self, msg: str, exc: BaseException, **context) -> None:
        """Log exception with traceback.

        Args:
            msg: Log message
            exc: Exception to log
            **context: Additional context key-value pairs
        """
        context["exception_type"] = type(exc).__name__
        context["exception_message"] = str(exc)
        self._log(LogLevel.ERROR, msg, context, exc_info=exc)

    def is_enabled_for(self, level: Union[LogLevel, str]) -> bool:
        if isinstance(level, str):
            level = LogLevel[level.upper()]
        return self.logger.isEnabledFor(level)


_loggers: Dict[str, Logger] = {}


def get_logger(name: str = "destfs") -> Logger:
    """Get or create the logger for a name.

    Args:
        name: Logger name

    Returns:
        Logger instance (one per name)
    """
    logger = _loggers.get(name)
    if logger is None:
        # Children defer to the "destfs" root logger's level
        level = LogLevel.INFO if name == "destfs" else LogLevel.NOTSET
        logger = Logger(name=name, level=level)
        _loggers[name] = logger
    return logger


def set_global_logger(logger: Logger) -> None:
    """Register a logger instance under its name.

    Args:
        logger: Logger returned by later get_logger(logger.name) calls
    """
    _loggers[logger.name] = logger


def configure_logging(
    level: Union[LogLevel, str] = LogLevel.INFO,
    log_file: Optional[Union[str, Path]] = None,
) -> Logger:
    """Configure the "destfs" root logger.

    All module loggers are children of it, so its handlers and level apply
    to the whole package.

    Args:
        level: Minimum level
        log_file: Optional rotating log file

    Returns:
        The root destfs Logger
    """
    handlers: List[logging.Handler] = [Logger.create_console_handler()]
    if log_file:
        handlers.append(Logger.create_file_handler(log_file))

    root = Logger(name="destfs", level=level, handlers=handlers)
    set_global_logger(root)
    return root
