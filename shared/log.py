#!/usr/bin/env python3
"""
Guide client logging configuration

Centralized logging setup for consistent formatting across the project.
The console handler writes to stderr so diagnostics never mix with the
rendered message log on stdout.

Usage:
    from shared.log import get_logger

    logger = get_logger(__name__)
    logger.info("Subscribing...")
    logger.error("Publish failed", extra={"client_id": "123", "channel": "the_guide"})
"""

from __future__ import annotations
import logging
import sys
from pathlib import Path
from typing import Optional, Any
import os


# ========================================
#           LOGGING FORMATTERS
# ========================================

class ColoredFormatter(logging.Formatter):
    """Colored formatter for console output"""

    # ANSI Color codes
    COLORS = {
        'DEBUG': '\033[36m',     # Cyan
        'INFO': '\033[32m',      # Green
        'WARNING': '\033[33m',   # Yellow
        'ERROR': '\033[31m',     # Red
        'CRITICAL': '\033[35m',  # Magenta
        'RESET': '\033[0m'       # Reset
    }

    def format(self, record: logging.LogRecord) -> str:
        # Other handlers share the record, so color a copy
        record = logging.makeLogRecord(record.__dict__)
        if record.levelname in self.COLORS:
            record.levelname = f"{self.COLORS[record.levelname]}{record.levelname}{self.COLORS['RESET']}"

        return super().format(record)


class GenericFormatter(logging.Formatter):

    def format(self, record: logging.LogRecord) -> str:
        context = []

        # Extract pub/sub fields from extra data
        if getattr(record, 'client_id', None):
            context.append(f"client={record.client_id[:8]}")
        if getattr(record, 'channel', None):
            context.append(f"channel={record.channel}")
        if getattr(record, 'event_kind', None):
            context.append(f"event={record.event_kind}")
        if getattr(record, 'timetoken', None):
            context.append(f"timetoken={record.timetoken}")

        if context:
            record = logging.makeLogRecord(record.__dict__)
            record.msg = f"[{' '.join(context)}] {record.msg}"

        return super().format(record)


# ========================================
#           LOGGING CONFIGURATION
# ========================================

_loggers_configured = set()

def get_logger(name: str) -> logging.Logger:
    """
    Get a configured logger for the given module.

    Args:
        name: Usually __name__ from the calling module

    Returns:
        Configured logger instance

    Examples:
        logger = get_logger(__name__)
        logger.info("Store ready")

        # With context
        logger.error("Publish failed", extra={
            "client_id": "8f14e45f-...",
            "channel": "the_guide",
        })
    """
    logger = logging.getLogger(name)

    # Only configure each logger once
    if name not in _loggers_configured:
        _configure_logger(logger)
        _loggers_configured.add(name)

    return logger


def set_level(level: str) -> None:
    """Apply a level to every logger handed out so far"""
    log_level = _get_log_level(level)
    for name in _loggers_configured:
        logging.getLogger(name).setLevel(log_level)


def _configure_logger(logger: logging.Logger) -> None:
    """Configure a logger with appropriate handlers and formatters"""

    logger.setLevel(_get_log_level())

    # Clear existing handlers to avoid duplicates
    logger.handlers.clear()

    if _is_development():
        _add_file_handler(logger)
        _add_console_handler(logger, colored=True)
    else:
        # Production: Clean console + file logging
        _add_console_handler(logger, colored=False)
        _add_file_handler(logger)

    # Prevent duplicate messages from parent loggers
    logger.propagate = False


def _get_log_level(level: Optional[str] = None) -> int:
    """Determine appropriate log level"""

    level = level or os.getenv('GUIDE_LOG_LEVEL')
    if level:
        return getattr(logging, level.upper(), logging.INFO)

    # Default based on environment
    return logging.DEBUG if _is_development() else logging.INFO


def _is_development() -> bool:
    """Detect if we're in development mode"""
    return (
        os.getenv('PYTHON_ENV', '').lower() in ['dev', 'development'] or
        'pytest' in sys.modules
    )


def _add_console_handler(logger: logging.Logger, colored: bool = True) -> None:
    """Add console handler with appropriate formatter"""

    fmt = '[%(levelname)-8s][%(asctime)s][%(name)-5s]: %(message)s'
    handler = logging.StreamHandler(sys.stderr)

    if colored and _supports_color():
        formatter = ColoredFormatter(
            fmt=fmt,
            datefmt='%H:%M:%S'
        )
    else:
        formatter = GenericFormatter(
            fmt=fmt,
            datefmt='%Y-%m-%d %H:%M:%S'
        )

    handler.setFormatter(formatter)
    logger.addHandler(handler)


def _add_file_handler(logger: logging.Logger) -> None:
    """Add file handler for production logging"""

    log_dir = Path(os.getenv('GUIDE_LOG_DIR', 'logs'))
    log_dir.mkdir(parents=True, exist_ok=True)

    log_file = log_dir / "guide.log"
    handler = logging.FileHandler(log_file)

    formatter = GenericFormatter(
        fmt='%(asctime)s | %(name)-30s | %(levelname)-8s | %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    handler.setFormatter(formatter)
    logger.addHandler(handler)


def _supports_color() -> bool:
    """Check if terminal supports color output"""

    if not (hasattr(sys.stderr, "isatty") and sys.stderr.isatty()):
        return False

    if os.getenv("TERM", "") == "dumb":
        return False

    if sys.platform == "win32":
        # On modern Windows terminals, ANSI colors are supported
        return os.getenv("ANSICON") is not None or os.getenv("WT_SESSION") is not None or os.getenv("TERM_PROGRAM") == "vscode" or "WindowsTerminal" in os.getenv("TERM", "")

    return True

# ========================================
#           CONVENIENCE FUNCTIONS
# ========================================

def log_event(logger: logging.Logger, level: str, message: str,
              event: Optional[Any] = None,
              **context: Any) -> None:
    """
    Log a pub/sub event with structured context.

    Args:
        logger: Logger instance
        level: Log level ("debug", "info", "warning", "error")
        message: Log message
        event: Contract event (see shared.pubsub) for automatic context extraction
        **context: Additional context fields

    Example:
        log_event(logger, "debug", "Inbound event", event=message_event,
                  client_id=client_id)
    """

    extra_context = {}

    if event is not None:
        extra_context.update({
            'event_kind': type(event).__name__,
            'channel': getattr(event, 'channel', None),
            'timetoken': getattr(event, 'timetoken', None),
        })

    extra_context.update(context)

    log_func = getattr(logger, level.lower())
    log_func(message, extra=extra_context)
