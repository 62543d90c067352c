"""Centralized logging configuration for the application.

This module provides:
- Unified logger setup with a console handler
- Structured JSON logging with contextual fields
- Content/trace ID context propagation via contextvars
- Helper functions for getting configured loggers
- Error message sanitization for secure logging
"""

import logging
import re
import sys
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, datetime
from typing import Any

from pythonjsonlogger.json import JsonFormatter

from tagging.core.config import get_settings

# Patterns for sensitive data sanitization
_PATH_PATTERN = re.compile(r"(/[^\s:]+)+")
_CREDENTIAL_PATTERNS = [
    re.compile(r"(password|secret|token|api[_-]?key|auth)[=:]\s*\S+", re.IGNORECASE),
    re.compile(r"Bearer\s+\S+", re.IGNORECASE),
    re.compile(r"x-goog-api-key\S*", re.IGNORECASE),
]

# Context variables for per-item propagation
_content_id: ContextVar[str | None] = ContextVar("content_id", default=None)
_trace_id: ContextVar[str | None] = ContextVar("trace_id", default=None)

# Attributes set by logging itself; logging refuses extras with these names
_RESERVED_RECORD_ATTRS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", None, None))
) | {"message", "asctime"}

CONSOLE_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
JSON_FORMAT = "%(message)s"


def get_content_id() -> str | None:
    """Get the current content ID from context."""
    return _content_id.get()


def get_trace_id() -> str | None:
    """Get the current trace ID from context."""
    return _trace_id.get()


@contextmanager
def log_context(content_id: str | None = None, trace_id: str | None = None) -> Iterator[None]:
    """Bind content and trace identifiers to every log record in this scope.

    Contextvars keep the binding local to the current task, so concurrently
    processed items never see each other's identifiers.
    """
    content_token = _content_id.set(content_id)
    trace_token = _trace_id.set(trace_id)
    try:
        yield
    finally:
        _trace_id.reset(trace_token)
        _content_id.reset(content_token)


class ContextFilter(logging.Filter):
    """Filter that adds contextual information to log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        """Add content_id and trace_id to the log record."""
        if getattr(record, "content_id", None) is None:
            record.content_id = get_content_id()  # type: ignore[attr-defined]
        record.trace_id = get_trace_id()  # type: ignore[attr-defined]
        return True


class CustomJsonFormatter(JsonFormatter):
    """Custom JSON formatter with ISO timestamp and extra fields."""

    def add_fields(
        self,
        log_record: dict[str, Any],
        record: logging.LogRecord,
        message_dict: dict[str, Any],
    ) -> None:
        """Add custom fields to the JSON log record."""
        super().add_fields(log_record, record, message_dict)

        log_record["timestamp"] = datetime.now(UTC).isoformat()
        log_record["level"] = record.levelname
        log_record["component"] = record.name

        # Drop empty context fields rather than emitting nulls on every line
        for key in ("content_id", "trace_id"):
            if not log_record.get(key):
                log_record.pop(key, None)


def setup_logging() -> None:
    """Configure application-wide logging.

    Sets up a single stdout handler emitting JSON lines (or plain text when
    LOG_FORMAT=text) with the context filter attached.
    """
    settings = get_settings()

    log_level = getattr(logging, settings.log_level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(log_level)
    console_handler.addFilter(ContextFilter())
    if settings.log_format == "json":
        console_handler.setFormatter(CustomJsonFormatter(JSON_FORMAT))
    else:
        console_handler.setFormatter(logging.Formatter(CONSOLE_FORMAT))
    root_logger.addHandler(console_handler)

    # Reduce noise from third-party libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)

    root_logger.info(
        f"Logging configured: level={settings.log_level}, format={settings.log_format}"
    )


def sanitize_error(error: BaseException, max_length: int = 500) -> str:
    """Sanitize error message for secure logging.

    Removes potentially sensitive information from error messages:
    - Full file paths (keeps only filename)
    - Credentials/tokens/API keys
    - Truncates long error messages

    Args:
        error: The exception to sanitize
        max_length: Maximum length of the sanitized message (default 500)

    Returns:
        Sanitized error message safe for logging
    """
    msg = str(error)

    for pattern in _CREDENTIAL_PATTERNS:
        msg = pattern.sub("[REDACTED]", msg)

    def _simplify_path(match: re.Match[str]) -> str:
        path = match.group(0)
        parts = path.rsplit("/", 1)
        if len(parts) == 2:
            return f".../{parts[1]}"
        return path

    msg = _PATH_PATTERN.sub(_simplify_path, msg)

    if len(msg) > max_length:
        msg = msg[:max_length] + "...[truncated]"

    return msg


def safe_extra(fields: Mapping[str, Any]) -> dict[str, Any]:
    """Copy caller-supplied fields into a dict usable as a logging extra.

    Keys that collide with LogRecord attributes (name, module, message, ...)
    are prefixed with "ctx_" instead of making the logging call raise.
    """
    return {
        (f"ctx_{key}" if key in _RESERVED_RECORD_ATTRS else key): value
        for key, value in fields.items()
    }


def get_logger(name: str) -> logging.Logger:
    """Get a logger with the given name.

    Args:
        name: Logger name, typically __name__ of the calling module

    Returns:
        Configured logger instance
    """
    return logging.getLogger(name)
