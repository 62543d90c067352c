"""Core infrastructure components."""

from tagging.core.config import Settings, get_settings
from tagging.core.exceptions import (
    CircuitBreakerOpenError,
    ErrorKind,
    ProcessingError,
    TaggingError,
    ValidationError,
)
from tagging.core.logging import (
    get_content_id,
    get_logger,
    get_trace_id,
    log_context,
    setup_logging,
)

__all__ = [
    "CircuitBreakerOpenError",
    "ErrorKind",
    "ProcessingError",
    "Settings",
    "TaggingError",
    "ValidationError",
    "get_content_id",
    "get_logger",
    "get_settings",
    "get_trace_id",
    "log_context",
    "setup_logging",
]
