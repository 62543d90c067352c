"""Consolidated exception hierarchy for the content tagging core.

This module provides an exception hierarchy that:
1. Categorizes errors by domain (validation, model services, taxonomy, video input)
2. Tags every error with an explicit ErrorKind at its origin so the retry
   engine can switch on the kind instead of pattern-matching message text
3. Enables structured error payloads for logging
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class ErrorKind(Enum):
    """Failure categories used to decide whether an error is worth retrying."""

    THROTTLING = "throttling"
    TIMEOUT = "timeout"
    UNAVAILABLE = "unavailable"
    INTERNAL = "internal"
    NETWORK = "network"
    VALIDATION = "validation"
    CIRCUIT_OPEN = "circuit_open"
    FATAL = "fatal"
    UNKNOWN = "unknown"


# Kinds retried by default: transient upstream conditions only
TRANSIENT_ERROR_KINDS: frozenset[ErrorKind] = frozenset(
    {
        ErrorKind.THROTTLING,
        ErrorKind.TIMEOUT,
        ErrorKind.UNAVAILABLE,
        ErrorKind.INTERNAL,
        ErrorKind.NETWORK,
    }
)


class TaggingError(Exception):
    """Base exception for all application-specific errors."""

    default_message: str = "An unexpected error occurred"
    default_error_code: str = "INTERNAL_ERROR"
    default_kind: ErrorKind = ErrorKind.FATAL

    def __init__(
        self,
        message: str | None = None,
        *,
        error_code: str | None = None,
        kind: ErrorKind | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.message = message or self.default_message
        self.error_code = error_code or self.default_error_code
        self.kind = kind or self.default_kind
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "code": self.error_code,
            "kind": self.kind.value,
            "message": self.message,
        }
        if self.details:
            result["details"] = self.details
        return result


# Validation Errors
class ValidationError(TaggingError):
    default_message = "Validation failed"
    default_error_code = "VALIDATION_ERROR"
    default_kind = ErrorKind.VALIDATION


class InvalidInputError(ValidationError):
    default_message = "Invalid input provided"
    default_error_code = "INVALID_INPUT"

    def __init__(
        self,
        message: str | None = None,
        *,
        field: str | None = None,
        value: Any = None,
        constraint: str | None = None,
        **kwargs: Any,
    ) -> None:
        details = kwargs.pop("details", {}) or {}
        if field:
            details["field"] = field
        if value is not None:
            str_value = str(value)
            details["value"] = str_value[:100] if len(str_value) > 100 else str_value
        if constraint:
            details["constraint"] = constraint
        super().__init__(message, details=details, **kwargs)


class ConfigurationError(ValidationError):
    default_message = "Configuration error"
    default_error_code = "CONFIGURATION_ERROR"


# Video input errors
class FormatError(ValidationError):
    """Raised when a video URL does not carry a supported file extension."""

    default_message = "Unsupported video format"
    default_error_code = "UNSUPPORTED_FORMAT"

    def __init__(
        self,
        message: str | None = None,
        *,
        extension: str | None = None,
        supported: tuple[str, ...] | None = None,
        **kwargs: Any,
    ) -> None:
        self.extension = extension
        details = kwargs.pop("details", {}) or {}
        details["extension"] = extension or "(none)"
        if supported:
            details["supported"] = list(supported)
        super().__init__(message, details=details, **kwargs)


class DurationExceededError(ValidationError):
    """Raised when a video is longer than the hard sampling cap."""

    default_message = "Video duration exceeds the supported maximum"
    default_error_code = "DURATION_EXCEEDED"

    def __init__(
        self,
        message: str | None = None,
        *,
        duration_seconds: float | None = None,
        max_duration_seconds: float | None = None,
        **kwargs: Any,
    ) -> None:
        self.duration_seconds = duration_seconds
        self.max_duration_seconds = max_duration_seconds
        details = kwargs.pop("details", {}) or {}
        if duration_seconds is not None:
            details["duration_seconds"] = duration_seconds
        if max_duration_seconds is not None:
            details["max_duration_seconds"] = max_duration_seconds
        super().__init__(message, details=details, **kwargs)


# Taxonomy errors
class UnknownTagError(ValidationError):
    """Raised by canonical lookup when neither the tag nor a synonym matches."""

    default_message = "Tag not found in taxonomy"
    default_error_code = "UNKNOWN_TAG"

    def __init__(self, tag: str, message: str | None = None, **kwargs: Any) -> None:
        self.tag = tag
        if message is None:
            message = f'Tag or synonym "{tag}" not found in taxonomy'
        details = kwargs.pop("details", {}) or {}
        details["tag"] = tag
        super().__init__(message, details=details, **kwargs)


class TaxonomyLoadError(TaggingError):
    """Raised when the taxonomy source is missing or structurally invalid.

    This is fatal for the process: there is no fallback vocabulary.
    """

    default_message = "Taxonomy could not be loaded"
    default_error_code = "TAXONOMY_LOAD_FAILED"
    default_kind = ErrorKind.FATAL

    def __init__(
        self,
        message: str | None = None,
        *,
        path: str | None = None,
        **kwargs: Any,
    ) -> None:
        self.path = path
        details = kwargs.pop("details", {}) or {}
        if path:
            details["path"] = path
        super().__init__(message, details=details, **kwargs)


# Processing errors
class ProcessingError(TaggingError):
    """Operational failure raised by a wrapped operation.

    The retryable flag is consulted by the retry engine. A retryable error
    defaults to UNAVAILABLE; a non-retryable one defaults to FATAL and is
    never retried whatever its kind.
    """

    default_message = "Processing error occurred"
    default_error_code = "PROCESSING_ERROR"
    default_kind = ErrorKind.UNAVAILABLE

    def __init__(
        self,
        message: str | None = None,
        *,
        retryable: bool = True,
        operation: str | None = None,
        kind: ErrorKind | None = None,
        **kwargs: Any,
    ) -> None:
        self.retryable = retryable
        if not retryable and kind is None:
            kind = ErrorKind.FATAL
        details = kwargs.pop("details", {}) or {}
        if operation:
            details["operation"] = operation
        super().__init__(message, kind=kind, details=details, **kwargs)


class ModelServiceError(ProcessingError):
    """Raised when a model endpoint call fails at the transport or HTTP layer.

    The kind is derived from the failure where it happens (timeout, connection
    error, HTTP status) so callers and the retry engine never need to inspect
    the message.
    """

    default_message = "Model service temporarily unavailable"
    default_error_code = "MODEL_SERVICE_ERROR"

    def __init__(
        self,
        message: str | None = None,
        *,
        service_name: str,
        kind: ErrorKind = ErrorKind.UNAVAILABLE,
        status_code: int | None = None,
        original_error: BaseException | None = None,
        **kwargs: Any,
    ) -> None:
        self.service_name = service_name
        self.status_code = status_code
        self.original_error = original_error
        details = kwargs.pop("details", {}) or {}
        details["service"] = service_name
        if status_code is not None:
            details["status_code"] = status_code
        retryable = kind in TRANSIENT_ERROR_KINDS
        super().__init__(message, retryable=retryable, kind=kind, details=details, **kwargs)

    def to_log_dict(self) -> dict[str, Any]:
        """Convert to dictionary for structured logging."""
        result: dict[str, Any] = {
            "error_code": self.error_code,
            "kind": self.kind.value,
            "message": self.message,
            "service_name": self.service_name,
            "status_code": self.status_code,
            "original_error": None,
        }
        if self.original_error:
            result["original_error"] = {
                "type": type(self.original_error).__name__,
                "message": str(self.original_error),
            }
        return result


class ModelResponseParseError(ProcessingError):
    """Raised when a model reply cannot be turned into tag results.

    Retrying the same prompt rarely fixes a malformed reply, so this is fatal
    for the current attempt.
    """

    default_message = "Failed to parse model response"
    default_error_code = "MODEL_RESPONSE_PARSE_ERROR"

    def __init__(
        self,
        message: str | None = None,
        *,
        raw_response: str | None = None,
        **kwargs: Any,
    ) -> None:
        self.raw_response = raw_response
        details = kwargs.pop("details", {}) or {}
        if raw_response is not None:
            details["raw_response"] = raw_response[:200]
        super().__init__(message, retryable=False, details=details, **kwargs)


class CircuitBreakerOpenError(TaggingError):
    default_message = "Service temporarily unavailable due to repeated failures"
    default_error_code = "CIRCUIT_BREAKER_OPEN"
    default_kind = ErrorKind.CIRCUIT_OPEN

    def __init__(
        self,
        service_name: str,
        message: str | None = None,
        *,
        recovery_timeout: float | None = None,
        **kwargs: Any,
    ) -> None:
        self.service_name = service_name
        if message is None:
            message = (
                f"Circuit breaker for '{service_name}' is open. Service is temporarily unavailable."
            )
        details = kwargs.pop("details", {}) or {}
        details["service"] = service_name
        if recovery_timeout is not None:
            details["recovery_timeout_seconds"] = recovery_timeout
        super().__init__(message, details=details, **kwargs)


def get_error_kind(exc: BaseException) -> ErrorKind | None:
    """Return the kind attached at the error's origin, if any."""
    if isinstance(exc, TaggingError):
        return exc.kind
    return None


def get_exception_error_code(exc: BaseException) -> str:
    if isinstance(exc, TaggingError):
        return exc.error_code
    return "INTERNAL_ERROR"


def error_kind_for_status(status_code: int) -> ErrorKind:
    """Map an HTTP status from a model endpoint onto an error kind."""
    if status_code == 429:
        return ErrorKind.THROTTLING
    if status_code in (502, 503, 504):
        return ErrorKind.UNAVAILABLE
    if status_code >= 500:
        return ErrorKind.INTERNAL
    return ErrorKind.VALIDATION
