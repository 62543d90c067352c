"""Unit tests for the exception hierarchy and error kinds."""

import pytest

from tagging.core.exceptions import (
    TRANSIENT_ERROR_KINDS,
    CircuitBreakerOpenError,
    ConfigurationError,
    DurationExceededError,
    ErrorKind,
    FormatError,
    InvalidInputError,
    ModelResponseParseError,
    ModelServiceError,
    ProcessingError,
    TaggingError,
    TaxonomyLoadError,
    UnknownTagError,
    ValidationError,
    error_kind_for_status,
    get_error_kind,
    get_exception_error_code,
)


class TestHierarchy:
    """Tests for subclass relationships and default kinds."""

    @pytest.mark.parametrize(
        "exc_class",
        [InvalidInputError, ConfigurationError, FormatError, DurationExceededError],
    )
    def test_validation_subclasses(self, exc_class: type[TaggingError]) -> None:
        """Test that input problems are validation errors."""
        error = exc_class()
        assert isinstance(error, ValidationError)
        assert error.kind == ErrorKind.VALIDATION

    def test_unknown_tag_error(self) -> None:
        """Test UnknownTagError message and details."""
        error = UnknownTagError("sushi")
        assert isinstance(error, ValidationError)
        assert error.details == {"tag": "sushi"}
        assert "sushi" in str(error)

    def test_taxonomy_load_error_is_fatal(self) -> None:
        """Test that taxonomy load failures are fatal, not validation."""
        error = TaxonomyLoadError("missing", path="/tmp/x.json")
        assert error.kind == ErrorKind.FATAL
        assert error.details == {"path": "/tmp/x.json"}
        assert not isinstance(error, ValidationError)

    def test_circuit_open_error(self) -> None:
        """Test the default message and recovery details."""
        error = CircuitBreakerOpenError("text-model", recovery_timeout=60.0)
        assert error.kind == ErrorKind.CIRCUIT_OPEN
        assert error.service_name == "text-model"
        assert "'text-model' is open" in error.message
        assert error.details == {"service": "text-model", "recovery_timeout_seconds": 60.0}

    def test_default_message_and_code(self) -> None:
        """Test class-level defaults."""
        error = TaggingError()
        assert error.message == "An unexpected error occurred"
        assert error.error_code == "INTERNAL_ERROR"
        assert str(error) == error.message


class TestProcessingErrors:
    """Tests for retryability flags on processing errors."""

    def test_retryable_default(self) -> None:
        """Test that a plain ProcessingError is retryable and UNAVAILABLE."""
        error = ProcessingError("flaky")
        assert error.retryable is True
        assert error.kind == ErrorKind.UNAVAILABLE

    def test_non_retryable_defaults_to_fatal(self) -> None:
        """Test that retryable=False without a kind becomes FATAL."""
        error = ProcessingError("broken", retryable=False)
        assert error.kind == ErrorKind.FATAL

    def test_non_retryable_keeps_explicit_kind(self) -> None:
        """Test that an explicit kind is preserved."""
        error = ProcessingError("broken", retryable=False, kind=ErrorKind.TIMEOUT)
        assert error.kind == ErrorKind.TIMEOUT
        assert error.retryable is False

    @pytest.mark.parametrize(
        ("kind", "retryable"),
        [
            (ErrorKind.THROTTLING, True),
            (ErrorKind.TIMEOUT, True),
            (ErrorKind.NETWORK, True),
            (ErrorKind.VALIDATION, False),
        ],
    )
    def test_model_service_error_retryable_from_kind(
        self, kind: ErrorKind, retryable: bool
    ) -> None:
        """Test that ModelServiceError derives retryability from its kind."""
        error = ModelServiceError("x", service_name="text-model", kind=kind)
        assert error.retryable is retryable

    def test_model_service_error_log_dict(self) -> None:
        """Test structured logging payload."""
        original = ConnectionError("refused")
        error = ModelServiceError(
            "connect failed",
            service_name="video-model",
            kind=ErrorKind.NETWORK,
            status_code=None,
            original_error=original,
        )
        log_dict = error.to_log_dict()
        assert log_dict["kind"] == "network"
        assert log_dict["service_name"] == "video-model"
        assert log_dict["original_error"] == {"type": "ConnectionError", "message": "refused"}

    def test_parse_error_truncates_raw_response(self) -> None:
        """Test that raw model output is truncated in details."""
        error = ModelResponseParseError("bad", raw_response="x" * 500)
        assert error.raw_response == "x" * 500
        assert len(error.details["raw_response"]) == 200
        assert error.retryable is False


class TestHelpers:
    """Tests for module-level helpers."""

    def test_transient_kinds(self) -> None:
        """Test the set of kinds retried by default."""
        assert ErrorKind.VALIDATION not in TRANSIENT_ERROR_KINDS
        assert ErrorKind.CIRCUIT_OPEN not in TRANSIENT_ERROR_KINDS
        assert ErrorKind.FATAL not in TRANSIENT_ERROR_KINDS
        assert ErrorKind.UNKNOWN not in TRANSIENT_ERROR_KINDS
        assert len(TRANSIENT_ERROR_KINDS) == 5

    def test_get_error_kind(self) -> None:
        """Test kind lookup for package and foreign errors."""
        assert get_error_kind(ValidationError()) == ErrorKind.VALIDATION
        assert get_error_kind(ValueError()) is None

    def test_get_exception_error_code(self) -> None:
        """Test error code lookup."""
        assert get_exception_error_code(FormatError()) == "UNSUPPORTED_FORMAT"
        assert get_exception_error_code(KeyError()) == "INTERNAL_ERROR"

    def test_to_dict(self) -> None:
        """Test API-style serialization."""
        error = InvalidInputError("bad", field="content_text", constraint="required")
        assert error.to_dict() == {
            "code": "INVALID_INPUT",
            "kind": "validation",
            "message": "bad",
            "details": {"field": "content_text", "constraint": "required"},
        }

    @pytest.mark.parametrize(
        ("status_code", "kind"),
        [
            (429, ErrorKind.THROTTLING),
            (502, ErrorKind.UNAVAILABLE),
            (504, ErrorKind.UNAVAILABLE),
            (501, ErrorKind.INTERNAL),
            (422, ErrorKind.VALIDATION),
        ],
    )
    def test_error_kind_for_status(self, status_code: int, kind: ErrorKind) -> None:
        """Test HTTP status mapping."""
        assert error_kind_for_status(status_code) == kind
