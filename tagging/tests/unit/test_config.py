"""Unit tests for application settings."""

from pathlib import Path

import pytest
from pydantic import ValidationError as PydanticValidationError

from tagging.core.config import DEFAULT_TAXONOMY_PATH, Settings, get_settings


class TestSettingsDefaults:
    """Tests for default configuration values."""

    def test_defaults(self, monkeypatch) -> None:
        """Test documented defaults."""
        for var in ("CONFIDENCE_THRESHOLD", "LOG_LEVEL", "TAXONOMY_PATH", "MAX_TAGS_PER_CONTENT"):
            monkeypatch.delenv(var, raising=False)
        settings = Settings(_env_file=None)

        assert settings.environment == "test"
        assert settings.confidence_threshold == 0.85
        assert settings.max_tags_per_content == 10
        assert settings.frame_sampling_interval_seconds == 15.0
        assert settings.enable_video_processing is True
        assert settings.circuit_breaker_failure_threshold == 5
        assert settings.circuit_breaker_success_threshold == 2
        assert settings.circuit_breaker_timeout_seconds == 60.0
        assert settings.retry_max_attempts == 3
        assert settings.retry_initial_delay_seconds == 1.0
        assert settings.retry_max_delay_seconds == 30.0
        assert settings.retry_backoff_multiplier == 2.0
        assert settings.taxonomy_path == DEFAULT_TAXONOMY_PATH

    def test_packaged_taxonomy_exists(self) -> None:
        """Test that the default taxonomy path points at a real file."""
        assert Path(DEFAULT_TAXONOMY_PATH).is_file()


class TestSettingsFromEnvironment:
    """Tests for environment variable overrides and validation."""

    def test_env_overrides(self, monkeypatch) -> None:
        """Test that environment variables override defaults."""
        monkeypatch.setenv("CONFIDENCE_THRESHOLD", "0.7")
        monkeypatch.setenv("ENABLE_VIDEO_PROCESSING", "false")
        monkeypatch.setenv("RETRY_MAX_ATTEMPTS", "5")
        settings = Settings(_env_file=None)

        assert settings.confidence_threshold == 0.7
        assert settings.enable_video_processing is False
        assert settings.retry_max_attempts == 5

    @pytest.mark.parametrize("value", ["-0.1", "1.5"])
    def test_threshold_bounds(self, monkeypatch, value: str) -> None:
        """Test that the confidence threshold must lie in [0, 1]."""
        monkeypatch.setenv("CONFIDENCE_THRESHOLD", value)
        with pytest.raises(PydanticValidationError):
            Settings(_env_file=None)

    def test_log_level_normalized(self, monkeypatch) -> None:
        """Test that the log level is upper-cased."""
        monkeypatch.setenv("LOG_LEVEL", "debug")
        assert Settings(_env_file=None).log_level == "DEBUG"

    def test_invalid_log_level(self, monkeypatch) -> None:
        """Test that unknown log levels are rejected."""
        monkeypatch.setenv("LOG_LEVEL", "VERBOSE")
        with pytest.raises(PydanticValidationError):
            Settings(_env_file=None)

    def test_model_url_trailing_slash_stripped(self, monkeypatch) -> None:
        """Test URL normalization."""
        monkeypatch.setenv("TEXT_MODEL_URL", "https://text.example.com/")
        assert Settings(_env_file=None).text_model_url == "https://text.example.com"

    def test_model_url_requires_scheme(self, monkeypatch) -> None:
        """Test that model URLs must be http(s)."""
        monkeypatch.setenv("VIDEO_MODEL_URL", "ftp://video.example.com")
        with pytest.raises(PydanticValidationError):
            Settings(_env_file=None)

    def test_zero_frame_interval_rejected(self, monkeypatch) -> None:
        """Test that the sampling interval must be positive."""
        monkeypatch.setenv("FRAME_SAMPLING_INTERVAL_SECONDS", "0")
        with pytest.raises(PydanticValidationError):
            Settings(_env_file=None)


class TestGetSettings:
    """Tests for the cached settings accessor."""

    def test_cached(self) -> None:
        """Test that get_settings returns one instance until cleared."""
        assert get_settings() is get_settings()

    def test_cache_clear_rereads_environment(self, monkeypatch) -> None:
        """Test that clearing the cache picks up new environment values."""
        first = get_settings()
        monkeypatch.setenv("MAX_TAGS_PER_CONTENT", "4")
        get_settings.cache_clear()
        second = get_settings()

        assert second is not first
        assert second.max_tags_per_content == 4
