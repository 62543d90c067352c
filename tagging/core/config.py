"""Application configuration using Pydantic Settings."""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Taxonomy shipped with the package, used when TAXONOMY_PATH is not set
DEFAULT_TAXONOMY_PATH = str(
    Path(__file__).resolve().parent.parent / "data" / "taxonomy" / "taxonomy-v1.json"
)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application settings
    app_name: str = "Content Tagging"
    app_version: str = "0.1.0"
    environment: str = Field(
        default="development",
        description="Deployment environment name (development, staging, production, test)",
    )

    # Logging settings
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )
    log_format: Literal["json", "text"] = Field(
        default="json",
        description="Console log format. JSON lines are what the log pipeline ingests.",
    )

    # Routing settings
    confidence_threshold: float = Field(
        default=0.85,
        description="Minimum per-tag confidence required to auto-publish (0.0-1.0)",
        ge=0.0,
        le=1.0,
    )

    # Taxonomy settings
    taxonomy_path: str = Field(
        default=DEFAULT_TAXONOMY_PATH,
        description="Path to the versioned taxonomy JSON document",
    )
    max_tags_per_content: int = Field(
        default=10,
        description="Maximum tags requested from a model per content item",
        ge=1,
        le=50,
    )

    # Video settings
    enable_video_processing: bool = Field(
        default=True,
        description="Enable tagging of video content",
    )
    frame_sampling_interval_seconds: float = Field(
        default=15.0,
        description="Seconds between sampled video frames",
        gt=0.0,
        le=600.0,
    )

    # Circuit breaker settings
    circuit_breaker_failure_threshold: int = Field(
        default=5,
        description="Consecutive failures before a model circuit opens",
        ge=1,
        le=100,
    )
    circuit_breaker_success_threshold: int = Field(
        default=2,
        description="Consecutive half-open successes required to close a circuit",
        ge=1,
        le=100,
    )
    circuit_breaker_timeout_seconds: float = Field(
        default=60.0,
        description="Seconds an open circuit rejects calls before probing recovery",
        gt=0.0,
        le=3600.0,
    )

    # Retry settings
    retry_max_attempts: int = Field(
        default=3,
        description="Maximum attempts per model invocation (including the first)",
        ge=1,
        le=10,
    )
    retry_initial_delay_seconds: float = Field(
        default=1.0,
        description="Delay before the first retry",
        ge=0.0,
        le=60.0,
    )
    retry_max_delay_seconds: float = Field(
        default=30.0,
        description="Upper bound for a single backoff delay",
        ge=0.0,
        le=600.0,
    )
    retry_backoff_multiplier: float = Field(
        default=2.0,
        description="Exponential growth factor between retries",
        ge=1.0,
        le=10.0,
    )

    # Text model settings
    text_model_url: str = Field(
        default="http://localhost:8091",
        description="Text model messages endpoint base URL",
        pattern=r"^https?://.*",
    )
    text_model_id: str = Field(
        default="anthropic.claude-3-5-sonnet-20241022-v2:0",
        description="Text model identifier, also used for cost lookup",
    )
    text_model_api_key: str | None = Field(
        default=None,
        description="API key for the text model endpoint",
    )
    text_model_mock: bool = Field(
        default=False,
        description="Return synthetic text model output instead of calling the API",
    )

    # Video model settings
    video_model_url: str = Field(
        default="https://generativelanguage.googleapis.com",
        description="Vision model API base URL",
        pattern=r"^https?://.*",
    )
    video_model_id: str = Field(
        default="gemini-1.5-flash",
        description="Vision model identifier, also used for cost lookup",
    )
    video_model_api_key: str | None = Field(
        default=None,
        description="API key for the vision model",
    )
    video_model_mock: bool = Field(
        default=False,
        description="Return synthetic per-frame output instead of calling the API",
    )

    # HTTP timeouts shared by model clients
    model_connect_timeout: float = Field(
        default=10.0,
        description="Seconds to establish a connection to a model endpoint",
        gt=0.0,
        le=120.0,
    )
    model_read_timeout: float = Field(
        default=30.0,
        description="Seconds to wait for a model response",
        gt=0.0,
        le=600.0,
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Normalize and validate the log level name."""
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Invalid log level: {v}")
        return level

    @field_validator("text_model_url", "video_model_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
