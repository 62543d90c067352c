"""Tagging services: resilience, validation, routing and model clients."""

from .circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitBreakerRegistry,
    CircuitState,
)
from .cost_tracker import calculate_cost
from .frame_sampler import aggregate_frame_tags, sample_frames, validate_video_format
from .response_parser import parse_tag_response
from .retry import RetryConfig, classify_error, is_retryable_error, retry_with_backoff
from .routing import RoutingDecision, route_content
from .tagging_pipeline import TaggingOutcome, TaggingPipeline
from .taxonomy import TagValidation, Taxonomy, TaxonomyProvider
from .text_model_client import TextModelClient
from .video_model_client import VideoModelClient

__all__ = [
    "CircuitBreaker",
    "CircuitBreakerConfig",
    "CircuitBreakerRegistry",
    "CircuitState",
    "RetryConfig",
    "RoutingDecision",
    "TagValidation",
    "TaggingOutcome",
    "TaggingPipeline",
    "Taxonomy",
    "TaxonomyProvider",
    "TextModelClient",
    "VideoModelClient",
    "aggregate_frame_tags",
    "calculate_cost",
    "classify_error",
    "is_retryable_error",
    "parse_tag_response",
    "retry_with_backoff",
    "route_content",
    "sample_frames",
    "validate_video_format",
]
