"""Composition root wiring the tagging services together.

All long-lived shared state (the circuit breaker registry, the cached
taxonomy, HTTP connection pools) is created here once per process and handed
to the services that need it. Nothing else in the package keeps module-level
mutable state apart from the cached settings.

Usage:
    container = build_container(get_settings())
    outcome = await container.pipeline.tag(content)
    ...
    await container.close()
"""

from __future__ import annotations

from dataclasses import dataclass

from tagging.core.config import Settings
from tagging.core.logging import get_logger
from tagging.services.circuit_breaker import CircuitBreakerConfig, CircuitBreakerRegistry
from tagging.services.retry import RetryConfig
from tagging.services.tagging_pipeline import TaggingPipeline
from tagging.services.taxonomy import TaxonomyProvider
from tagging.services.text_model_client import TextModelClient
from tagging.services.video_model_client import VideoModelClient

logger = get_logger(__name__)


@dataclass(slots=True)
class Container:
    """Process-wide service instances."""

    settings: Settings
    breakers: CircuitBreakerRegistry
    taxonomy: TaxonomyProvider
    text_client: TextModelClient
    video_client: VideoModelClient
    pipeline: TaggingPipeline

    async def close(self) -> None:
        """Release HTTP connection pools."""
        await self.text_client.close()
        await self.video_client.close()
        logger.info("Container shut down")


def breaker_config_from_settings(settings: Settings) -> CircuitBreakerConfig:
    return CircuitBreakerConfig(
        failure_threshold=settings.circuit_breaker_failure_threshold,
        success_threshold=settings.circuit_breaker_success_threshold,
        timeout=settings.circuit_breaker_timeout_seconds,
    )


def retry_config_from_settings(settings: Settings) -> RetryConfig:
    return RetryConfig(
        max_attempts=settings.retry_max_attempts,
        initial_delay=settings.retry_initial_delay_seconds,
        max_delay=settings.retry_max_delay_seconds,
        backoff_multiplier=settings.retry_backoff_multiplier,
    )


def build_container(settings: Settings) -> Container:
    """Construct every service from settings.

    The taxonomy is not read here; it loads lazily on first use.
    """
    breakers = CircuitBreakerRegistry()
    taxonomy = TaxonomyProvider(settings.taxonomy_path)

    text_client = TextModelClient(
        settings.text_model_url,
        settings.text_model_id,
        api_key=settings.text_model_api_key,
        mock=settings.text_model_mock,
        connect_timeout=settings.model_connect_timeout,
        read_timeout=settings.model_read_timeout,
    )
    video_client = VideoModelClient(
        settings.video_model_url,
        settings.video_model_id,
        api_key=settings.video_model_api_key,
        mock=settings.video_model_mock,
        connect_timeout=settings.model_connect_timeout,
        read_timeout=settings.model_read_timeout,
    )

    pipeline = TaggingPipeline(
        taxonomy=taxonomy,
        breakers=breakers,
        text_client=text_client,
        video_client=video_client,
        breaker_config=breaker_config_from_settings(settings),
        retry_config=retry_config_from_settings(settings),
        confidence_threshold=settings.confidence_threshold,
        frame_interval_seconds=settings.frame_sampling_interval_seconds,
        default_max_tags=settings.max_tags_per_content,
        enable_video=settings.enable_video_processing,
    )

    logger.info(
        f"Container built for environment={settings.environment}",
        extra={
            "confidence_threshold": settings.confidence_threshold,
            "taxonomy_path": settings.taxonomy_path,
            "video_enabled": settings.enable_video_processing,
        },
    )

    return Container(
        settings=settings,
        breakers=breakers,
        taxonomy=taxonomy,
        text_client=text_client,
        video_client=video_client,
        pipeline=pipeline,
    )
