"""Tagging pipeline composing the resilience core.

Per content item:
    1. Build the model request (taxonomy injected into the prompt)
    2. Invoke the model through its circuit breaker, with retry-with-backoff
       nested inside the breaker: one breaker failure stands for an exhausted
       retry sequence
    3. For video, aggregate per-frame tag lists into one list
    4. Split off hallucinated tags with the taxonomy validator
    5. Route the remaining tags by confidence

Every processing error is logged and re-raised so the message boundary can
redeliver or dead-letter the item.
"""

from __future__ import annotations

import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, TypeVar

from tagging.core.exceptions import InvalidInputError, ValidationError, get_exception_error_code
from tagging.core.logging import get_logger, log_context, sanitize_error
from tagging.core.metrics import (
    observe_processing_duration,
    record_hallucinated_tags,
    record_model_usage,
    record_routing_decision,
)
from tagging.models.content import ContentInput, ContentType, TagResult
from tagging.services.circuit_breaker import CircuitBreakerConfig, CircuitBreakerRegistry
from tagging.services.cost_tracker import calculate_cost
from tagging.services.frame_sampler import (
    aggregate_frame_tags,
    sample_frames,
    validate_video_format,
)
from tagging.services.retry import RetryConfig, retry_with_backoff
from tagging.services.routing import RoutingDecision, route_content
from tagging.services.taxonomy import Taxonomy, TaxonomyProvider
from tagging.services.text_model_client import TextModelClient
from tagging.services.video_model_client import VideoModelClient

logger = get_logger(__name__)

T = TypeVar("T")

TEXT_MODEL_BREAKER = "text-model"
VIDEO_MODEL_BREAKER = "video-model"


@dataclass(frozen=True, slots=True)
class TaggingOutcome:
    """Result of tagging one content item, ready to persist."""

    content_id: str
    content_type: ContentType
    model: str
    tags: list[TagResult]
    invalid_tags: list[str]
    routing: RoutingDecision
    input_tokens: int
    output_tokens: int
    cost_usd: float
    processing_time_ms: int
    frame_count: int | None = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "content_id": self.content_id,
            "content_type": self.content_type.value,
            "model": self.model,
            "tags": [t.to_dict() for t in self.tags],
            "invalid_tags": list(self.invalid_tags),
            "routing": self.routing.to_dict(),
            "input_tokens": self.input_tokens,
            "output_tokens": self.output_tokens,
            "cost_usd": self.cost_usd,
            "processing_time_ms": self.processing_time_ms,
        }
        if self.frame_count is not None:
            result["frame_count"] = self.frame_count
        return result


class TaggingPipeline:
    """Tags content items with the text or vision model.

    Usage:
        pipeline = build_container(settings).pipeline
        outcome = await pipeline.tag(content)
        if outcome.routing.needs_review:
            ...
    """

    def __init__(
        self,
        *,
        taxonomy: TaxonomyProvider,
        breakers: CircuitBreakerRegistry,
        text_client: TextModelClient,
        video_client: VideoModelClient,
        breaker_config: CircuitBreakerConfig | None = None,
        retry_config: RetryConfig | None = None,
        confidence_threshold: float = 0.85,
        frame_interval_seconds: float = 15.0,
        default_max_tags: int = 10,
        enable_video: bool = True,
    ) -> None:
        self._taxonomy = taxonomy
        self._breakers = breakers
        self._text_client = text_client
        self._video_client = video_client
        self._breaker_config = breaker_config or CircuitBreakerConfig()
        self._retry_config = retry_config or RetryConfig()
        self._confidence_threshold = confidence_threshold
        self._frame_interval_seconds = frame_interval_seconds
        self._default_max_tags = default_max_tags
        self._enable_video = enable_video

    async def tag(self, content: ContentInput) -> TaggingOutcome:
        """Tag a content item with the model matching its content type."""
        if content.content_type == ContentType.VIDEO:
            return await self.tag_video(content)
        return await self.tag_text(content)

    async def tag_text(self, content: ContentInput) -> TaggingOutcome:
        """Tag an article, podcast transcript or JSON record.

        Raises:
            InvalidInputError: If the item carries no text
            CircuitBreakerOpenError: If the text model circuit is open
            ModelServiceError: If the model call fails after retries
        """
        content_id = str(content.content_id)
        start_time = time.monotonic()

        with log_context(content_id=content_id):
            try:
                if not content.content_text:
                    raise InvalidInputError(
                        "No content text provided",
                        field="content_text",
                        constraint="required for text content",
                    )

                taxonomy = self._taxonomy.get()
                taxonomy_text = taxonomy.format_for_prompt()
                title = content.metadata.title or ""
                max_tags = self._max_tags(content)
                model = self._text_client.model_id

                logger.info(
                    "Processing text content",
                    extra={"content_type": content.content_type.value, "title": title},
                )

                result = await self._invoke(
                    TEXT_MODEL_BREAKER,
                    lambda: self._text_client.tag_content(
                        title, content.content_text or "", taxonomy_text, max_tags
                    ),
                    content_id,
                )

                valid_tags, invalid_tags = self._validate_tags(
                    result.tags, taxonomy, content_id, model
                )
                return self._finish(
                    content,
                    model,
                    valid_tags,
                    invalid_tags,
                    result.input_tokens,
                    result.output_tokens,
                    start_time,
                )
            except Exception as e:
                self._record_failure(content, e, start_time)
                raise

    async def tag_video(self, content: ContentInput) -> TaggingOutcome:
        """Tag a video by sampling frames and aggregating per-frame tags.

        Raises:
            ValidationError: If video processing is disabled
            FormatError: If the video URL has an unsupported extension
            DurationExceededError: If the video is longer than the cap
            CircuitBreakerOpenError: If the video model circuit is open
            ModelServiceError: If a frame call fails after retries
        """
        content_id = str(content.content_id)
        start_time = time.monotonic()

        with log_context(content_id=content_id):
            try:
                if not self._enable_video:
                    raise ValidationError(
                        "Video processing is disabled",
                        details={"setting": "enable_video_processing"},
                    )

                if content.content_url is not None:
                    validate_video_format(str(content.content_url))

                duration_seconds = content.metadata.duration_seconds or 0.0
                frames = sample_frames(duration_seconds, self._frame_interval_seconds)

                logger.debug(
                    "Frame sampling complete",
                    extra={
                        "frame_count": len(frames),
                        "duration_seconds": duration_seconds,
                        "interval_seconds": self._frame_interval_seconds,
                    },
                )

                taxonomy = self._taxonomy.get()
                taxonomy_text = taxonomy.format_for_prompt()
                title = content.metadata.title or ""
                max_tags = self._max_tags(content)
                model = self._video_client.model_id

                result = await self._invoke(
                    VIDEO_MODEL_BREAKER,
                    lambda: self._video_client.tag_frames(frames, title, taxonomy_text, max_tags),
                    content_id,
                )

                aggregated = aggregate_frame_tags(result.frame_tags)
                valid_tags, invalid_tags = self._validate_tags(
                    aggregated, taxonomy, content_id, model
                )
                return self._finish(
                    content,
                    model,
                    valid_tags,
                    invalid_tags,
                    result.input_tokens,
                    result.output_tokens,
                    start_time,
                    frame_count=len(frames),
                )
            except Exception as e:
                self._record_failure(content, e, start_time)
                raise

    def _max_tags(self, content: ContentInput) -> int:
        return content.processing_config.max_tags or self._default_max_tags

    async def _invoke(
        self,
        breaker_name: str,
        operation: Callable[[], Awaitable[T]],
        content_id: str,
    ) -> T:
        breaker = self._breakers.get_or_create(breaker_name, self._breaker_config)
        return await breaker.execute(
            lambda: retry_with_backoff(
                operation,
                self._retry_config,
                {"operation": breaker_name, "content_id": content_id},
            )
        )

    def _validate_tags(
        self,
        tags: list[TagResult],
        taxonomy: Taxonomy,
        content_id: str,
        model: str,
    ) -> tuple[list[TagResult], list[str]]:
        """Drop tags outside the taxonomy, reporting them as hallucinations."""
        validation = taxonomy.validate([t.tag for t in tags])

        if validation.invalid:
            logger.warning(
                f"HALLUCINATION DETECTED: {model} returned tags not in taxonomy",
                extra={
                    "content_id": content_id,
                    "invalid_tags": validation.invalid,
                    "model": model,
                },
            )
            record_hallucinated_tags(model, len(validation.invalid))

        valid_tags = [t for t in tags if taxonomy.is_valid_tag(t.tag)]

        logger.debug(
            "Taxonomy validation complete",
            extra={
                "raw_tag_count": len(tags),
                "valid_tag_count": len(valid_tags),
                "invalid_tag_count": len(validation.invalid),
            },
        )
        return valid_tags, validation.invalid

    def _finish(
        self,
        content: ContentInput,
        model: str,
        valid_tags: list[TagResult],
        invalid_tags: list[str],
        input_tokens: int,
        output_tokens: int,
        start_time: float,
        *,
        frame_count: int | None = None,
    ) -> TaggingOutcome:
        routing = route_content(valid_tags, self._confidence_threshold)
        cost_usd = calculate_cost(model, input_tokens, output_tokens)
        duration = time.monotonic() - start_time
        content_type = content.content_type.value

        logger.info(
            f"Routing decision: {'review' if routing.needs_review else 'auto-publish'}",
            extra={
                "content_type": content_type,
                "needs_review": routing.needs_review,
                "routing_reason": routing.reason,
                "min_confidence": routing.min_confidence,
                "tag_count": len(valid_tags),
            },
        )

        record_routing_decision(content_type, routing.needs_review)
        record_model_usage(model, input_tokens, output_tokens, cost_usd)
        observe_processing_duration(content_type, "completed", duration)

        logger.info(
            "Content tagged successfully",
            extra={
                "content_type": content_type,
                "model": model,
                "tag_count": len(valid_tags),
                "cost_usd": cost_usd,
                "processing_time_ms": int(duration * 1000),
            },
        )

        return TaggingOutcome(
            content_id=str(content.content_id),
            content_type=content.content_type,
            model=model,
            tags=valid_tags,
            invalid_tags=invalid_tags,
            routing=routing,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            cost_usd=cost_usd,
            processing_time_ms=int(duration * 1000),
            frame_count=frame_count,
        )

    def _record_failure(self, content: ContentInput, error: Exception, start_time: float) -> None:
        duration = time.monotonic() - start_time
        observe_processing_duration(content.content_type.value, "failed", duration)
        logger.error(
            f"Failed to process {content.content_type.value} content: {sanitize_error(error)}",
            extra={
                "content_type": content.content_type.value,
                "error_type": type(error).__name__,
                "error_code": get_exception_error_code(error),
                "processing_time_ms": int(duration * 1000),
            },
            exc_info=True,
        )
