"""Vision model client for tagging sampled video frames.

Calls the generateContent endpoint once per sampled frame and returns one tag
list per frame, with token usage summed across the calls. Frame extraction is
not done here: each request describes the frame by its timestamp.

Mock mode returns the same synthetic tag list for every frame, including one
tag outside the taxonomy so hallucination detection runs end to end.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from tagging.core.exceptions import ModelResponseParseError
from tagging.core.logging import get_logger
from tagging.models.content import FrameSample, TagResult
from tagging.services.model_client import BaseModelClient, VideoTaggingResult
from tagging.services.response_parser import parse_tag_response

logger = get_logger(__name__)

TEMPERATURE = 0.3
MAX_OUTPUT_TOKENS = 512

MOCK_FRAME_TAGS: tuple[TagResult, ...] = (
    TagResult(tag="grilling-recipes", confidence=0.92, reasoning="Mock frame response"),
    TagResult(tag="outdoor-cooking", confidence=0.88, reasoning="Mock frame response"),
    TagResult(tag="barbecue-grilling", confidence=0.85, reasoning="Mock frame response"),
    TagResult(
        tag="mock-hallucinated-video-tag",
        confidence=0.70,
        reasoning="Mock frame response with a tag outside the taxonomy",
    ),
)
MOCK_INPUT_TOKENS_PER_FRAME = 200
MOCK_OUTPUT_TOKENS_PER_FRAME = 80


def build_frame_prompt(
    title: str,
    timestamp_seconds: float,
    taxonomy_text: str,
    max_tags: int,
) -> str:
    minutes, seconds = divmod(int(timestamp_seconds), 60)
    return (
        f"Analyze the video frame at timestamp {minutes}m{seconds}s.\n\n"
        f"Video title: {title}\n\n"
        f"Return up to {max_tags} taxonomy tags relevant to what is shown in this frame.\n"
        "Return ONLY tags from this approved taxonomy, never invent new tags:\n"
        f"{taxonomy_text}\n\n"
        'Return a JSON array: [{"tag": "...", "confidence": 0.0, "reasoning": "..."}]'
    )


class VideoModelClient(BaseModelClient):
    """Client for the vision tagging model.

    Usage:
        client = VideoModelClient(settings.video_model_url, settings.video_model_id,
                                  api_key=settings.video_model_api_key)
        result = await client.tag_frames(frames, title, taxonomy_text, max_tags=10)
    """

    service_name = "video-model"

    async def tag_frames(
        self,
        frames: Sequence[FrameSample],
        title: str,
        taxonomy_text: str,
        max_tags: int,
    ) -> VideoTaggingResult:
        """Tag each sampled frame.

        Frames are requested sequentially; the first failing frame aborts the
        whole call so a retry starts from a clean slate.

        Raises:
            ModelServiceError: On transport or HTTP failure
            ModelResponseParseError: If a reply cannot be parsed
        """
        if self._mock:
            logger.warning(
                "Video model mock mode enabled, returning synthetic frame responses "
                "(API call skipped)",
                extra={"model": self._model_id, "frame_count": len(frames)},
            )
            return VideoTaggingResult(
                frame_tags=[list(MOCK_FRAME_TAGS) for _ in frames],
                input_tokens=len(frames) * MOCK_INPUT_TOKENS_PER_FRAME,
                output_tokens=len(frames) * MOCK_OUTPUT_TOKENS_PER_FRAME,
            )

        result = VideoTaggingResult()
        for frame in frames:
            tags, input_tokens, output_tokens = await self._tag_frame(
                frame, title, taxonomy_text, max_tags
            )
            result.frame_tags.append(tags)
            result.input_tokens += input_tokens
            result.output_tokens += output_tokens
        return result

    async def _tag_frame(
        self,
        frame: FrameSample,
        title: str,
        taxonomy_text: str,
        max_tags: int,
    ) -> tuple[list[TagResult], int, int]:
        prompt = build_frame_prompt(title, frame.timestamp_seconds, taxonomy_text, max_tags)
        payload = {
            "contents": [{"parts": [{"text": prompt}]}],
            "generationConfig": {"temperature": TEMPERATURE, "maxOutputTokens": MAX_OUTPUT_TOKENS},
        }
        headers = {"x-goog-api-key": self._require_api_key()}

        body = await self._post_json(
            f"{self._base_url}/v1beta/models/{self._model_id}:generateContent", payload, headers
        )
        usage = body.get("usageMetadata") or {}

        logger.debug(
            f"Frame {frame.frame_index} tagged",
            extra={
                "model": self._model_id,
                "frame_index": frame.frame_index,
                "timestamp_seconds": frame.timestamp_seconds,
            },
        )

        return (
            parse_tag_response(_reply_text(body)),
            int(usage.get("promptTokenCount") or 0),
            int(usage.get("candidatesTokenCount") or 0),
        )


def _reply_text(body: dict[str, Any]) -> str:
    try:
        text = body["candidates"][0]["content"]["parts"][0]["text"]
    except (KeyError, IndexError, TypeError) as e:
        raise ModelResponseParseError(
            "Invalid video model response: missing text content", raw_response=str(body)
        ) from e
    if not text:
        raise ModelResponseParseError(
            "Invalid video model response: empty text content", raw_response=str(body)
        )
    return str(text)
