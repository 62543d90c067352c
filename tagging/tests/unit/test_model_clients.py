"""Unit tests for the text and video model clients.

HTTP traffic is served by httpx.MockTransport; no network access is needed.
"""

import json
from collections.abc import Callable

import httpx
import pytest

from tagging.core.exceptions import ErrorKind, ModelResponseParseError, ModelServiceError
from tagging.models.content import FrameSample
from tagging.services.text_model_client import (
    MAX_BODY_CHARS,
    MOCK_RESPONSE_TAGS,
    TRUNCATION_MARKER,
    TextModelClient,
    build_system_prompt,
    build_user_message,
    truncate_body_text,
)
from tagging.services.video_model_client import (
    MOCK_FRAME_TAGS,
    VideoModelClient,
    build_frame_prompt,
)

TEXT_MODEL_ID = "anthropic.claude-3-haiku-20240307-v1:0"
VIDEO_MODEL_ID = "gemini-1.5-flash"

Handler = Callable[[httpx.Request], httpx.Response]


def _http_client(handler: Handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def _text_client(handler: Handler, **kwargs) -> TextModelClient:
    kwargs.setdefault("api_key", "test-key")
    return TextModelClient(
        "https://text.model.test/",
        TEXT_MODEL_ID,
        http_client=_http_client(handler),
        **kwargs,
    )


def _video_client(handler: Handler, **kwargs) -> VideoModelClient:
    kwargs.setdefault("api_key", "test-key")
    return VideoModelClient(
        "https://video.model.test",
        VIDEO_MODEL_ID,
        http_client=_http_client(handler),
        **kwargs,
    )


def _text_reply(text: str, input_tokens: int = 100, output_tokens: int = 20) -> dict:
    return {
        "content": [{"type": "text", "text": text}],
        "stop_reason": "end_turn",
        "usage": {"input_tokens": input_tokens, "output_tokens": output_tokens},
    }


def _video_reply(text: str, prompt_tokens: int = 50, candidate_tokens: int = 10) -> dict:
    return {
        "candidates": [{"content": {"parts": [{"text": text}]}}],
        "usageMetadata": {
            "promptTokenCount": prompt_tokens,
            "candidatesTokenCount": candidate_tokens,
        },
    }


# =============================================================================
# Prompt Construction
# =============================================================================


class TestPrompts:
    """Tests for prompt builders."""

    def test_short_body_untouched(self) -> None:
        """Test that short bodies are not truncated."""
        assert truncate_body_text("short") == "short"

    def test_long_body_truncated(self) -> None:
        """Test that bodies over the limit are cut and marked."""
        text = truncate_body_text("x" * (MAX_BODY_CHARS + 10))
        assert text.endswith(TRUNCATION_MARKER)
        assert len(text) == MAX_BODY_CHARS + len(TRUNCATION_MARKER)

    def test_system_prompt_mentions_max_tags(self) -> None:
        """Test that the tag limit is passed to the model."""
        assert "at most 7 tags" in build_system_prompt(7)

    def test_user_message_includes_taxonomy(self) -> None:
        """Test that the taxonomy is injected into the user message."""
        message = build_user_message("Title", "Body", "FOOD & COOKING:")
        assert message.startswith("TAXONOMY:\nFOOD & COOKING:")
        assert "TITLE: Title" in message

    def test_frame_prompt_timestamp(self) -> None:
        """Test minute/second formatting of the frame timestamp."""
        prompt = build_frame_prompt("Grilling", 75, "tags", 5)
        assert "timestamp 1m15s" in prompt
        assert "up to 5 taxonomy tags" in prompt


# =============================================================================
# Text Model Client
# =============================================================================


class TestTextModelClient:
    """Tests for TextModelClient."""

    async def test_tag_content_success(self) -> None:
        """Test request shape, parsed tags and token usage."""
        captured: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            captured.append(request)
            reply = '{"tags": [{"tag": "bread-baking", "confidence": 0.93}]}'
            return httpx.Response(200, json=_text_reply(reply, 321, 42))

        client = _text_client(handler)
        result = await client.tag_content("Sourdough", "How to bake.", "TAXONOMY", 5)
        await client.close()

        assert [t.tag for t in result.tags] == ["bread-baking"]
        assert result.input_tokens == 321
        assert result.output_tokens == 42

        request = captured[0]
        assert str(request.url) == f"https://text.model.test/model/{TEXT_MODEL_ID}/invoke"
        assert request.headers["Authorization"] == "Bearer test-key"
        payload = json.loads(request.content)
        assert payload["max_tokens"] == 1024
        assert payload["temperature"] == 0.3
        assert "at most 5 tags" in payload["system"]
        assert payload["messages"][0]["role"] == "user"

    async def test_mock_mode_skips_http(self) -> None:
        """Test that mock mode never calls the transport."""

        def handler(request: httpx.Request) -> httpx.Response:
            raise AssertionError("HTTP must not be called in mock mode")

        client = _text_client(handler, api_key=None, mock=True)
        result = await client.tag_content("t", "b", "tax", 10)

        assert client.mock is True
        assert result.tags == list(MOCK_RESPONSE_TAGS)
        assert "mock-hallucinated-tag" in [t.tag for t in result.tags]
        assert result.input_tokens == 120
        assert result.output_tokens == 45

    async def test_missing_api_key(self) -> None:
        """Test that a real call without an API key fails as non-retryable."""
        client = _text_client(lambda r: httpx.Response(200), api_key=None)
        with pytest.raises(ModelServiceError) as exc_info:
            await client.tag_content("t", "b", "tax", 10)
        assert exc_info.value.kind == ErrorKind.VALIDATION
        assert exc_info.value.retryable is False

    @pytest.mark.parametrize(
        ("status_code", "kind", "retryable"),
        [
            (429, ErrorKind.THROTTLING, True),
            (500, ErrorKind.INTERNAL, True),
            (503, ErrorKind.UNAVAILABLE, True),
            (400, ErrorKind.VALIDATION, False),
            (403, ErrorKind.VALIDATION, False),
        ],
    )
    async def test_http_status_mapping(
        self, status_code: int, kind: ErrorKind, retryable: bool
    ) -> None:
        """Test that HTTP errors map onto error kinds at the origin."""
        client = _text_client(lambda r: httpx.Response(status_code, text="error"))

        with pytest.raises(ModelServiceError) as exc_info:
            await client.tag_content("t", "b", "tax", 10)

        error = exc_info.value
        assert error.kind == kind
        assert error.retryable is retryable
        assert error.status_code == status_code
        assert error.service_name == "text-model"

    async def test_timeout_mapping(self) -> None:
        """Test that a read timeout becomes a TIMEOUT error."""

        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        client = _text_client(handler)
        with pytest.raises(ModelServiceError) as exc_info:
            await client.tag_content("t", "b", "tax", 10)
        assert exc_info.value.kind == ErrorKind.TIMEOUT
        assert isinstance(exc_info.value.original_error, httpx.ReadTimeout)

    async def test_connection_error_mapping(self) -> None:
        """Test that a connection failure becomes a NETWORK error."""

        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        client = _text_client(handler)
        with pytest.raises(ModelServiceError) as exc_info:
            await client.tag_content("t", "b", "tax", 10)
        assert exc_info.value.kind == ErrorKind.NETWORK

    async def test_non_json_body(self) -> None:
        """Test that a non-JSON body raises a parse error."""
        client = _text_client(lambda r: httpx.Response(200, text="<html>oops</html>"))
        with pytest.raises(ModelResponseParseError):
            await client.tag_content("t", "b", "tax", 10)

    async def test_missing_text_block(self) -> None:
        """Test that a reply without a text content block is rejected."""
        body = {"content": [{"type": "tool_use"}], "usage": {}}
        client = _text_client(lambda r: httpx.Response(200, json=body))
        with pytest.raises(ModelResponseParseError, match="missing text content block"):
            await client.tag_content("t", "b", "tax", 10)

    async def test_missing_usage_defaults_to_zero(self) -> None:
        """Test that absent usage data counts as zero tokens."""
        body = {"content": [{"type": "text", "text": '{"tags": []}'}]}
        client = _text_client(lambda r: httpx.Response(200, json=body))
        result = await client.tag_content("t", "b", "tax", 10)
        assert result.input_tokens == 0
        assert result.output_tokens == 0


# =============================================================================
# Video Model Client
# =============================================================================


class TestVideoModelClient:
    """Tests for VideoModelClient."""

    async def test_tag_frames_success(self) -> None:
        """Test one request per frame and summed token usage."""
        captured: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            captured.append(request)
            reply = '[{"tag": "grilling-recipes", "confidence": 0.9}]'
            return httpx.Response(200, json=_video_reply(reply, 50, 10))

        client = _video_client(handler)
        frames = [FrameSample(frame_index=i, timestamp_seconds=i * 15.0) for i in range(3)]
        result = await client.tag_frames(frames, "Grilling", "TAXONOMY", 5)

        assert len(captured) == 3
        assert len(result.frame_tags) == 3
        assert result.frame_tags[0][0].tag == "grilling-recipes"
        assert result.input_tokens == 150
        assert result.output_tokens == 30

        request = captured[1]
        assert str(request.url) == (
            f"https://video.model.test/v1beta/models/{VIDEO_MODEL_ID}:generateContent"
        )
        assert request.headers["x-goog-api-key"] == "test-key"
        payload = json.loads(request.content)
        assert "timestamp 0m15s" in payload["contents"][0]["parts"][0]["text"]

    async def test_mock_mode(self) -> None:
        """Test that mock mode returns the synthetic tags for every frame."""

        def handler(request: httpx.Request) -> httpx.Response:
            raise AssertionError("HTTP must not be called in mock mode")

        client = _video_client(handler, api_key=None, mock=True)
        frames = [FrameSample(frame_index=i, timestamp_seconds=i * 15.0) for i in range(3)]
        result = await client.tag_frames(frames, "t", "tax", 10)

        assert result.frame_tags == [list(MOCK_FRAME_TAGS)] * 3
        assert result.input_tokens == 600
        assert result.output_tokens == 240

    async def test_failing_frame_aborts(self) -> None:
        """Test that an error on any frame fails the whole call."""
        calls = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal calls
            calls += 1
            if calls == 2:
                return httpx.Response(503)
            return httpx.Response(200, json=_video_reply("[]"))

        client = _video_client(handler)
        frames = [FrameSample(frame_index=i, timestamp_seconds=i * 15.0) for i in range(4)]

        with pytest.raises(ModelServiceError) as exc_info:
            await client.tag_frames(frames, "t", "tax", 10)
        assert exc_info.value.kind == ErrorKind.UNAVAILABLE
        assert calls == 2

    async def test_malformed_candidates(self) -> None:
        """Test that a reply without candidates raises a parse error."""
        client = _video_client(lambda r: httpx.Response(200, json={"candidates": []}))
        frames = [FrameSample(frame_index=0, timestamp_seconds=0.0)]
        with pytest.raises(ModelResponseParseError, match="missing text content"):
            await client.tag_frames(frames, "t", "tax", 10)

    async def test_no_frames(self) -> None:
        """Test that an empty frame list makes no requests."""

        def handler(request: httpx.Request) -> httpx.Response:
            raise AssertionError("no frames, no requests")

        client = _video_client(handler)
        result = await client.tag_frames([], "t", "tax", 10)
        assert result.frame_tags == []
        assert result.input_tokens == 0
