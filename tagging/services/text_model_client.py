"""Text model client for tagging articles, podcasts and JSON records.

Posts a messages-style request (system prompt plus one user message) to the
model's invoke endpoint and parses the tag list from the reply text.

Mock mode skips only the HTTP call. The synthetic reply includes one tag that
is not in the taxonomy so hallucination detection runs end to end.
"""

from __future__ import annotations

from typing import Any

from tagging.core.exceptions import ModelResponseParseError
from tagging.core.logging import get_logger
from tagging.models.content import TagResult
from tagging.services.model_client import BaseModelClient, ModelTaggingResult
from tagging.services.response_parser import parse_tag_response

logger = get_logger(__name__)

# ~8k tokens at 4 chars/token
MAX_BODY_CHARS = 32_000
TRUNCATION_MARKER = "... [truncated for cost control]"

ANTHROPIC_VERSION = "bedrock-2023-05-31"
MAX_OUTPUT_TOKENS = 1024
TEMPERATURE = 0.3

MOCK_RESPONSE_TAGS: tuple[TagResult, ...] = (
    TagResult(tag="bread-baking", confidence=0.95, reasoning="Mock response"),
    TagResult(tag="sourdough-bread", confidence=0.87, reasoning="Mock response"),
    TagResult(
        tag="mock-hallucinated-tag",
        confidence=0.75,
        reasoning="Mock response with a tag outside the taxonomy",
    ),
)
MOCK_INPUT_TOKENS = 120
MOCK_OUTPUT_TOKENS = 45


def truncate_body_text(text: str) -> str:
    if len(text) <= MAX_BODY_CHARS:
        return text
    return text[:MAX_BODY_CHARS] + TRUNCATION_MARKER


def build_system_prompt(max_tags: int) -> str:
    return (
        "You are a content tagging system. Assign tags to the content using ONLY tags "
        "that appear exactly in the provided taxonomy. Never invent new tags.\n"
        f"Return at most {max_tags} tags with a confidence between 0 and 1.\n"
        'Respond with JSON only: {"tags": [{"tag": "...", "confidence": 0.0, '
        '"reasoning": "..."}]}'
    )


def build_user_message(title: str, body: str, taxonomy_text: str) -> str:
    return f"TAXONOMY:\n{taxonomy_text}\n\nTITLE: {title}\n\nCONTENT:\n{truncate_body_text(body)}"


class TextModelClient(BaseModelClient):
    """Client for the text tagging model.

    Usage:
        client = TextModelClient(settings.text_model_url, settings.text_model_id,
                                 api_key=settings.text_model_api_key)
        result = await client.tag_content(title, body, taxonomy_text, max_tags=10)
    """

    service_name = "text-model"

    async def tag_content(
        self,
        title: str,
        body: str,
        taxonomy_text: str,
        max_tags: int,
    ) -> ModelTaggingResult:
        """Ask the model to tag one piece of text.

        Returns:
            Raw (not yet taxonomy-validated) tags and token usage

        Raises:
            ModelServiceError: On transport or HTTP failure
            ModelResponseParseError: If the reply cannot be parsed
        """
        if self._mock:
            logger.warning(
                "Text model mock mode enabled, returning synthetic response (API call skipped)",
                extra={"model": self._model_id},
            )
            return ModelTaggingResult(
                tags=list(MOCK_RESPONSE_TAGS),
                input_tokens=MOCK_INPUT_TOKENS,
                output_tokens=MOCK_OUTPUT_TOKENS,
            )

        payload = {
            "anthropic_version": ANTHROPIC_VERSION,
            "max_tokens": MAX_OUTPUT_TOKENS,
            "temperature": TEMPERATURE,
            "system": build_system_prompt(max_tags),
            "messages": [
                {"role": "user", "content": build_user_message(title, body, taxonomy_text)}
            ],
        }
        headers = {
            "Authorization": f"Bearer {self._require_api_key()}",
            "Accept": "application/json",
        }

        body_json = await self._post_json(
            f"{self._base_url}/model/{self._model_id}/invoke", payload, headers
        )
        usage = body_json.get("usage") or {}

        logger.debug(
            "Text model response received",
            extra={
                "model": self._model_id,
                "stop_reason": body_json.get("stop_reason"),
                "input_tokens": usage.get("input_tokens"),
                "output_tokens": usage.get("output_tokens"),
            },
        )

        return ModelTaggingResult(
            tags=parse_tag_response(_reply_text(body_json)),
            input_tokens=int(usage.get("input_tokens") or 0),
            output_tokens=int(usage.get("output_tokens") or 0),
        )


def _reply_text(body: dict[str, Any]) -> str:
    content = body.get("content")
    block = content[0] if isinstance(content, list) and content else None
    if not isinstance(block, dict) or block.get("type") != "text" or not block.get("text"):
        raise ModelResponseParseError(
            "Unexpected text model response: missing text content block",
            raw_response=str(body),
        )
    return str(block["text"])
