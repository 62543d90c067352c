"""Parsing of model replies into tag results.

Models are asked for JSON but may wrap it in a markdown fence or surround it
with prose. The parser accepts either an object with a "tags" array or a bare
array of tag objects, and validates every entry as a TagResult.
"""

import json
import re
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from tagging.core.exceptions import ModelResponseParseError
from tagging.models.content import TagResult

_FENCED_JSON = re.compile(r"```(?:json)?\s*\n?(.*?)\n?```", re.DOTALL)
_BARE_JSON = re.compile(r"\{.*\}|\[.*\]", re.DOTALL)


def extract_json_text(text: str) -> str:
    """Pull the JSON payload out of a model reply.

    Raises:
        ModelResponseParseError: If no JSON object or array is present
    """
    stripped = text.strip()
    fenced = _FENCED_JSON.search(stripped)
    if fenced:
        return fenced.group(1).strip()
    bare = _BARE_JSON.search(stripped)
    if bare:
        return bare.group(0)
    raise ModelResponseParseError("Could not extract JSON from model response", raw_response=text)


def parse_tag_response(text: str) -> list[TagResult]:
    """Parse a model reply into tag results.

    Args:
        text: Raw text content of the model reply

    Returns:
        Tag results in the order the model listed them

    Raises:
        ModelResponseParseError: If the reply is not valid JSON, has the wrong
            shape, or an entry fails TagResult validation
    """
    json_text = extract_json_text(text)
    try:
        parsed: Any = json.loads(json_text)
    except json.JSONDecodeError as e:
        raise ModelResponseParseError(
            f"Model response is not valid JSON: {e}", raw_response=text
        ) from e

    entries = parsed.get("tags") if isinstance(parsed, dict) else parsed
    if not isinstance(entries, list):
        raise ModelResponseParseError(
            "Invalid model response structure: expected a tags array", raw_response=text
        )

    try:
        return [TagResult.model_validate(entry) for entry in entries]
    except PydanticValidationError as e:
        raise ModelResponseParseError(
            f"Invalid tag entry in model response: {e.error_count()} error(s)",
            raw_response=text,
        ) from e
