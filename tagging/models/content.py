"""Domain models for content tagging.

Inbound content descriptions and tag results are pydantic models so model
replies and queue payloads are validated at the boundary. Results are frozen:
tag lists are filtered and aggregated into new lists, never mutated in place.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum
from typing import Any, Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, HttpUrl


class ContentType(StrEnum):
    """Content types supported by the tagging core."""

    ARTICLE = "article"
    PODCAST = "podcast"
    VIDEO = "video"
    JSON = "json"


class ContentMetadata(BaseModel):
    """Descriptive metadata supplied with a content item."""

    title: str | None = None
    author: str | None = None
    published_date: datetime | None = None
    duration_seconds: float | None = Field(None, ge=0)
    source: str | None = None


class ProcessingConfig(BaseModel):
    """Per-item processing options."""

    priority: Literal["low", "normal", "high"] = "normal"
    max_tags: int | None = Field(None, ge=1, le=50)


class ContentInput(BaseModel):
    """Validated description of one content item to tag."""

    content_id: UUID
    content_type: ContentType
    content_url: HttpUrl | None = None
    content_text: str | None = None
    metadata: ContentMetadata = Field(default_factory=ContentMetadata)
    processing_config: ProcessingConfig = Field(default_factory=ProcessingConfig)


class TagResult(BaseModel):
    """A single tag with the model's confidence in it."""

    model_config = ConfigDict(frozen=True)

    tag: str = Field(..., min_length=1)
    confidence: float = Field(..., ge=0.0, le=1.0)
    reasoning: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)


@dataclass(frozen=True, slots=True)
class FrameSample:
    """A point in a video at which one frame is tagged."""

    frame_index: int
    timestamp_seconds: float
