"""Domain models."""

from .content import (
    ContentInput,
    ContentMetadata,
    ContentType,
    FrameSample,
    ProcessingConfig,
    TagResult,
)

__all__ = [
    "ContentInput",
    "ContentMetadata",
    "ContentType",
    "FrameSample",
    "ProcessingConfig",
    "TagResult",
]
