"""Confidence-based content routing.

Routes tagged content based on per-tag confidence:
    - All tags >= threshold -> auto-publish (needs_review=False)
    - Any tag < threshold   -> human review (needs_review=True)
    - No valid tags         -> human review

route_content() is a pure function. The threshold comes from the
CONFIDENCE_THRESHOLD setting (default 0.85).
"""

from collections.abc import Sequence
from dataclasses import asdict, dataclass
from typing import Any, Literal

from tagging.core.exceptions import ValidationError
from tagging.models.content import TagResult

NO_TAGS_REASON = "no valid taxonomy tags returned"


@dataclass(frozen=True, slots=True)
class RoutingDecision:
    """Outcome of routing one tagged content item.

    source and reviewed are always "ai" and False here; a later editor
    review overwrites them downstream.
    """

    needs_review: bool
    reason: str
    confidence_threshold: float
    min_confidence: float
    source: Literal["ai", "human"] = "ai"
    reviewed: bool = False

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def route_content(tags: Sequence[TagResult], threshold: float) -> RoutingDecision:
    """Decide whether tagged content can be auto-published.

    Args:
        tags: Validated taxonomy tags with confidence scores
        threshold: Minimum confidence (0-1); a tag exactly at it passes

    Returns:
        RoutingDecision whose reason names every below-threshold tag

    Raises:
        ValidationError: If the threshold is outside [0, 1]
    """
    if not 0.0 <= threshold <= 1.0:
        raise ValidationError(
            f"Confidence threshold must be within [0, 1], got {threshold}",
            details={"threshold": threshold},
        )

    if not tags:
        return RoutingDecision(
            needs_review=True,
            reason=NO_TAGS_REASON,
            confidence_threshold=threshold,
            min_confidence=0.0,
        )

    min_confidence = min(t.confidence for t in tags)
    below = [t for t in tags if t.confidence < threshold]

    if below:
        flagged = ", ".join(f"{t.tag}({t.confidence})" for t in below)
        reason = (
            f"{len(below)} of {len(tags)} tag(s) below confidence threshold "
            f"{threshold}: [{flagged}]"
        )
    else:
        reason = (
            f"all {len(tags)} tag(s) meet confidence threshold {threshold} "
            f"(min: {min_confidence:.3f})"
        )

    return RoutingDecision(
        needs_review=bool(below),
        reason=reason,
        confidence_threshold=threshold,
        min_confidence=min_confidence,
    )
