"""Video frame sampling and per-frame tag aggregation.

Videos are tagged by sampling one frame every N seconds, tagging each frame
independently, and fusing the per-frame results. A tag survives aggregation
when it appears in at least a fraction of the frames (inclusive), which
smooths out one-off per-frame noise.
"""

from collections.abc import Sequence
from pathlib import PurePosixPath
from urllib.parse import urlsplit

from tagging.core.exceptions import DurationExceededError, FormatError, ValidationError
from tagging.models.content import FrameSample, TagResult

SUPPORTED_EXTENSIONS: tuple[str, ...] = (".mp4", ".mov", ".avi", ".mkv")
MAX_VIDEO_DURATION_SECONDS = 60 * 60
DEFAULT_MIN_FRAME_FRACTION = 0.20


def validate_video_format(url: str) -> str:
    """Check that a video URL points to a supported container format.

    The extension is taken from the URL path, so query strings and fragments
    are ignored. Matching is case-insensitive.

    Args:
        url: Video URL or object path

    Returns:
        The normalized (lowercase) extension

    Raises:
        FormatError: If the path has no extension or an unsupported one
    """
    extension = PurePosixPath(urlsplit(url).path).suffix.lower()
    if extension not in SUPPORTED_EXTENSIONS:
        raise FormatError(
            f'Unsupported video format: "{extension or "(none)"}". '
            f"Supported formats: {', '.join(SUPPORTED_EXTENSIONS)}",
            extension=extension or None,
            supported=SUPPORTED_EXTENSIONS,
        )
    return extension


def sample_frames(duration_seconds: float, interval_seconds: float) -> list[FrameSample]:
    """Compute the frame timestamps to sample from a video.

    Samples are taken at 0, interval, 2 * interval, ... while the timestamp
    is <= duration, so a zero-length video yields a single sample at t=0.

    Raises:
        ValidationError: If the interval is not positive or the duration is
            negative
        DurationExceededError: If the duration is above the 60 minute cap
    """
    if interval_seconds <= 0:
        raise ValidationError(
            f"Frame sampling interval must be positive, got {interval_seconds}",
            details={"interval_seconds": interval_seconds},
        )
    if duration_seconds < 0:
        raise ValidationError(
            f"Video duration must be non-negative, got {duration_seconds}",
            details={"duration_seconds": duration_seconds},
        )
    if duration_seconds > MAX_VIDEO_DURATION_SECONDS:
        raise DurationExceededError(
            f"Video duration {duration_seconds}s exceeds maximum supported duration "
            f"of {MAX_VIDEO_DURATION_SECONDS}s (60 minutes)",
            duration_seconds=duration_seconds,
            max_duration_seconds=MAX_VIDEO_DURATION_SECONDS,
        )

    frames: list[FrameSample] = []
    index = 0
    # Multiply rather than accumulate so float error does not drift
    while (timestamp := index * interval_seconds) <= duration_seconds:
        frames.append(FrameSample(frame_index=index, timestamp_seconds=timestamp))
        index += 1
    return frames


def aggregate_frame_tags(
    frame_results: Sequence[Sequence[TagResult]],
    min_frame_fraction: float = DEFAULT_MIN_FRAME_FRACTION,
) -> list[TagResult]:
    """Fuse per-frame tag lists into one video-level tag list.

    A tag is kept iff the fraction of frames it appears in is >= the minimum.
    Its confidence is the mean over the frames it appears in (not over all
    frames). A tag listed twice in one frame counts once for that frame, with
    its first confidence.

    Args:
        frame_results: One tag list per sampled frame
        min_frame_fraction: Inclusive presence threshold in [0, 1]

    Returns:
        New list sorted by descending confidence; ties keep first-seen order
    """
    if not 0.0 <= min_frame_fraction <= 1.0:
        raise ValidationError(
            f"min_frame_fraction must be within [0, 1], got {min_frame_fraction}",
            details={"min_frame_fraction": min_frame_fraction},
        )

    total_frames = len(frame_results)
    if total_frames == 0:
        return []

    # tag -> [frame count, confidence sum], insertion ordered
    stats: dict[str, list[float]] = {}
    for frame_tags in frame_results:
        seen_in_frame: set[str] = set()
        for result in frame_tags:
            if result.tag in seen_in_frame:
                continue
            seen_in_frame.add(result.tag)
            entry = stats.setdefault(result.tag, [0, 0.0])
            entry[0] += 1
            entry[1] += result.confidence

    aggregated = [
        TagResult(tag=tag, confidence=min(total / count, 1.0))
        for tag, (count, total) in stats.items()
        if count / total_frames >= min_frame_fraction
    ]
    return sorted(aggregated, key=lambda r: r.confidence, reverse=True)
