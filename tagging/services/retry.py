"""Retry with exponential backoff for model invocations.

This module wraps an async operation in a bounded retry loop. Errors are
classified into an ErrorKind; only kinds listed in the config's
retryable_kinds are retried, and the error from the last attempt is always
re-raised unchanged so callers can branch on its type.

Classification has two layers:
    1. classify_error() reads the kind attached to TaggingError subclasses at
       their origin (model clients, the circuit breaker, validators).
    2. classify_foreign_error() is a fallback for errors raised outside this
       package (httpx, builtin timeouts, arbitrary SDK exceptions). It matches
       exception types first and then case-insensitive name/message patterns,
       so it is approximate: third-party error vocabularies vary.

Usage:
    from tagging.services.retry import RetryConfig, retry_with_backoff

    result = await retry_with_backoff(
        lambda: client.tag_content(title, body, taxonomy_text, max_tags),
        RetryConfig(max_attempts=3),
        {"operation": "text-model", "content_id": content_id},
    )
"""

from __future__ import annotations

import asyncio
import random
import re
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from typing import Any, TypeVar

import httpx

from tagging.core.exceptions import (
    TRANSIENT_ERROR_KINDS,
    ConfigurationError,
    ErrorKind,
    ProcessingError,
    error_kind_for_status,
    get_error_kind,
)
from tagging.core.logging import get_logger, safe_extra, sanitize_error
from tagging.core.metrics import record_retry_attempt

logger = get_logger(__name__)

T = TypeVar("T")

# =============================================================================
# Configuration
# =============================================================================


@dataclass(frozen=True, slots=True)
class RetryConfig:
    """Configuration for retry behavior.

    Attributes:
        max_attempts: Total attempts including the first (1 means no retries)
        initial_delay: Delay in seconds before the first retry
        max_delay: Cap in seconds for the pre-jitter delay
        backoff_multiplier: Exponential growth factor between retries
        jitter: Upper bound of the additive jitter as a fraction of the delay
            (0.0 disables jitter)
        retryable_kinds: Error kinds worth another attempt
    """

    max_attempts: int = 3
    initial_delay: float = 1.0
    max_delay: float = 30.0
    backoff_multiplier: float = 2.0
    jitter: float = 0.1
    retryable_kinds: frozenset[ErrorKind] = field(default=TRANSIENT_ERROR_KINDS)

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ConfigurationError(f"max_attempts must be >= 1, got {self.max_attempts}")
        if self.initial_delay < 0 or self.max_delay < 0:
            raise ConfigurationError("retry delays must be non-negative")
        if self.backoff_multiplier < 1:
            raise ConfigurationError(
                f"backoff_multiplier must be >= 1, got {self.backoff_multiplier}"
            )
        if not 0.0 <= self.jitter <= 1.0:
            raise ConfigurationError(f"jitter must be within [0, 1], got {self.jitter}")


DEFAULT_RETRY_CONFIG = RetryConfig()


# =============================================================================
# Backoff Calculation
# =============================================================================


def calculate_delay(
    attempt: int,
    config: RetryConfig,
    rng: Callable[[], float] = random.random,
) -> float:
    """Calculate delay after a failed attempt.

    The delay is calculated as:
        delay = min(initial_delay * backoff_multiplier ^ (attempt - 1), max_delay)
        delay = delay + delay * jitter * random(0, 1)

    Args:
        attempt: The failed attempt number (1-indexed)
        config: Retry configuration
        rng: Source of uniform values in [0, 1)

    Returns:
        Delay in seconds before the next attempt
    """
    delay = config.initial_delay * (config.backoff_multiplier ** (attempt - 1))
    delay = min(delay, config.max_delay)

    # Not for cryptographic use: spreads retries of concurrent callers
    if config.jitter > 0:
        delay += delay * config.jitter * rng()

    return max(0.0, delay)


# =============================================================================
# Error Classification
# =============================================================================

# Ordered: the first matching pattern decides the kind
_FOREIGN_ERROR_PATTERNS: tuple[tuple[re.Pattern[str], ErrorKind], ...] = (
    (re.compile(r"throttl|too many requests|rate.?limit"), ErrorKind.THROTTLING),
    (re.compile(r"timeout|timed out"), ErrorKind.TIMEOUT),
    (re.compile(r"unavailable"), ErrorKind.UNAVAILABLE),
    (re.compile(r"internal.*error|service.*error"), ErrorKind.INTERNAL),
    (re.compile(r"network|connection"), ErrorKind.NETWORK),
)


def classify_foreign_error(exc: BaseException) -> ErrorKind:
    """Best-effort classification of an error raised outside this package.

    Args:
        exc: Exception without an attached ErrorKind

    Returns:
        The inferred kind, UNKNOWN when nothing matches
    """
    if isinstance(exc, httpx.TimeoutException):
        return ErrorKind.TIMEOUT
    if isinstance(exc, httpx.HTTPStatusError):
        return error_kind_for_status(exc.response.status_code)
    if isinstance(exc, httpx.TransportError):
        return ErrorKind.NETWORK
    if isinstance(exc, TimeoutError):
        return ErrorKind.TIMEOUT
    if isinstance(exc, ConnectionError):
        return ErrorKind.NETWORK

    text = f"{type(exc).__name__} {exc}".lower()
    for pattern, kind in _FOREIGN_ERROR_PATTERNS:
        if pattern.search(text):
            return kind
    return ErrorKind.UNKNOWN


def classify_error(exc: BaseException) -> ErrorKind:
    """Return the error's kind, falling back to the heuristic for foreign errors."""
    kind = get_error_kind(exc)
    if kind is not None:
        return kind
    return classify_foreign_error(exc)


def is_retryable_error(
    exc: BaseException,
    retryable_kinds: frozenset[ErrorKind] = TRANSIENT_ERROR_KINDS,
) -> bool:
    """Check whether an error should be retried.

    A ProcessingError flagged retryable=False is never retried, whatever kind
    it carries.
    """
    if isinstance(exc, ProcessingError) and not exc.retryable:
        return False
    return classify_error(exc) in retryable_kinds


# =============================================================================
# Retry Loop
# =============================================================================


async def retry_with_backoff(
    operation: Callable[[], Awaitable[T]],
    config: RetryConfig | None = None,
    log_context: Mapping[str, Any] | None = None,
    *,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    rng: Callable[[], float] = random.random,
) -> T:
    """Invoke an async operation, retrying transient failures with backoff.

    Args:
        operation: Zero-argument async callable
        config: Retry configuration (defaults apply if omitted)
        log_context: Extra fields merged into every retry log record (keys
            clashing with LogRecord attributes get a "ctx_" prefix); an
            "operation" key also labels the retry metrics
        sleep: Awaitable sleep used between attempts
        rng: Jitter source returning uniform values in [0, 1)

    Returns:
        Result of the first successful attempt

    Raises:
        Exception: The original error of the last attempt, when it is not
            retryable or max_attempts has been reached
    """
    config = config or DEFAULT_RETRY_CONFIG
    log_context = log_context or {}
    op_name = str(log_context.get("operation", "operation"))
    context = safe_extra(log_context)

    attempt = 0
    while True:
        attempt += 1
        try:
            result = await operation()
        except Exception as e:
            kind = classify_error(e)
            extra = {
                **context,
                "operation": op_name,
                "attempt": attempt,
                "max_attempts": config.max_attempts,
                "error_kind": kind.value,
                "error_type": type(e).__name__,
            }

            if not is_retryable_error(e, config.retryable_kinds):
                logger.warning(
                    f"Operation '{op_name}' failed with non-retryable "
                    f"{kind.value} error: {sanitize_error(e)}",
                    extra={**extra, "outcome": "fatal"},
                )
                record_retry_attempt(op_name, "fatal")
                raise

            if attempt >= config.max_attempts:
                logger.error(
                    f"Operation '{op_name}' failed after {attempt} attempts: {sanitize_error(e)}",
                    extra={**extra, "outcome": "exhausted"},
                )
                record_retry_attempt(op_name, "exhausted")
                raise

            delay = calculate_delay(attempt, config, rng)
            logger.warning(
                f"Operation '{op_name}' failed (attempt {attempt}/{config.max_attempts}), "
                f"retrying in {delay:.2f}s: {sanitize_error(e)}",
                extra={**extra, "outcome": "retry", "delay_seconds": delay},
            )
            record_retry_attempt(op_name, "retry")
            await sleep(delay)
            continue

        if attempt > 1:
            logger.info(
                f"Operation '{op_name}' succeeded after {attempt} attempts",
                extra={**context, "operation": op_name, "attempts": attempt, "outcome": "success"},
            )
            record_retry_attempt(op_name, "success")
        return result
