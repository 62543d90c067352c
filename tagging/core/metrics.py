"""Prometheus metrics definitions and utilities for observability.

This module defines all Prometheus metrics used by the tagging core and
provides helper functions for recording them.

Metric Naming Conventions:
- All metrics are prefixed with 'tagging_'
- Counters end with '_total'
- Histograms/durations end with '_seconds'
- Gauges use descriptive names without suffix

Recording is best effort: every helper logs and swallows collector errors so
that a metrics failure never fails the tagging operation it describes.
"""

from prometheus_client import (
    REGISTRY,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

from tagging.core.logging import get_logger

logger = get_logger(__name__)

_registry = REGISTRY

# Numeric encoding of breaker states for the gauge
CIRCUIT_STATE_VALUES = {"closed": 0, "open": 1, "half_open": 2}

# =============================================================================
# Circuit Breaker Metrics
# =============================================================================

CIRCUIT_BREAKER_STATE = Gauge(
    "tagging_circuit_breaker_state",
    "Current state of the circuit breaker (0=closed, 1=open, 2=half_open)",
    labelnames=["service"],
    registry=_registry,
)

CIRCUIT_BREAKER_STATE_CHANGES_TOTAL = Counter(
    "tagging_circuit_breaker_state_changes_total",
    "Total number of circuit breaker state transitions",
    labelnames=["service", "from_state", "to_state"],
    registry=_registry,
)

CIRCUIT_BREAKER_REJECTIONS_TOTAL = Counter(
    "tagging_circuit_breaker_rejections_total",
    "Total number of calls rejected by an open circuit",
    labelnames=["service"],
    registry=_registry,
)

CIRCUIT_BREAKER_FAILURES_TOTAL = Counter(
    "tagging_circuit_breaker_failures_total",
    "Total number of failures recorded by the circuit breaker",
    labelnames=["service"],
    registry=_registry,
)

# =============================================================================
# Retry Metrics
# =============================================================================

RETRY_ATTEMPTS_TOTAL = Counter(
    "tagging_retry_attempts_total",
    "Total number of retry attempts",
    labelnames=["operation", "outcome"],  # outcome: retry, success, exhausted, fatal
    registry=_registry,
)

# =============================================================================
# Tagging Quality Metrics
# =============================================================================

HALLUCINATED_TAGS_TOTAL = Counter(
    "tagging_hallucinated_tags_total",
    "Total number of model-emitted tags absent from the taxonomy",
    labelnames=["model"],
    registry=_registry,
)

ROUTING_DECISIONS_TOTAL = Counter(
    "tagging_routing_decisions_total",
    "Total number of routing decisions by outcome",
    labelnames=["content_type", "decision"],  # decision: auto_publish, review
    registry=_registry,
)

# =============================================================================
# Cost and Duration Metrics
# =============================================================================

MODEL_TOKENS_TOTAL = Counter(
    "tagging_model_tokens_total",
    "Total tokens consumed per model",
    labelnames=["model", "direction"],  # direction: input, output
    registry=_registry,
)

MODEL_COST_USD_TOTAL = Counter(
    "tagging_model_cost_usd_total",
    "Estimated model spend in US dollars",
    labelnames=["model"],
    registry=_registry,
)

PROCESSING_DURATION_BUCKETS = (
    0.1,
    0.25,
    0.5,
    1.0,
    2.5,
    5.0,
    10.0,
    30.0,
    60.0,
    120.0,
    300.0,
)

PROCESSING_DURATION_SECONDS = Histogram(
    "tagging_processing_duration_seconds",
    "End-to-end tagging duration per content item",
    labelnames=["content_type", "status"],
    buckets=PROCESSING_DURATION_BUCKETS,
    registry=_registry,
)


def set_circuit_state(service: str, state: str) -> None:
    """Update the breaker state gauge.

    Args:
        service: Dependency name guarded by the breaker
        state: State value ("closed", "open", "half_open")
    """
    try:
        CIRCUIT_BREAKER_STATE.labels(service=service).set(CIRCUIT_STATE_VALUES[state])
    except Exception as e:
        logger.warning(f"Failed to record circuit state metric: {e}")


def record_circuit_transition(service: str, from_state: str, to_state: str) -> None:
    """Count a breaker transition and update the state gauge."""
    try:
        CIRCUIT_BREAKER_STATE_CHANGES_TOTAL.labels(
            service=service, from_state=from_state, to_state=to_state
        ).inc()
    except Exception as e:
        logger.warning(f"Failed to record circuit transition metric: {e}")
    set_circuit_state(service, to_state)


def record_circuit_rejection(service: str) -> None:
    try:
        CIRCUIT_BREAKER_REJECTIONS_TOTAL.labels(service=service).inc()
    except Exception as e:
        logger.warning(f"Failed to record circuit rejection metric: {e}")


def record_circuit_failure(service: str) -> None:
    try:
        CIRCUIT_BREAKER_FAILURES_TOTAL.labels(service=service).inc()
    except Exception as e:
        logger.warning(f"Failed to record circuit failure metric: {e}")


def record_retry_attempt(operation: str, outcome: str) -> None:
    """Increment the retry counter.

    Args:
        operation: Operation name from the retry log context
        outcome: One of "retry", "success", "exhausted", "fatal"
    """
    try:
        RETRY_ATTEMPTS_TOTAL.labels(operation=operation, outcome=outcome).inc()
    except Exception as e:
        logger.warning(f"Failed to record retry metric: {e}")


def record_hallucinated_tags(model: str, count: int) -> None:
    if count <= 0:
        return
    try:
        HALLUCINATED_TAGS_TOTAL.labels(model=model).inc(count)
    except Exception as e:
        logger.warning(f"Failed to record hallucination metric: {e}")


def record_routing_decision(content_type: str, needs_review: bool) -> None:
    decision = "review" if needs_review else "auto_publish"
    try:
        ROUTING_DECISIONS_TOTAL.labels(content_type=content_type, decision=decision).inc()
    except Exception as e:
        logger.warning(f"Failed to record routing metric: {e}")


def record_model_usage(model: str, input_tokens: int, output_tokens: int, cost_usd: float) -> None:
    """Record token consumption and estimated spend for one model call."""
    try:
        MODEL_TOKENS_TOTAL.labels(model=model, direction="input").inc(max(input_tokens, 0))
        MODEL_TOKENS_TOTAL.labels(model=model, direction="output").inc(max(output_tokens, 0))
        MODEL_COST_USD_TOTAL.labels(model=model).inc(max(cost_usd, 0.0))
    except Exception as e:
        logger.warning(f"Failed to record model usage metric: {e}")


def observe_processing_duration(content_type: str, status: str, duration_seconds: float) -> None:
    try:
        PROCESSING_DURATION_SECONDS.labels(content_type=content_type, status=status).observe(
            duration_seconds
        )
    except Exception as e:
        logger.warning(f"Failed to record processing duration metric: {e}")


def get_metrics_response() -> bytes:
    """Generate the Prometheus metrics response.

    Returns:
        Bytes containing the metrics in Prometheus exposition format
    """
    return generate_latest(_registry)  # type: ignore[no-any-return]
