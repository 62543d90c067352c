"""Circuit breaker pattern implementation for model service protection.

This module provides a circuit breaker that isolates an unreliable model
dependency. When a dependency fails repeatedly, the breaker "opens" and
rejects calls immediately, sparing callers the failure-detection latency and
giving the dependency time to recover.

States:
    - CLOSED: Normal operation, calls pass through
    - OPEN: Circuit tripped, calls are rejected immediately
    - HALF_OPEN: Recovery probing, every call is attempted and the circuit
      closes after enough consecutive successes

Features:
    - Configurable failure/success thresholds and open timeout
    - Lazy OPEN -> HALF_OPEN transition on the first call after the timeout
      (no background timer)
    - Results of calls admitted before the latest state change are ignored,
      so a slow call from the CLOSED era cannot reopen a recovering circuit
    - Mutex-guarded state so one breaker can be shared by concurrent tasks
      and threads
    - Structured logging and Prometheus metrics for every transition and
      rejection
    - Registry object for sharing one breaker per dependency name
"""

from __future__ import annotations

import threading
import time
from collections.abc import Awaitable, Callable
from dataclasses import asdict, dataclass
from datetime import UTC, datetime
from enum import Enum
from typing import Any, TypeVar

from tagging.core.exceptions import CircuitBreakerOpenError, ConfigurationError
from tagging.core.logging import get_logger
from tagging.core.metrics import (
    record_circuit_failure,
    record_circuit_rejection,
    record_circuit_transition,
    set_circuit_state,
)

logger = get_logger(__name__)

T = TypeVar("T")


class CircuitState(Enum):
    """Circuit breaker states."""

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass(frozen=True, slots=True)
class CircuitBreakerConfig:
    """Configuration for circuit breaker behavior.

    Attributes:
        failure_threshold: Consecutive failures in CLOSED before opening
        success_threshold: Consecutive successes in HALF_OPEN before closing
        timeout: Seconds the circuit stays OPEN before the next call probes
    """

    failure_threshold: int = 5
    success_threshold: int = 2
    timeout: float = 60.0

    def __post_init__(self) -> None:
        if self.failure_threshold < 1:
            raise ConfigurationError(
                f"failure_threshold must be >= 1, got {self.failure_threshold}"
            )
        if self.success_threshold < 1:
            raise ConfigurationError(
                f"success_threshold must be >= 1, got {self.success_threshold}"
            )
        if self.timeout < 0:
            raise ConfigurationError(f"timeout must be >= 0, got {self.timeout}")


class CircuitBreaker:
    """Circuit breaker guarding a single named dependency.

    Usage:
        breaker = CircuitBreaker(name="text-model", config=config)

        try:
            result = await breaker.execute(lambda: client.tag_content(...))
        except CircuitBreakerOpenError:
            # Dependency is cooling down; let the queue redeliver later
            raise
    """

    def __init__(
        self,
        name: str,
        config: CircuitBreakerConfig | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize circuit breaker.

        Args:
            name: Dependency name, used in errors, logs and metric labels
            config: Configuration (uses defaults if not provided)
            clock: Monotonic time source in seconds
        """
        self._name = name
        self._config = config or CircuitBreakerConfig()
        self._clock = clock
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._success_count = 0
        self._total_calls = 0
        self._rejected_calls = 0
        self._open_until: float | None = None
        # Bumped on every state change; results of calls admitted under an
        # earlier generation do not move the state machine
        self._generation = 0
        self._last_state_change: datetime | None = None
        # Held only around state reads/writes, never across an await
        self._lock = threading.Lock()

        set_circuit_state(name, self._state.value)

        logger.info(
            f"CircuitBreaker '{name}' initialized: "
            f"failure_threshold={self._config.failure_threshold}, "
            f"success_threshold={self._config.success_threshold}, "
            f"timeout={self._config.timeout}s",
            extra={"circuit_breaker": name, "config": asdict(self._config)},
        )

    @property
    def name(self) -> str:
        """Get circuit breaker name."""
        return self._name

    @property
    def config(self) -> CircuitBreakerConfig:
        """Get circuit breaker configuration."""
        return self._config

    @property
    def state(self) -> CircuitState:
        """Get current circuit state.

        This does not apply the lazy OPEN -> HALF_OPEN transition; only
        execute() does.
        """
        return self._state

    @property
    def failure_count(self) -> int:
        """Get current consecutive failure count."""
        return self._failure_count

    @property
    def success_count(self) -> int:
        """Get current consecutive success count (relevant in half-open state)."""
        return self._success_count

    @property
    def is_closed(self) -> bool:
        return self._state == CircuitState.CLOSED

    @property
    def is_open(self) -> bool:
        return self._state == CircuitState.OPEN

    async def execute(self, operation: Callable[[], Awaitable[T]]) -> T:
        """Execute operation through the circuit breaker.

        Args:
            operation: Zero-argument async callable to execute

        Returns:
            Result from the operation

        Raises:
            CircuitBreakerOpenError: If the circuit is open and the timeout
                has not elapsed; the operation is not invoked
            Exception: Any exception from the operation, re-raised unchanged
                after the failure has been recorded
        """
        generation = self._before_call()

        try:
            result = await operation()
        except Exception:
            self._record_failure(generation)
            raise

        self._record_success(generation)
        return result

    def _before_call(self) -> int:
        """Admit or reject a call, returning the generation it was admitted under."""
        with self._lock:
            self._total_calls += 1

            if self._state != CircuitState.OPEN:
                return self._generation

            now = self._clock()
            if self._open_until is not None and now >= self._open_until:
                self._transition_to_half_open()
                return self._generation

            self._rejected_calls += 1
            remaining = max((self._open_until or now) - now, 0.0)

        logger.warning(
            f"CircuitBreaker '{self._name}' is OPEN, rejecting call "
            f"(retry in {remaining:.1f}s)",
            extra={
                "circuit_breaker": self._name,
                "state": CircuitState.OPEN.value,
                "failure_count": self._failure_count,
                "retry_in_seconds": round(remaining, 3),
            },
        )
        record_circuit_rejection(self._name)
        raise CircuitBreakerOpenError(self._name, recovery_timeout=self._config.timeout)

    def _record_success(self, generation: int) -> None:
        """Record a successful call."""
        with self._lock:
            if self._is_stale(generation, "success"):
                return
            if self._state == CircuitState.HALF_OPEN:
                self._failure_count = 0
                self._success_count += 1
                logger.debug(
                    f"CircuitBreaker '{self._name}' half-open success: "
                    f"{self._success_count}/{self._config.success_threshold}",
                    extra={
                        "circuit_breaker": self._name,
                        "state": self._state.value,
                        "success_count": self._success_count,
                    },
                )

                if self._success_count >= self._config.success_threshold:
                    self._transition_to_closed()
            elif self._state == CircuitState.CLOSED and self._failure_count > 0:
                logger.debug(f"CircuitBreaker '{self._name}' resetting failure count on success")
                self._failure_count = 0

    def _record_failure(self, generation: int) -> None:
        """Record a failed call."""
        with self._lock:
            record_circuit_failure(self._name)
            if self._is_stale(generation, "failure"):
                return
            self._failure_count += 1

            logger.warning(
                f"CircuitBreaker '{self._name}' failure recorded: "
                f"{self._failure_count}/{self._config.failure_threshold}",
                extra={
                    "circuit_breaker": self._name,
                    "state": self._state.value,
                    "failure_count": self._failure_count,
                    "success_count": self._success_count,
                },
            )

            if self._state == CircuitState.HALF_OPEN:
                # Any failure in half-open reopens the circuit
                self._transition_to_open()
            elif (
                self._state == CircuitState.CLOSED
                and self._failure_count >= self._config.failure_threshold
            ):
                self._transition_to_open()

    def _is_stale(self, generation: int, outcome: str) -> bool:
        """Check whether a call was admitted before the last state change (lock must be held)."""
        if generation == self._generation:
            return False
        logger.debug(
            f"CircuitBreaker '{self._name}' ignoring late {outcome} from a call "
            "admitted before the last state change",
            extra={
                "circuit_breaker": self._name,
                "state": self._state.value,
                "outcome": outcome,
            },
        )
        return True

    def _transition_to_open(self) -> None:
        """Transition circuit to OPEN state (lock must be held)."""
        prev_state = self._state
        self._state = CircuitState.OPEN
        self._generation += 1
        self._open_until = self._clock() + self._config.timeout
        self._success_count = 0
        self._last_state_change = datetime.now(UTC)

        record_circuit_transition(self._name, prev_state.value, self._state.value)
        logger.error(
            f"CircuitBreaker '{self._name}' transitioned {prev_state.value} -> OPEN "
            f"(failures={self._failure_count}, "
            f"threshold={self._config.failure_threshold})",
            extra={
                "circuit_breaker": self._name,
                "from_state": prev_state.value,
                "state": self._state.value,
                "failure_count": self._failure_count,
                "success_count": self._success_count,
                "timeout_seconds": self._config.timeout,
            },
        )

    def _transition_to_half_open(self) -> None:
        """Transition circuit to HALF_OPEN state (lock must be held)."""
        self._state = CircuitState.HALF_OPEN
        self._generation += 1
        self._success_count = 0
        self._last_state_change = datetime.now(UTC)

        record_circuit_transition(self._name, CircuitState.OPEN.value, self._state.value)
        logger.info(
            f"CircuitBreaker '{self._name}' transitioned OPEN -> HALF_OPEN "
            f"(testing recovery after {self._config.timeout}s)",
            extra={
                "circuit_breaker": self._name,
                "from_state": CircuitState.OPEN.value,
                "state": self._state.value,
                "failure_count": self._failure_count,
                "success_count": self._success_count,
            },
        )

    def _transition_to_closed(self) -> None:
        """Transition circuit to CLOSED state (lock must be held)."""
        prev_state = self._state
        self._state = CircuitState.CLOSED
        self._generation += 1
        self._failure_count = 0
        self._success_count = 0
        self._open_until = None
        self._last_state_change = datetime.now(UTC)

        record_circuit_transition(self._name, prev_state.value, self._state.value)
        logger.info(
            f"CircuitBreaker '{self._name}' transitioned {prev_state.value} -> CLOSED "
            "(service recovered)",
            extra={
                "circuit_breaker": self._name,
                "from_state": prev_state.value,
                "state": self._state.value,
                "failure_count": 0,
                "success_count": 0,
            },
        )

    def reset(self) -> None:
        """Manually reset circuit breaker to CLOSED state."""
        with self._lock:
            prev_state = self._state
            self._state = CircuitState.CLOSED
            self._generation += 1
            self._failure_count = 0
            self._success_count = 0
            self._open_until = None
            self._last_state_change = datetime.now(UTC)

        if prev_state != CircuitState.CLOSED:
            record_circuit_transition(self._name, prev_state.value, CircuitState.CLOSED.value)
        logger.info(
            f"CircuitBreaker '{self._name}' manually reset to CLOSED",
            extra={"circuit_breaker": self._name, "from_state": prev_state.value},
        )

    def get_status(self) -> dict[str, Any]:
        """Get current circuit breaker status.

        Returns:
            Dictionary with status information
        """
        with self._lock:
            open_for = None
            if self._state == CircuitState.OPEN and self._open_until is not None:
                open_for = max(self._open_until - self._clock(), 0.0)
            return {
                "name": self._name,
                "state": self._state.value,
                "failure_count": self._failure_count,
                "success_count": self._success_count,
                "total_calls": self._total_calls,
                "rejected_calls": self._rejected_calls,
                "open_remaining_seconds": open_for,
                "last_state_change": (
                    self._last_state_change.isoformat() if self._last_state_change else None
                ),
                "config": asdict(self._config),
            }

    def __str__(self) -> str:
        """String representation of circuit breaker."""
        return f"CircuitBreaker({self._name}, state={self._state.value.upper()})"

    def __repr__(self) -> str:
        """Detailed representation of circuit breaker."""
        return (
            f"CircuitBreaker(name={self._name!r}, "
            f"state={self._state.value}, "
            f"failures={self._failure_count})"
        )


class CircuitBreakerRegistry:
    """Registry sharing one circuit breaker per dependency name.

    The registry is an ordinary object owned by the composition root and
    passed to whoever needs breakers; there is no module-level instance.

    Config semantics: get_or_create() is first-writer-wins. The first call for
    a name decides its configuration; later calls with a different config get
    the existing breaker back unchanged and a warning is logged. Use
    register() when a conflicting config should be an error instead.

    Usage:
        registry = CircuitBreakerRegistry()
        breaker = registry.get_or_create("video-model", config)
    """

    def __init__(self, *, clock: Callable[[], float] = time.monotonic) -> None:
        """Initialize the registry.

        Args:
            clock: Time source handed to every breaker created by the registry
        """
        self._breakers: dict[str, CircuitBreaker] = {}
        self._clock = clock
        self._lock = threading.Lock()

    def get_or_create(
        self,
        name: str,
        config: CircuitBreakerConfig | None = None,
    ) -> CircuitBreaker:
        """Get existing circuit breaker or create new one.

        Args:
            name: Dependency name
            config: Configuration used only if the breaker does not exist yet

        Returns:
            CircuitBreaker instance shared by every caller using this name
        """
        with self._lock:
            breaker = self._breakers.get(name)
            if breaker is None:
                breaker = CircuitBreaker(name=name, config=config, clock=self._clock)
                self._breakers[name] = breaker
                return breaker

        if config is not None and config != breaker.config:
            logger.warning(
                f"CircuitBreaker '{name}' already exists; ignoring new config",
                extra={
                    "circuit_breaker": name,
                    "existing_config": asdict(breaker.config),
                    "ignored_config": asdict(config),
                },
            )
        return breaker

    def register(self, name: str, config: CircuitBreakerConfig | None = None) -> CircuitBreaker:
        """Create a breaker, refusing to touch an existing one.

        Raises:
            ConfigurationError: If a breaker with this name already exists
        """
        with self._lock:
            if name in self._breakers:
                raise ConfigurationError(
                    f"Circuit breaker '{name}' is already registered",
                    details={"circuit_breaker": name},
                )
            breaker = CircuitBreaker(name=name, config=config, clock=self._clock)
            self._breakers[name] = breaker
            return breaker

    def get(self, name: str) -> CircuitBreaker | None:
        """Get existing circuit breaker by name."""
        with self._lock:
            return self._breakers.get(name)

    def get_all_status(self) -> dict[str, dict[str, Any]]:
        """Get status of all circuit breakers.

        Returns:
            Dictionary mapping names to status dictionaries
        """
        with self._lock:
            breakers = list(self._breakers.items())
        return {name: breaker.get_status() for name, breaker in breakers}

    def reset_all(self) -> None:
        """Reset all circuit breakers to CLOSED state."""
        with self._lock:
            breakers = list(self._breakers.values())
        for breaker in breakers:
            breaker.reset()
        logger.info(f"Reset all {len(breakers)} circuit breakers")

    def list_names(self) -> list[str]:
        """List all registered circuit breaker names."""
        with self._lock:
            return list(self._breakers.keys())

    def clear(self) -> None:
        """Forget all registered circuit breakers (for tests)."""
        with self._lock:
            self._breakers.clear()
