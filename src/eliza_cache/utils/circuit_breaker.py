"""Circuit breaker guarding database cache operations."""

import time
from typing import Awaitable, Callable, TypeVar

import structlog

from ..models import CircuitState

logger = structlog.get_logger("circuit_breaker")

T = TypeVar("T")


class CircuitBreakerOpenError(RuntimeError):
    """Raised when a call is rejected because the circuit is open."""


class CircuitBreaker:
    """Stops calling a failing backend until it has had time to recover.

    CLOSED lets every call through and counts failures. Reaching
    ``failure_threshold`` opens the circuit; while OPEN every call is rejected
    with ``CircuitBreakerOpenError``. Once ``reset_timeout`` seconds have passed
    since the last failure the next call moves the circuit to HALF_OPEN, and
    ``half_open_max_attempts`` successes in a row close it again. A failure
    while HALF_OPEN reopens it immediately.

    Args:
        failure_threshold: Failures before the circuit opens
        reset_timeout: Seconds to wait before allowing trial calls
        half_open_max_attempts: Successful trial calls needed to close
        clock: Monotonic time source, in seconds
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        reset_timeout: float = 60.0,
        half_open_max_attempts: int = 3,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.failure_threshold = failure_threshold
        self.reset_timeout = reset_timeout
        self.half_open_max_attempts = half_open_max_attempts
        self._clock = clock

        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._last_failure_time: float | None = None
        self._half_open_successes = 0

    @property
    def state(self) -> CircuitState:
        return self._state

    @property
    def failure_count(self) -> int:
        return self._failure_count

    async def execute(self, operation: Callable[[], Awaitable[T]], context: str = "operation") -> T:
        """Run ``operation`` under the breaker.

        Args:
            operation: Zero-argument coroutine function to run
            context: Operation name used in log events

        Returns:
            Result of the operation

        Raises:
            CircuitBreakerOpenError: If the circuit is open
            Exception: Whatever the operation raised
        """
        if self._state == CircuitState.OPEN:
            elapsed = self._clock() - (self._last_failure_time or 0.0)
            if elapsed > self.reset_timeout:
                logger.info("Circuit half-open, allowing trial calls", context=context)
                self._state = CircuitState.HALF_OPEN
                self._half_open_successes = 0
            else:
                raise CircuitBreakerOpenError(f"Circuit breaker is OPEN ({context})")

        try:
            result = await operation()
        except Exception:
            self._record_failure(context)
            raise

        if self._state == CircuitState.HALF_OPEN:
            self._half_open_successes += 1
            if self._half_open_successes >= self.half_open_max_attempts:
                self.reset()
                logger.info("Circuit closed after successful trial calls", context=context)

        return result

    def _record_failure(self, context: str) -> None:
        self._failure_count += 1
        self._last_failure_time = self._clock()

        if self._state != CircuitState.OPEN and self._failure_count >= self.failure_threshold:
            self._state = CircuitState.OPEN
            logger.warning(
                "Circuit opened",
                context=context,
                failures=self._failure_count,
                reset_timeout=self.reset_timeout,
            )

    def reset(self) -> None:
        """Close the circuit and forget past failures."""
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._last_failure_time = None
        self._half_open_successes = 0

    def __repr__(self) -> str:
        return (
            f"CircuitBreaker(state={self._state}, failures={self._failure_count}, "
            f"threshold={self.failure_threshold})"
        )
