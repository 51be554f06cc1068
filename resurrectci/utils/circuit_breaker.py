# Copyright (c) 2025 Parth Sinha and Shine Gupta. All rights reserved.
# ResurrectCI - Autonomous AI agent that detects, analyzes, and resolves deployment failures in real-time.

"""
Circuit Breaker Pattern Implementation

Stops hammering an external service once it keeps failing.
Opens the circuit after a threshold of failures, allowing time for recovery.
"""

import time
from enum import Enum
from typing import Callable, Any, Optional
from functools import wraps
from dataclasses import dataclass, field

from resurrectci.exceptions import ExternalServiceError
from resurrectci.utils.logging import get_logger

logger = get_logger(__name__)


class CircuitState(str, Enum):
    """Circuit breaker states."""
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass
class CircuitBreakerStats:
    """Circuit breaker statistics."""
    state: CircuitState = CircuitState.CLOSED
    failure_count: int = 0
    success_count: int = 0
    last_failure_time: Optional[float] = None
    last_state_change: float = field(default_factory=time.monotonic)
    total_requests: int = 0
    total_failures: int = 0


class CircuitBreakerOpenError(ExternalServiceError):
    """Raised when circuit breaker is open."""
    def __init__(self, name: str):
        super().__init__(name, "circuit breaker is open", status_code=503)


def _is_client_error(exc: BaseException) -> bool:
    # 4xx answers (other than 429) mean the service is up and rejected the request
    status_code = getattr(exc, "status_code", None)
    return (
        isinstance(exc, ExternalServiceError)
        and status_code is not None
        and 400 <= status_code < 500
        and status_code != 429
    )


class CircuitBreaker:
    """
    Circuit breaker guarding calls to an external service.

    States:
    - CLOSED: Normal operation, all requests pass through
    - OPEN: Too many failures, blocking all requests
    - HALF_OPEN: Testing if service recovered, limited requests allowed

    Example:
        ```python
        breaker = CircuitBreaker(failure_threshold=5, timeout=60.0, name="vercel_api")

        result = await breaker.call(client.get, "/v13/deployments/dpl_1")
        ```
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        success_threshold: int = 2,
        timeout: float = 60.0,
        expected_exception: type = Exception,
        name: Optional[str] = None,
    ):
        """
        Initialize circuit breaker.

        Args:
            failure_threshold: Number of failures before opening circuit
            success_threshold: Number of successes to close from half-open
            timeout: Seconds to wait before trying half-open
            expected_exception: Exception type to count as failure
            name: Optional name for logging
        """
        self.failure_threshold = failure_threshold
        self.success_threshold = success_threshold
        self.timeout = timeout
        self.expected_exception = expected_exception
        self.stats = CircuitBreakerStats()
        self.name = name or "circuit_breaker"

    def __call__(self, func: Callable) -> Callable:
        """Decorator to wrap a coroutine function with circuit breaker."""

        @wraps(func)
        async def async_wrapper(*args, **kwargs) -> Any:
            return await self.call(func, *args, **kwargs)

        return async_wrapper

    async def call(self, func: Callable, *args, **kwargs) -> Any:
        """Execute async function with circuit breaker protection."""
        self.stats.total_requests += 1

        if self.stats.state == CircuitState.OPEN:
            if self._should_attempt_reset():
                self._transition_to_half_open()
            else:
                logger.warning(
                    "circuit_breaker_open",
                    name=self.name,
                    failure_count=self.stats.failure_count,
                )
                raise CircuitBreakerOpenError(self.name)

        try:
            result = await func(*args, **kwargs)
        except self.expected_exception as e:
            if not _is_client_error(e):
                self._on_failure()
            raise

        self._on_success()
        return result

    def _on_success(self) -> None:
        if self.stats.state == CircuitState.HALF_OPEN:
            self.stats.success_count += 1

            if self.stats.success_count >= self.success_threshold:
                self._transition_to_closed()
        else:
            self.stats.failure_count = 0

    def _on_failure(self) -> None:
        self.stats.total_failures += 1
        self.stats.failure_count += 1
        self.stats.last_failure_time = time.monotonic()

        logger.warning(
            "circuit_breaker_failure",
            name=self.name,
            failure_count=self.stats.failure_count,
            threshold=self.failure_threshold,
            state=self.stats.state.value,
        )

        if self.stats.state == CircuitState.HALF_OPEN:
            self._transition_to_open()
        elif self.stats.failure_count >= self.failure_threshold:
            self._transition_to_open()

    def _should_attempt_reset(self) -> bool:
        if self.stats.last_failure_time is None:
            return False

        return time.monotonic() - self.stats.last_failure_time >= self.timeout

    def _transition_to_open(self) -> None:
        self.stats.state = CircuitState.OPEN
        self.stats.last_state_change = time.monotonic()

        logger.error(
            "circuit_breaker_opened",
            name=self.name,
            failure_count=self.stats.failure_count,
            threshold=self.failure_threshold,
        )

    def _transition_to_half_open(self) -> None:
        self.stats.state = CircuitState.HALF_OPEN
        self.stats.success_count = 0
        self.stats.last_state_change = time.monotonic()

        logger.info("circuit_breaker_half_open", name=self.name)

    def _transition_to_closed(self) -> None:
        self.stats.state = CircuitState.CLOSED
        self.stats.failure_count = 0
        self.stats.success_count = 0
        self.stats.last_state_change = time.monotonic()

        logger.info("circuit_breaker_closed", name=self.name)

    def reset(self) -> None:
        """Manually reset circuit breaker to CLOSED state."""
        self.stats.state = CircuitState.CLOSED
        self.stats.failure_count = 0
        self.stats.success_count = 0
        self.stats.last_failure_time = None

        logger.info("circuit_breaker_reset", name=self.name)

    def get_state(self) -> CircuitState:
        """Get current circuit state."""
        return self.stats.state

    def get_stats(self) -> dict:
        """Get circuit breaker statistics."""
        return {
            "state": self.stats.state.value,
            "failure_count": self.stats.failure_count,
            "total_requests": self.stats.total_requests,
            "total_failures": self.stats.total_failures,
        }
