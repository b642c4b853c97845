# supportdesk/core/circuit_breaker.py
"""
Circuit Breaker Pattern Implementation

Stops calling an upstream service while it is failing, so requests fail
fast instead of each waiting for its own timeout.

States:
- CLOSED: Normal operation, all requests pass through
- OPEN: Service failed, requests fail fast without attempting
- HALF_OPEN: Testing if service recovered, limited requests allowed

Usage:
    breaker = CircuitBreaker("embedding_api", failure_threshold=5, recovery_timeout=60)
    try:
        result = await breaker.call(async_function, *args, **kwargs)
    except CircuitBreakerOpen:
        ...
"""

import time
from enum import Enum
from typing import Any, Callable, Optional

from supportdesk.core.logger import get_logger

logger = get_logger(__name__)


class CircuitState(Enum):
    """Circuit breaker states"""
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreakerOpen(Exception):
    """Exception raised when circuit breaker is OPEN"""
    pass


class CircuitBreaker:
    """
    Circuit breaker for async operations.

    A breaker never retries; it only decides whether a call is attempted.
    """

    def __init__(
        self,
        name: str,
        failure_threshold: int = 5,
        success_threshold: int = 2,
        recovery_timeout: float = 60,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize circuit breaker

        Args:
            name: Name of the service being protected
            failure_threshold: Number of failures before opening circuit
            success_threshold: Number of successes in HALF_OPEN before closing
            recovery_timeout: Seconds to wait before attempting recovery
            clock: Monotonic time source (injectable for tests)
        """
        self.name = name
        self.failure_threshold = failure_threshold
        self.success_threshold = success_threshold
        self.recovery_timeout = recovery_timeout
        self._clock = clock

        self.state = CircuitState.CLOSED
        self.failure_count = 0
        self.success_count = 0
        self.opened_at: Optional[float] = None

    async def call(self, func: Callable, *args, **kwargs) -> Any:
        """
        Execute function through circuit breaker

        Raises:
            CircuitBreakerOpen: If circuit is open (fail fast)
        """
        if self.state == CircuitState.OPEN:
            if self._should_attempt_recovery():
                logger.info(f"Circuit breaker '{self.name}': transitioning to HALF_OPEN")
                self.state = CircuitState.HALF_OPEN
                self.success_count = 0
            else:
                raise CircuitBreakerOpen(f"Circuit breaker '{self.name}' is OPEN")

        try:
            result = await func(*args, **kwargs)
        except Exception:
            self._record_failure()
            raise

        self._record_success()
        return result

    def _record_success(self) -> None:
        """Record successful execution"""
        self.failure_count = 0

        if self.state == CircuitState.HALF_OPEN:
            self.success_count += 1
            if self.success_count >= self.success_threshold:
                logger.info(f"Circuit breaker '{self.name}': CLOSED (recovered)")
                self.state = CircuitState.CLOSED
                self.success_count = 0

    def _record_failure(self) -> None:
        """Record failed execution"""
        self.failure_count += 1

        logger.warning(
            f"Circuit breaker '{self.name}': failure {self.failure_count}/{self.failure_threshold}"
        )

        if self.state == CircuitState.HALF_OPEN:
            logger.error(f"Circuit breaker '{self.name}': OPEN (recovery failed)")
            self.state = CircuitState.OPEN
            self.opened_at = self._clock()
            self.success_count = 0

        elif self.state == CircuitState.CLOSED and self.failure_count >= self.failure_threshold:
            logger.error(f"Circuit breaker '{self.name}': OPEN (threshold exceeded)")
            self.state = CircuitState.OPEN
            self.opened_at = self._clock()

    def _should_attempt_recovery(self) -> bool:
        """Check if enough time has passed to attempt recovery"""
        if self.opened_at is None:
            return False
        return self._clock() - self.opened_at >= self.recovery_timeout

    def reset(self) -> None:
        """Force the breaker back to CLOSED"""
        self.state = CircuitState.CLOSED
        self.failure_count = 0
        self.success_count = 0
        self.opened_at = None

    def get_status(self) -> dict:
        """Get current circuit breaker status"""
        return {
            "name": self.name,
            "state": self.state.value,
            "failure_count": self.failure_count,
            "success_count": self.success_count,
            "failure_threshold": self.failure_threshold,
            "recovery_timeout": self.recovery_timeout
        }
