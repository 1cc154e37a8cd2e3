"""
Circuit breaker for the transcription provider.

A provider that keeps failing is skipped for a cool-down period, so session
workers degrade to audio-only scoring at once instead of each waiting for
its own timeout.
"""

import asyncio
import logging
import time
from collections.abc import Awaitable
from collections.abc import Callable
from enum import Enum
from typing import TypeVar

T = TypeVar("T")

logger = logging.getLogger(__name__)


class CircuitState(Enum):
    """Circuit breaker states."""

    CLOSED = "closed"  # Calls reach the provider
    OPEN = "open"  # Calls are rejected until the cool-down ends
    HALF_OPEN = "half_open"  # One trial call decides


class CircuitBreakerOpenError(Exception):
    """Raised instead of calling a provider whose circuit is open."""


class CircuitBreaker:
    """
    Fail-fast guard shared by every session using one provider.

    Args:
        name: Provider name used in log lines
        failure_threshold: Consecutive failures that open the circuit
        recovery_timeout: Seconds to stay open before allowing a trial call
        clock: Monotonic time source
    """

    def __init__(
        self,
        name: str,
        failure_threshold: int = 5,
        recovery_timeout: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.name = name
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self._clock = clock

        self.state = CircuitState.CLOSED
        self.failure_count = 0
        self.opened_at = 0.0
        self._trial_in_flight = False
        self._lock = asyncio.Lock()

    async def _admit(self) -> None:
        async with self._lock:
            if self.state == CircuitState.OPEN:
                if self._clock() - self.opened_at <= self.recovery_timeout:
                    raise CircuitBreakerOpenError(f"Circuit '{self.name}' is open")
                logger.info(f"Circuit '{self.name}' half-open, allowing a trial call")
                self.state = CircuitState.HALF_OPEN
                self._trial_in_flight = False

            if self.state == CircuitState.HALF_OPEN:
                if self._trial_in_flight:
                    raise CircuitBreakerOpenError(f"Circuit '{self.name}' is waiting on a trial call")
                self._trial_in_flight = True

    async def _record_failure(self, error: Exception) -> None:
        async with self._lock:
            self.failure_count += 1
            if self.state == CircuitState.HALF_OPEN or self.failure_count >= self.failure_threshold:
                if self.state != CircuitState.OPEN:
                    logger.warning(
                        f"Circuit '{self.name}' opened after {self.failure_count} failures: {error!r}"
                    )
                self.state = CircuitState.OPEN
                self.opened_at = self._clock()
                self._trial_in_flight = False

    async def _record_success(self) -> None:
        async with self._lock:
            if self.state == CircuitState.HALF_OPEN:
                logger.info(f"Circuit '{self.name}' closed, provider recovered")
            self.state = CircuitState.CLOSED
            self.failure_count = 0
            self._trial_in_flight = False

    async def execute(self, func: Callable[..., Awaitable[T]], *args, **kwargs) -> T:
        """
        Call ``func`` unless the circuit is open.

        Raises:
            CircuitBreakerOpenError: If the call was not attempted
            Exception: Whatever ``func`` raised
        """
        await self._admit()
        try:
            result = await func(*args, **kwargs)
        except Exception as e:
            await self._record_failure(e)
            raise
        await self._record_success()
        return result
