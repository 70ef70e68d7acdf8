"""
Circuit breaker for catalog calls.

After a run of consecutive failures the catalog is treated as down and calls
fail fast with CircuitBreakerOpenException until the recovery timeout has
passed. Then a few trial calls decide whether it closes again.
"""

import logging
import math
import time
from enum import Enum
from typing import Awaitable, Callable, Optional, Tuple, Type, TypeVar

from ..domain.exceptions import CircuitBreakerOpenException

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CircuitState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"  # Trial calls after the recovery timeout


class CircuitBreaker:
    """
    Consecutive-failure circuit breaker for coroutine calls.

    Exceptions in ``ignored_exceptions`` are answers from a healthy catalog
    (not found, bad payload, throttling): they propagate but reset the
    failure streak like a success does.
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        recovery_timeout: int = 60,
        half_open_max_calls: int = 3,
        name: str = "default",
        ignored_exceptions: Tuple[Type[BaseException], ...] = (),
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Args:
            failure_threshold: Consecutive failures that open the circuit
            recovery_timeout: Seconds the circuit stays open
            half_open_max_calls: Trial successes needed to close again
            name: Name used in logs and in CircuitBreakerOpenException
            ignored_exceptions: Exceptions that do not count as failures
            clock: Monotonic time source
        """
        self.name = name
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.half_open_max_calls = half_open_max_calls
        self.ignored_exceptions = ignored_exceptions
        self.clock = clock

        self.state = CircuitState.CLOSED
        self.failure_count = 0
        self.trial_successes = 0
        self.opened_at: Optional[float] = None

    async def call(self, func: Callable[..., Awaitable[T]], *args, **kwargs) -> T:
        """
        Await ``func(*args, **kwargs)`` unless the circuit is open.

        Raises:
            CircuitBreakerOpenException: The circuit is open
        """
        self._check_open()

        try:
            result = await func(*args, **kwargs)
        except self.ignored_exceptions:
            self._record_success()
            raise
        except Exception:
            self._record_failure()
            raise

        self._record_success()
        return result

    def retry_after(self) -> int:
        """Whole seconds until the circuit lets a trial call through."""
        if self.opened_at is None:
            return 0
        remaining = self.recovery_timeout - (self.clock() - self.opened_at)
        return max(0, math.ceil(remaining))

    def _check_open(self) -> None:
        if self.state != CircuitState.OPEN:
            return

        if self.retry_after() == 0:
            logger.info(f"Circuit '{self.name}' half-open, letting trial calls through")
            self.state = CircuitState.HALF_OPEN
            self.trial_successes = 0
            return

        raise CircuitBreakerOpenException(
            service=self.name,
            failure_count=self.failure_count,
            retry_after=self.retry_after(),
        )

    def _record_success(self) -> None:
        self.failure_count = 0
        if self.state != CircuitState.HALF_OPEN:
            return

        self.trial_successes += 1
        if self.trial_successes >= self.half_open_max_calls:
            logger.info(f"Circuit '{self.name}' closed after {self.trial_successes} trial calls")
            self.state = CircuitState.CLOSED
            self.opened_at = None

    def _record_failure(self) -> None:
        self.failure_count += 1

        if self.state == CircuitState.HALF_OPEN:
            logger.warning(f"Circuit '{self.name}' trial call failed, reopening")
            self._open()
        elif self.failure_count >= self.failure_threshold:
            logger.error(f"Circuit '{self.name}' opened after {self.failure_count} failures")
            self._open()
        else:
            logger.warning(
                f"Circuit '{self.name}' failure {self.failure_count}/{self.failure_threshold}"
            )

    def _open(self) -> None:
        self.state = CircuitState.OPEN
        self.opened_at = self.clock()

    def get_status(self) -> dict:
        return {
            "name": self.name,
            "state": self.state.value,
            "failure_count": self.failure_count,
            "failure_threshold": self.failure_threshold,
            "retry_after_seconds": (
                self.retry_after() if self.state == CircuitState.OPEN else None
            ),
        }
