"""
Rate limiter for catalog request throttling.

Keeps us under the catalog's request budget using a sliding window. When the
budget is spent the request fails fast instead of queueing, so callers see
the backpressure.
"""

import logging
import time
from collections import deque
from typing import Callable, Deque

from ..domain.exceptions import RateLimitExceededException

logger = logging.getLogger(__name__)


class RateLimiter:
    """
    Sliding window rate limiter.

    Tracks request timestamps and enforces rate limits per time window.
    """

    def __init__(
        self,
        max_requests: int,
        window_seconds: int,
        name: str = "default",
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize rate limiter.

        Args:
            max_requests: Maximum requests allowed per window
            window_seconds: Time window duration in seconds
            name: Rate limiter name for logging
            clock: Monotonic time source
        """
        self.name = name
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.clock = clock
        self.requests: Deque[float] = deque()

    def acquire(self) -> None:
        """
        Acquire permission to make a request.

        Raises:
            RateLimitExceededException: If rate limit would be exceeded
        """
        now = self.clock()
        self._clean_old_requests(now)

        if len(self.requests) >= self.max_requests:
            oldest_request = self.requests[0]
            retry_after = int(self.window_seconds - (now - oldest_request)) + 1

            logger.warning(
                f"Rate limit exceeded for '{self.name}': "
                f"{len(self.requests)}/{self.max_requests} requests in {self.window_seconds}s"
            )

            raise RateLimitExceededException(
                limit=self.max_requests,
                window_seconds=self.window_seconds,
                retry_after=retry_after,
            )

        self.requests.append(now)
        logger.debug(
            f"Rate limiter '{self.name}': {len(self.requests)}/{self.max_requests} "
            f"requests in window"
        )

    def _clean_old_requests(self, now: float) -> None:
        """Remove requests outside the current window."""
        window_start = now - self.window_seconds

        while self.requests and self.requests[0] <= window_start:
            self.requests.popleft()

    def get_current_usage(self) -> dict:
        """Get current rate limit usage statistics."""
        self._clean_old_requests(self.clock())

        return {
            "name": self.name,
            "current_requests": len(self.requests),
            "max_requests": self.max_requests,
            "window_seconds": self.window_seconds,
            "usage_percent": round((len(self.requests) / self.max_requests) * 100, 2),
        }
