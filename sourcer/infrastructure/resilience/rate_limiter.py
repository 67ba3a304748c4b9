"""Implementation of a rate limiter.

Controls the frequency of outgoing requests to prevent hitting API rate limits.
Uses a sliding window over admitted-call timestamps. The window is local to
one limiter instance; nothing is shared across processes.
"""

import time
import asyncio
import logging
from collections import deque
from typing import Callable, Deque

logger = logging.getLogger(__name__)

DEFAULT_MAX_REQUESTS = 100  # Max 100 requests...
DEFAULT_TIME_WINDOW_SECONDS = 60  # ...per 60 seconds


class RateLimiter:
    """Sliding window rate limiter with non-blocking admission."""

    def __init__(
        self,
        max_requests: int = DEFAULT_MAX_REQUESTS,
        time_window: float = DEFAULT_TIME_WINDOW_SECONDS,
        enabled: bool = True,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initializes the rate limiter.

        Args:
            max_requests: Maximum number of requests allowed in the time window.
            time_window: The time window in seconds.
            enabled: When False every call is admitted.
            clock: Monotonic time source in seconds.
        """
        if max_requests < 1 or time_window <= 0:
            raise ValueError("max_requests and time_window must be positive")
        self.max_requests = max_requests
        self.time_window = time_window
        self.enabled = enabled
        self.timestamps: Deque[float] = deque()
        self._clock = clock
        self._lock = asyncio.Lock()
        logger.info(f"RateLimiter initialized: {max_requests} requests / {time_window} seconds (enabled={enabled})")

    def _cleanup_timestamps(self, now: float) -> None:
        """Removes timestamps that have left the trailing window."""
        while self.timestamps and self.timestamps[0] <= now - self.time_window:
            self.timestamps.popleft()

    async def try_admit(self) -> bool:
        """Admits the call and records it, or rejects it without waiting.

        Returns:
            True if the call may proceed, False if the window is full.
        """
        if not self.enabled:
            return True
        async with self._lock:
            now = self._clock()
            self._cleanup_timestamps(now)
            if len(self.timestamps) >= self.max_requests:
                logger.debug(f"Rate limit reached: {len(self.timestamps)}/{self.max_requests} in {self.time_window}s window.")
                return False
            self.timestamps.append(now)
            logger.debug("Rate limit permission granted.")
            return True

    async def get_wait_time(self) -> float:
        """Estimates the time needed before the next request can be made."""
        if not self.enabled:
            return 0.0
        async with self._lock:
            now = self._clock()
            self._cleanup_timestamps(now)
            if len(self.timestamps) < self.max_requests:
                return 0.0
            oldest_timestamp = self.timestamps[0]
            return max(0.0, oldest_timestamp + self.time_window - now)

    async def remaining(self) -> int:
        """Number of calls that would still be admitted right now."""
        if not self.enabled:
            return self.max_requests
        async with self._lock:
            self._cleanup_timestamps(self._clock())
            return self.max_requests - len(self.timestamps)

    def reset(self) -> None:
        self.timestamps.clear()
