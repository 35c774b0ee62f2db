"""Implementation of a rate limiter.

Controls how many outgoing calls may start within a trailing time window,
using a sliding window of admission timestamps. The limiter never rejects;
it only delays.
"""

import time
import asyncio
import logging
from collections import deque
from typing import Awaitable, Callable, Deque

logger = logging.getLogger(__name__)

DEFAULT_MAX_REQUESTS = 10 # Max 10 call starts...
DEFAULT_TIME_WINDOW_SECONDS = 60 # ...per 60 seconds


class RateLimiter:
    """Sliding window rate limiter, one instance per upstream."""

    def __init__(
        self,
        max_requests: int = DEFAULT_MAX_REQUESTS,
        time_window: float = DEFAULT_TIME_WINDOW_SECONDS,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """Initializes the rate limiter.

        Args:
            max_requests: Maximum number of call starts allowed in the time window.
            time_window: The time window in seconds.
            clock: Monotonic time source.
            sleep: Coroutine used to suspend while the window is full.
        """
        if max_requests <= 0 or time_window <= 0:
            raise ValueError("Max requests and time window must be positive.")

        self.max_requests = max_requests
        self.time_window = time_window
        self.timestamps: Deque[float] = deque()
        self._clock = clock
        self._sleep = sleep
        self._lock = asyncio.Lock()
        logger.info(f"RateLimiter initialized: {max_requests} requests / {time_window} seconds")

    def _cleanup_timestamps(self, now: float) -> None:
        """Removes timestamps that have aged out of the window."""
        while self.timestamps and now - self.timestamps[0] >= self.time_window:
            self.timestamps.popleft()

    def _wait_needed(self, now: float) -> float:
        oldest_timestamp = self.timestamps[0]
        return max(0.0, self.time_window - (now - oldest_timestamp))

    async def admit(self) -> None:
        """Waits until a call may start, then records its start."""
        while True:
            async with self._lock:
                now = self._clock()
                self._cleanup_timestamps(now)
                if len(self.timestamps) < self.max_requests:
                    self.timestamps.append(now)
                    logger.debug(f"Rate limit admission granted ({len(self.timestamps)}/{self.max_requests}).")
                    return
                wait_time = self._wait_needed(now)

            logger.warning(f"Rate limit reached, waiting {wait_time:.2f}s before next request")
            await self._sleep(wait_time)
            # Loop again to re-check the window after waiting

    async def get_wait_time(self) -> float:
        """Estimates the time needed before the next call can start."""
        async with self._lock:
            now = self._clock()
            self._cleanup_timestamps(now)
            if len(self.timestamps) < self.max_requests:
                return 0.0
            return self._wait_needed(now)

    def current_usage(self) -> int:
        """Number of admissions still inside the window (snapshot, no lock)."""
        now = self._clock()
        return sum(1 for ts in list(self.timestamps) if now - ts < self.time_window)
