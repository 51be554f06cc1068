# Copyright (c) 2025 Parth Sinha and Shine Gupta. All rights reserved.
# ResurrectCI - Autonomous AI agent that detects, analyzes, and resolves deployment failures in real-time.

"""
Async rate limiter combining a sliding window with a minimum spacing between calls.
"""

import asyncio
import time
from collections import deque
from typing import Awaitable, Callable, Optional

from resurrectci.utils.logging import get_logger

logger = get_logger(__name__)


class SlidingWindowRateLimiter:
    """
    Limit calls to at most `max_calls` per `window_seconds`, each at least
    `min_spacing_seconds` after the previous one.

    `acquire()` waits until a slot is free and then records the call.
    Callers are served in arrival order.

    Example:
        ```python
        limiter = SlidingWindowRateLimiter(max_calls=15, window_seconds=60, min_spacing_seconds=2)

        await limiter.acquire()
        response = await client.generate(prompt)
        ```
    """

    def __init__(
        self,
        max_calls: int,
        window_seconds: float,
        min_spacing_seconds: float = 0.0,
        name: str = "rate_limiter",
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if max_calls < 1:
            raise ValueError("max_calls must be at least 1")

        self.max_calls = max_calls
        self.window_seconds = window_seconds
        self.min_spacing_seconds = min_spacing_seconds
        self.name = name
        self._clock = clock
        self._sleep = sleep
        self._calls: deque[float] = deque()
        self._lock = asyncio.Lock()

    def _prune(self, now: float) -> None:
        while self._calls and now - self._calls[0] >= self.window_seconds:
            self._calls.popleft()

    def time_until_available(self, now: Optional[float] = None) -> float:
        """Seconds until the next call would be admitted (0 when a call may go now)."""
        now = self._clock() if now is None else now
        self._prune(now)

        wait = 0.0
        if len(self._calls) >= self.max_calls:
            wait = self._calls[0] + self.window_seconds - now
        if self._calls and self.min_spacing_seconds > 0:
            wait = max(wait, self._calls[-1] + self.min_spacing_seconds - now)
        return max(wait, 0.0)

    async def acquire(self) -> None:
        """Wait for a free slot and record the call."""
        async with self._lock:
            while True:
                wait = self.time_until_available()
                if wait <= 0:
                    break
                logger.debug("rate_limit_wait", name=self.name, wait_seconds=round(wait, 3))
                await self._sleep(wait)

            self._calls.append(self._clock())

    @property
    def calls_in_window(self) -> int:
        self._prune(self._clock())
        return len(self._calls)
