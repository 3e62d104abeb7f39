"""
Rate limiter for RPC endpoints
"""
import asyncio
import time
from collections import deque
from typing import Awaitable, Callable

from evm_reader.config.settings import RATE_LIMIT_WINDOW_SECONDS
from evm_reader.utils.logger import get_logger

logger = get_logger(__name__)


class SlidingWindowRateLimiter:
    """
    Sliding window rate limiter: at most `limit` requests in any
    trailing `window` seconds.
    """

    def __init__(
        self,
        limit: int,
        window: float = RATE_LIMIT_WINDOW_SECONDS,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """
        Args:
            limit: Requests allowed per window
            window: Window length in seconds
            clock: Monotonic time source
            sleep: Coroutine used to wait for a free slot
        """
        if limit < 1:
            raise ValueError("limit must be at least 1")
        self.limit = limit
        self.window = window
        self._clock = clock
        self._sleep = sleep
        self._timestamps: deque[float] = deque()
        self._lock = asyncio.Lock()

    def _prune(self, now: float):
        cutoff = now - self.window
        while self._timestamps and self._timestamps[0] <= cutoff:
            self._timestamps.popleft()

    @property
    def in_window(self) -> int:
        """Requests counted in the current trailing window"""
        self._prune(self._clock())
        return len(self._timestamps)

    async def acquire(self) -> float:
        """Wait until a slot is free, claim it and return its timestamp"""
        # The lock is held while waiting so the slot computed here cannot be
        # claimed by a concurrent caller.
        async with self._lock:
            while True:
                now = self._clock()
                self._prune(now)
                if len(self._timestamps) < self.limit:
                    self._timestamps.append(now)
                    return now

                wait_time = self._timestamps[0] + self.window - now
                logger.debug(f"Rate limit reached ({self.limit}/s), waiting {wait_time:.3f}s")
                await self._sleep(max(wait_time, 0))


class MultiRateLimiter:
    """
    Manages rate limiters for multiple endpoints.
    The first registration for a key fixes its rate.
    """

    def __init__(
        self,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._limiters: dict[str, SlidingWindowRateLimiter] = {}
        self._clock = clock
        self._sleep = sleep

    def __contains__(self, key: str) -> bool:
        return key in self._limiters

    def get(self, key: str, rate: int) -> SlidingWindowRateLimiter:
        """Get the limiter for a key, creating it with `rate` if missing"""
        limiter = self._limiters.get(key)
        if limiter is None:
            # No await between lookup and insert, so this is atomic on the loop
            limiter = SlidingWindowRateLimiter(rate, clock=self._clock, sleep=self._sleep)
            self._limiters[key] = limiter
        elif limiter.limit != rate:
            logger.debug(
                f"Rate limiter for {key} already exists at {limiter.limit}/s, ignoring {rate}/s"
            )
        return limiter

    async def acquire(self, key: str, rate: int) -> float:
        """Acquire a slot for the given key"""
        return await self.get(key, rate).acquire()
