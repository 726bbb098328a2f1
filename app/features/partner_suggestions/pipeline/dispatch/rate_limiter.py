"""
Token bucket rate limiter for calls to the suggestion generation service.

One bucket is shared by every relationship worker in a run, so the total
request rate toward the downstream service stays bounded no matter how many
relationships are dispatched in parallel.
"""

import asyncio
import time
from collections.abc import Awaitable, Callable

from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class TokenBucketRateLimiter:
    def __init__(
        self,
        rate_per_second: float,
        burst: int = 1,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """
        Args:
            rate_per_second: Sustained request rate; 0 or less disables limiting
            burst: Bucket capacity (requests allowed back to back)
        """
        self.rate_per_second = rate_per_second
        self.burst = max(1, burst)
        self._clock = clock
        self._sleep = sleep
        self._tokens = float(self.burst)
        self._last_update = clock()
        self._lock = asyncio.Lock()
        self.total_acquired = 0
        self.total_wait_seconds = 0.0

    @property
    def enabled(self) -> bool:
        return self.rate_per_second > 0

    def _refill(self) -> None:
        now = self._clock()
        elapsed = max(0.0, now - self._last_update)
        self._tokens = min(self.burst, self._tokens + elapsed * self.rate_per_second)
        self._last_update = now

    async def acquire(self) -> float:
        """Wait for a token. Returns the seconds spent waiting."""
        if not self.enabled:
            self.total_acquired += 1
            return 0.0

        waited = 0.0
        # Holding the lock while sleeping keeps waiters in FIFO order
        async with self._lock:
            while True:
                self._refill()
                if self._tokens >= 1.0:
                    self._tokens -= 1.0
                    break
                wait_time = (1.0 - self._tokens) / self.rate_per_second
                await self._sleep(wait_time)
                waited += wait_time

        self.total_acquired += 1
        self.total_wait_seconds += waited
        if waited:
            logger.debug("Downstream rate limit wait", wait_seconds=round(waited, 3))
        return waited

    def stats(self) -> dict:
        return {
            "rate_per_second": self.rate_per_second,
            "burst": self.burst,
            "acquired": self.total_acquired,
            "wait_seconds": round(self.total_wait_seconds, 3),
        }
