"""Client-side request throttling for Azure DevOps and GitHub calls."""

import asyncio
import time


class RateLimiter:
    """Token bucket rate limiter shared by all requests of one client."""

    def __init__(self, requests_per_second: float = 10.0):
        """Initialize rate limiter.

        Args:
            requests_per_second: Bucket refill rate and capacity
        """
        if requests_per_second <= 0:
            raise ValueError('requests_per_second must be positive')

        self.requests_per_second = requests_per_second
        self.tokens = requests_per_second
        self.last_update = time.monotonic()
        self._lock = asyncio.Lock()

    def _refill(self) -> None:
        now = time.monotonic()
        elapsed = now - self.last_update
        self.tokens = min(
            self.requests_per_second,
            self.tokens + elapsed * self.requests_per_second,
        )
        self.last_update = now

    async def acquire(self) -> None:
        """Wait until a request may be sent.

        Concurrent callers queue on the lock, so pipeline test runs sharing
        a client are throttled together.
        """
        async with self._lock:
            self._refill()
            if self.tokens < 1:
                await asyncio.sleep((1 - self.tokens) / self.requests_per_second)
                self._refill()
            self.tokens = max(self.tokens - 1, 0.0)

    def time_until_next_request(self) -> float:
        """Seconds until a token becomes available (0 if one is ready)."""
        self._refill()
        if self.tokens >= 1:
            return 0.0
        return (1 - self.tokens) / self.requests_per_second
