"""
Rate limiting for the Jupiter API.

The pricing and swap-build endpoints tolerate roughly one request per second
on the free tier, so every call that actually reaches the network is spaced by
at least ``min_interval`` seconds. Cache hits never touch the limiter.

One limiter is created per sweep session and passed explicitly to everything
that talks to Jupiter; its lifetime is the session's.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional

logger = logging.getLogger(__name__)

DEFAULT_MIN_INTERVAL = 1.1


@dataclass
class UsageStats:
    """Statistics for limiter usage."""
    total_waits: int = 0
    delayed_waits: int = 0
    total_delay: float = 0.0
    last_release_at: Optional[float] = None

    def record(self, delay: float, released_at: float) -> None:
        self.total_waits += 1
        if delay > 0:
            self.delayed_waits += 1
            self.total_delay += delay
        self.last_release_at = released_at

    def to_dict(self) -> Dict[str, Any]:
        return {
            'total_waits': self.total_waits,
            'delayed_waits': self.delayed_waits,
            'total_delay': self.total_delay,
            'last_release_at': self.last_release_at,
        }


class RateLimiter:
    """
    Minimum-interval limiter.

    ``wait()`` suspends the caller until ``min_interval`` has elapsed since the
    previous release, then records a new release. Callers are served in the
    order they arrive.
    """

    def __init__(
        self,
        min_interval: float = DEFAULT_MIN_INTERVAL,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        if min_interval < 0:
            raise ValueError("min_interval cannot be negative")
        self.min_interval = min_interval
        self._clock = clock
        self._sleep = sleep
        self._last_release: Optional[float] = None
        self._lock = asyncio.Lock()
        self._stats = UsageStats()

    async def wait(self) -> float:
        """Wait for the next permit. Returns the seconds spent waiting."""
        async with self._lock:
            delay = 0.0
            if self._last_release is not None:
                elapsed = self._clock() - self._last_release
                if elapsed < self.min_interval:
                    delay = self.min_interval - elapsed
                    logger.debug(f"Rate limit: waiting {delay:.3f}s")
                    await self._sleep(delay)

            self._last_release = self._clock()
            self._stats.record(delay, self._last_release)
            return delay

    def reset(self) -> None:
        """Forget the previous release so the next wait returns immediately."""
        self._last_release = None

    @property
    def stats(self) -> UsageStats:
        return self._stats
