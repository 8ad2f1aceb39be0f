import asyncio
import math
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from dmmcache.core.logger import logger

UNKNOWN_IDENTITY = "unknown"


@dataclass
class RateLimitWindow:
    count: int
    reset_at: float


@dataclass
class RateLimitDecision:
    allowed: bool
    remaining: int
    retry_after: int


class RateLimiter:
    """
    Fixed-window request counter keyed by client identity.

    ``check`` contains no await, so under the single event loop each call
    reads and updates its window atomically. State lives in memory only and
    is lost on restart.
    """

    def __init__(
        self,
        window_seconds: float = 60,
        max_requests: int = 30,
        cleanup_interval: float = 300,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.window_seconds = window_seconds
        self.max_requests = max_requests
        self.cleanup_interval = cleanup_interval
        self.clock = clock

        self._windows: Dict[str, RateLimitWindow] = {}
        self._cleanup_task: Optional[asyncio.Task] = None

    @property
    def retry_after(self) -> int:
        return math.ceil(self.window_seconds)

    def check(self, identity: Optional[str]) -> RateLimitDecision:
        key = identity or UNKNOWN_IDENTITY
        now = self.clock()

        window = self._windows.get(key)
        if window is None or now > window.reset_at:
            self._windows[key] = RateLimitWindow(
                count=1, reset_at=now + self.window_seconds
            )
            return RateLimitDecision(True, self.max_requests - 1, 0)

        if window.count >= self.max_requests:
            return RateLimitDecision(False, 0, self.retry_after)

        window.count += 1
        return RateLimitDecision(True, self.max_requests - window.count, 0)

    def purge_expired(self) -> int:
        now = self.clock()
        expired = [key for key, window in self._windows.items() if now > window.reset_at]
        for key in expired:
            del self._windows[key]
        return len(expired)

    def __len__(self):
        return len(self._windows)

    async def _cleanup_loop(self):
        while True:
            await asyncio.sleep(self.cleanup_interval)
            purged = self.purge_expired()
            if purged:
                logger.log("RATELIMIT", f"Purged {purged} expired rate limit windows")

    def start(self):
        if self._cleanup_task is None:
            self._cleanup_task = asyncio.create_task(self._cleanup_loop())

    async def stop(self):
        if self._cleanup_task is not None:
            self._cleanup_task.cancel()
            try:
                await self._cleanup_task
            except asyncio.CancelledError:
                pass
            self._cleanup_task = None
        self._windows.clear()
