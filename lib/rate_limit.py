# =============================================================================
# lib/rate_limit.py - Fixed-Window Rate Limiter
# =============================================================================
# Per-process request counters on top of the `limits` package (the engine
# behind slowapi). Keys are arbitrary strings, usually
# "<scope>:ip:<addr>" or "<scope>:user:<id>".
#
# Counters live in memory: they reset on restart and are not shared between
# workers.
#
# Usage:
#   result = rate_limiter.check("reviews:ip:1.2.3.4", window_ms=60_000, max_requests=60)
#   if not result.success:
#       raise RateLimitedError(result.retry_after)
# =============================================================================

import math
import time
from dataclasses import dataclass

from limits import RateLimitItemPerSecond
from limits.storage import MemoryStorage
from limits.strategies import FixedWindowRateLimiter


@dataclass(frozen=True)
class RateLimitResult:
    success: bool
    remaining: int
    retry_after: int = 0


class RateLimiter:
    """
    Fixed-window counters.

    A key's window opens on its first request and lasts `window_ms`
    (rounded up to whole seconds). Once `max_requests` have been counted,
    further requests fail until the window expires.
    """

    def __init__(self) -> None:
        self._storage = MemoryStorage()
        self._strategy = FixedWindowRateLimiter(self._storage)

    def check(self, key: str, window_ms: int, max_requests: int) -> RateLimitResult:
        """
        Count a request against `key`.

        Returns:
            RateLimitResult; retry_after is in whole seconds when blocked
        """
        item = RateLimitItemPerSecond(max_requests, max(1, math.ceil(window_ms / 1000)))
        allowed = self._strategy.hit(item, key)
        reset_time, remaining = self._strategy.get_window_stats(item, key)
        if allowed:
            return RateLimitResult(success=True, remaining=remaining)
        retry_after = max(1, math.ceil(reset_time - time.time()))
        return RateLimitResult(success=False, remaining=0, retry_after=retry_after)

    def reset(self) -> None:
        self._storage.reset()


rate_limiter = RateLimiter()
