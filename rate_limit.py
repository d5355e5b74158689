import logging
import math
import time
from dataclasses import dataclass
from typing import Callable, Dict, Mapping, Optional

import config

logger = logging.getLogger(__name__)


@dataclass
class RateLimitEntry:
    count: int
    reset_at: float


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    remaining: int
    reset_at: float
    retry_after_seconds: int


class FixedWindowRateLimiter:
    """Counts hits per key and rejects once `limit` is reached inside a window."""

    def __init__(self, limit: int, window_seconds: float, clock: Callable[[], float] = time.time):
        self.limit = limit
        self.window_seconds = window_seconds
        self._clock = clock
        self._store: Dict[str, RateLimitEntry] = {}

    def check(self, key: str) -> RateLimitResult:
        now = self._clock()
        entry = self._store.get(key)

        if entry is None or entry.reset_at <= now:
            reset_at = now + self.window_seconds
            self._store[key] = RateLimitEntry(count=1, reset_at=reset_at)
            return RateLimitResult(
                allowed=True,
                remaining=max(self.limit - 1, 0),
                reset_at=reset_at,
                retry_after_seconds=math.ceil(self.window_seconds),
            )

        retry_after = max(math.ceil(entry.reset_at - now), 1)

        if entry.count >= self.limit:
            logger.warning(f"Rate limit exceeded for {key}: {entry.count}/{self.limit}")
            return RateLimitResult(
                allowed=False,
                remaining=0,
                reset_at=entry.reset_at,
                retry_after_seconds=retry_after,
            )

        entry.count += 1
        return RateLimitResult(
            allowed=True,
            remaining=max(self.limit - entry.count, 0),
            reset_at=entry.reset_at,
            retry_after_seconds=retry_after,
        )

    def reset(self) -> None:
        self._store.clear()

    def __len__(self) -> int:
        return len(self._store)


def get_request_ip(headers: Mapping[str, str], peer: Optional[str] = None) -> str:
    forwarded = headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip() or "unknown"
    real_ip = headers.get("x-real-ip")
    if real_ip:
        return real_ip
    return peer or "unknown"


# Process-wide limiters shared by all requests
proxy_limiter = FixedWindowRateLimiter(config.PROXY_RATE_LIMIT, config.RATE_LIMIT_WINDOW_SECONDS)
analyze_limiter = FixedWindowRateLimiter(config.ANALYZE_RATE_LIMIT, config.RATE_LIMIT_WINDOW_SECONDS)
