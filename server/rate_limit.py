"""In-memory sliding-window rate limiter for the sync endpoints."""

from __future__ import annotations

import math
import threading
import time
from collections import deque
from dataclasses import dataclass
from typing import Callable, Deque, Dict, Optional


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    limit: int
    remaining: int
    reset_at: float
    retry_after: float = 0.0

    def headers(self) -> Dict[str, str]:
        headers = {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(math.ceil(self.reset_at)),
        }
        if not self.allowed:
            headers["Retry-After"] = str(max(1, math.ceil(self.retry_after)))
        return headers


class SlidingWindowRateLimiter:
    """Allows ``limit`` hits per key within any ``window_sec`` span."""

    def __init__(self, limit: int, window_sec: float, clock: Callable[[], float] = time.time) -> None:
        if limit < 1 or window_sec <= 0:
            raise ValueError("limit and window_sec must be positive")
        self.limit = limit
        self.window_sec = window_sec
        self._clock = clock
        self._hits: Dict[str, Deque[float]] = {}
        self._lock = threading.Lock()
        self._last_cleanup = clock()

    def hit(self, key: str) -> RateLimitResult:
        with self._lock:
            now = self._clock()
            self._cleanup(now)
            hits = self._hits.setdefault(key, deque())
            self._expire(hits, now)
            if len(hits) >= self.limit:
                reset_at = hits[0] + self.window_sec
                return RateLimitResult(
                    allowed=False,
                    limit=self.limit,
                    remaining=0,
                    reset_at=reset_at,
                    retry_after=reset_at - now,
                )
            hits.append(now)
            return RateLimitResult(
                allowed=True,
                limit=self.limit,
                remaining=self.limit - len(hits),
                reset_at=hits[0] + self.window_sec,
            )

    def reset(self, key: Optional[str] = None) -> None:
        with self._lock:
            if key is None:
                self._hits.clear()
            else:
                self._hits.pop(key, None)

    def _expire(self, hits: Deque[float], now: float) -> None:
        cutoff = now - self.window_sec
        while hits and hits[0] <= cutoff:
            hits.popleft()

    def _cleanup(self, now: float) -> None:
        if now - self._last_cleanup < self.window_sec:
            return
        self._last_cleanup = now
        for key in list(self._hits):
            self._expire(self._hits[key], now)
            if not self._hits[key]:
                del self._hits[key]


__all__ = ["RateLimitResult", "SlidingWindowRateLimiter"]
