"""Per-principal fixed-window rate limiting dependency.

Two interchangeable backends implement ``hit(key)``:

* ``InMemoryRateLimiter`` keeps windows in a process-local map. It is only
  correct for a single API process.
* ``RedisRateLimiter`` counts in Redis so that every instance shares one
  window, falling back to a local limiter if Redis is unreachable.
"""

from __future__ import annotations

import asyncio
import logging
import math
import time
from dataclasses import dataclass
from typing import Callable, Dict, NamedTuple, Optional

from fastapi import Depends, Request
import redis.asyncio as redis

from config import settings
from routers.auth_scope import AuthContext, get_auth_context
from services.errors import RateLimitedError

logger = logging.getLogger(__name__)


class RateDecision(NamedTuple):
    allowed: bool
    retry_after: int = 0


@dataclass
class RateWindow:
    count: int
    reset_at: float


class InMemoryRateLimiter:
    def __init__(self, limit: int, window_seconds: int, clock: Callable[[], float] = time.monotonic):
        self.limit = int(limit)
        self.window_seconds = int(window_seconds)
        self._clock = clock
        self._windows: Dict[str, RateWindow] = {}
        self._next_sweep = 0.0
        self._lock = asyncio.Lock()

    async def hit(self, key: str) -> RateDecision:
        async with self._lock:
            now = self._clock()
            if now >= self._next_sweep:
                self._sweep(now)
            window = self._windows.get(key)
            if window is None:
                window = RateWindow(count=0, reset_at=now + self.window_seconds)
                self._windows[key] = window
            if now > window.reset_at:
                window.count = 0
                window.reset_at = now + self.window_seconds
            if window.count >= self.limit:
                return RateDecision(False, self._retry_after(window.reset_at - now))
            window.count += 1
            return RateDecision(True)

    def _sweep(self, now: float) -> None:
        self._windows = {key: window for key, window in self._windows.items() if window.reset_at >= now}
        self._next_sweep = now + self.window_seconds

    def _retry_after(self, remaining: float) -> int:
        return min(max(int(math.ceil(remaining)), 1), self.window_seconds)

    def reset(self) -> None:
        self._windows.clear()
        self._next_sweep = 0.0


class RedisRateLimiter:
    def __init__(self, redis_url: str, limit: int, window_seconds: int, fallback: Optional[InMemoryRateLimiter] = None):
        self.redis_url = redis_url
        self.limit = int(limit)
        self.window_seconds = int(window_seconds)
        self.fallback = fallback or InMemoryRateLimiter(limit, window_seconds)

    async def hit(self, key: str) -> RateDecision:
        try:
            redis_client = redis.from_url(self.redis_url, decode_responses=True)
            try:
                current = await redis_client.incr(key)
                ttl = await redis_client.ttl(key)
                if ttl < 0:
                    # -1 means no expiry, e.g. after an earlier EXPIRE failed.
                    await redis_client.expire(key, self.window_seconds)
                    ttl = self.window_seconds
            finally:
                await redis_client.aclose()
        except Exception as exc:
            logger.warning("Redis rate limiter unavailable, using local window: %s", exc)
            return await self.fallback.hit(key)

        if current <= self.limit:
            return RateDecision(True)
        remaining = ttl if ttl and ttl > 0 else self.window_seconds
        return RateDecision(False, min(max(int(remaining), 1), self.window_seconds))

    def reset(self) -> None:
        self.fallback.reset()


_limiter = None


def build_rate_limiter():
    limit = settings.MESSAGE_RATE_LIMIT_MAX_REQUESTS
    window = settings.MESSAGE_RATE_LIMIT_WINDOW_SECONDS
    if (settings.RATE_LIMIT_BACKEND or "").strip().lower() == "redis":
        return RedisRateLimiter(settings.REDIS_URL, limit, window)
    return InMemoryRateLimiter(limit, window)


def get_rate_limiter():
    global _limiter
    if _limiter is None:
        _limiter = build_rate_limiter()
    return _limiter


def reset_rate_limiter() -> None:
    if _limiter is not None:
        _limiter.reset()


def rate_limit(prefix: str) -> Callable[..., None]:
    """Return a FastAPI dependency that enforces per-principal request quotas."""

    async def _dependency(
        request: Request,
        auth: AuthContext = Depends(get_auth_context),
        limiter=Depends(get_rate_limiter),
    ):
        if getattr(request.app.state, "disable_rate_limits", False):
            return

        decision = await limiter.hit(f"chat:rate:{prefix}:{auth.user_id}")
        if not decision.allowed:
            logger.info("Rate limit hit user=%s prefix=%s retry_after=%s", auth.user_id, prefix, decision.retry_after)
            raise RateLimitedError(retry_after=decision.retry_after)

    return _dependency
