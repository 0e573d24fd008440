from __future__ import annotations

import time
from dataclasses import dataclass

import redis.asyncio as redis
from fastapi import HTTPException


@dataclass(frozen=True)
class WindowCount:
    allowed: bool
    attempts: int
    retry_after_seconds: int


class FixedWindowLimiter:
    """Counts attempts per key in fixed windows kept in the realtime store."""

    def __init__(self, client: redis.Redis, *, namespace: str = "rl"):
        self.r = client
        self.namespace = namespace

    async def hit(self, key: str, *, limit: int, window_seconds: int) -> WindowCount:
        now = int(time.time())
        bucket = f"{self.namespace}:{key}:{now // window_seconds}"

        attempts = await self.r.incr(bucket)
        if attempts == 1:
            # first hit of the window owns the expiry
            await self.r.expire(bucket, window_seconds)

        return WindowCount(
            allowed=attempts <= limit,
            attempts=attempts,
            retry_after_seconds=window_seconds - (now % window_seconds),
        )


async def enforce_signin_limit(limiter: FixedWindowLimiter, *, email: str, limit: int, window_seconds: int) -> None:
    """Raise 429 once an email exceeds its sign-in attempts for the current window."""
    res = await limiter.hit(f"signin:{email.lower()}", limit=limit, window_seconds=window_seconds)
    if not res.allowed:
        raise HTTPException(
            status_code=429,
            detail="Too many sign-in attempts. Please try again later.",
            headers={"Retry-After": str(res.retry_after_seconds)},
        )
