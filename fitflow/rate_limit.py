"""Fixed-window rate limiting backed by Redis."""

import logging

from fastapi import Request
from redis.asyncio import Redis
from redis.exceptions import RedisError

from fitflow.constants import RATE_LIMIT_WINDOW
from fitflow.exceptions import RateLimitedError
from fitflow.utils import now_utc

logger = logging.getLogger(__name__)


class RateLimiter:
    """Counts hits per (scope, identity) in fixed windows.

    Fails open: if Redis is unreachable the request is allowed and a warning
    is logged. A limiter built without a client allows everything.
    """

    def __init__(self, redis: Redis | None, window_seconds: int = RATE_LIMIT_WINDOW):
        self.redis = redis
        self.window_seconds = window_seconds

    def _key(self, scope: str, identity: str) -> str:
        window = int(now_utc().timestamp()) // self.window_seconds
        return f"ratelimit:{scope}:{identity}:{window}"

    async def hit(self, scope: str, identity: str, limit: int) -> bool:
        """Record one hit and return True while the caller is within limit."""
        if self.redis is None:
            return True

        key = self._key(scope, identity)
        try:
            async with self.redis.pipeline(transaction=True) as pipe:
                pipe.incr(key)
                pipe.expire(key, self.window_seconds)
                count, _ = await pipe.execute()
        except (RedisError, OSError) as e:
            logger.warning(f"Rate limiter unavailable, allowing request ({scope}): {e}")
            return True

        return int(count) <= limit

    async def check(self, scope: str, identity: str, limit: int) -> None:
        """Raise RateLimitedError once identity exceeds limit in the current window."""
        if not await self.hit(scope, identity, limit):
            logger.info(f"Rate limit exceeded for {scope}:{identity}")
            raise RateLimitedError("Too many requests. Please try again in a minute.")

    async def close(self) -> None:
        if self.redis is not None:
            await self.redis.aclose()


def get_rate_limiter(request: Request) -> RateLimiter:
    """FastAPI dependency: the app-wide rate limiter."""
    return request.app.state.rate_limiter
