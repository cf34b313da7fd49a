"""Per-IP request limits for the auth endpoints.

Fixed windows counted by the ``limits`` library on Redis. Without Redis the
limiter is a no-op; when the storage errors, requests are let through and a
warning logged.
"""

import math
import time
from typing import Mapping, Optional

import redis.asyncio as aioredis
from limits import RateLimitItem, parse
from limits.aio.storage import Storage
from limits.storage import storage_from_string
from limits.aio.strategies import FixedWindowRateLimiter
from limits.errors import StorageError
from redis.exceptions import RedisError

from errors import RateLimitError
from shared.logging import get_logger

log = get_logger(__name__)


class Limits:
    """Limit strings in the ``"N per period"`` format, one per route scope."""

    SIGNUP = "10 per 15 minutes"
    SIGNIN = "5 per 15 minutes"
    FORGOT = "10 per 15 minutes"
    RESEND = "5 per 15 minutes"


ROUTE_LIMITS: dict[str, str] = {
    "signup": Limits.SIGNUP,
    "signin": Limits.SIGNIN,
    "forgot": Limits.FORGOT,
    "resend": Limits.RESEND,
}


async def create_redis_client(redis_uri: str) -> Optional[aioredis.Redis]:
    """Connect to Redis and return a client, or None on failure."""
    try:
        client: aioredis.Redis = aioredis.from_url(
            redis_uri, encoding="utf-8", decode_responses=True
        )
        await client.ping()
        log.info("redis_connected", uri=redis_uri.split("@")[-1])  # mask credentials
        return client
    except (RedisError, OSError) as e:
        log.warning(
            "redis_connection_failed", error=str(e), error_type=type(e).__name__
        )
        return None


def create_rate_limit_storage(redis_uri: str) -> Storage:
    """Async ``limits`` storage on the same Redis as the app."""
    return storage_from_string(f"async+{redis_uri}", wrap_exceptions=True)


class RateLimiter:
    def __init__(
        self,
        storage: Optional[Storage],
        limits: Mapping[str, str] = ROUTE_LIMITS,
    ) -> None:
        self._strategy = FixedWindowRateLimiter(storage) if storage is not None else None
        self._limits: dict[str, RateLimitItem] = {
            scope: parse(value) for scope, value in limits.items()
        }

    @property
    def enabled(self) -> bool:
        return self._strategy is not None

    async def hit(self, scope: str, identity: str) -> None:
        """Count one request for *identity*; raise RateLimitError once over the limit."""
        if self._strategy is None:
            return

        item = self._limits[scope]
        try:
            if await self._strategy.hit(item, scope, identity):
                return
            stats = await self._strategy.get_window_stats(item, scope, identity)
        except StorageError as e:
            log.warning(
                "rate_limit_check_failed",
                scope=scope,
                error=str(e),
                error_type=type(e).__name__,
            )
            return

        retry_after = max(1, math.ceil(stats.reset_time - time.time()))
        log.info("rate_limit_exceeded", scope=scope, client_ip=identity, limit=str(item))
        raise RateLimitError(
            "Too many requests, please try again later.",
            details={"retryAfter": retry_after},
        )
