"""Optional Redis pool for rate limiting and notification pub/sub.

Redis is not required: with no ``CCL_REDIS_URL`` the pool stays unset, rate
limiting passes requests through and notifications are only persisted.
"""

import redis.asyncio as redis
import structlog

logger = structlog.get_logger()

_pool: redis.Redis | None = None


async def init_redis(url: str, *, max_connections: int = 20, socket_timeout: float = 2.0) -> None:
    global _pool  # noqa: PLW0603
    _pool = redis.from_url(  # type: ignore[no-untyped-call]
        url,
        encoding="utf-8",
        decode_responses=True,
        max_connections=max_connections,
        socket_timeout=socket_timeout,
        socket_connect_timeout=socket_timeout,
        health_check_interval=30,
    )
    logger.info("redis_initialized", max_connections=max_connections)


async def close_redis() -> None:
    global _pool  # noqa: PLW0603
    if _pool is not None:
        await _pool.aclose()
        _pool = None


def get_redis_or_none() -> redis.Redis | None:
    """The shared client, or None when Redis is not configured."""
    return _pool
