"""Redis client shared by the stats cache and the rate limiter.

Only created when one of those backends is configured as ``redis``.
"""

import logging

import redis.asyncio as redis
from redis.exceptions import RedisError

from questproof.config import Settings

logger = logging.getLogger(__name__)

_client: redis.Redis | None = None


def redis_in_use(settings: Settings) -> bool:
    return "redis" in (settings.cache_backend, settings.rate_limit_backend)


async def init_redis(settings: Settings) -> redis.Redis:
    """Create the shared client. Connections are opened lazily by the pool."""
    global _client  # noqa: PLW0603
    _client = redis.from_url(  # type: ignore[no-untyped-call]
        settings.redis_url,
        decode_responses=True,
        max_connections=settings.redis_max_connections,
        socket_timeout=settings.redis_socket_timeout_seconds,
        socket_connect_timeout=settings.redis_socket_timeout_seconds,
        health_check_interval=30,
    )
    kwargs = _client.connection_pool.connection_kwargs
    logger.info("Redis client for %s:%s db=%s", kwargs.get("host"), kwargs.get("port"), kwargs.get("db"))
    return _client


async def close_redis() -> None:
    global _client  # noqa: PLW0603
    if _client is not None:
        await _client.aclose()
        _client = None


def get_redis() -> redis.Redis:
    if _client is None:
        msg = "Redis not initialized. Call init_redis() first."
        raise RuntimeError(msg)
    return _client


async def redis_status() -> str:
    """``ok`` when the server answers PING, otherwise the failure text."""
    try:
        await get_redis().ping()
    except (RedisError, OSError, RuntimeError) as exc:
        logger.warning("Redis readiness check failed: %s", exc)
        return f"error: {exc}"
    return "ok"
