"""Shared Redis connection.

Redis is optional: only the distributed lock backend and the event stream
use it. With POKERCLUB_REDIS_URL unset the service runs on local locks and
local event fan-out.
"""

from redis.asyncio import ConnectionPool, Redis

from pokerclub.config import Settings, get_settings

_pool: ConnectionPool | None = None
_client: Redis | None = None


async def init_redis(settings: Settings | None = None) -> Redis:
    """Build the pool from settings and ping once so a bad URL fails at startup."""
    global _pool, _client

    settings = settings or get_settings()
    if not settings.redis_url:
        raise RuntimeError("POKERCLUB_REDIS_URL is not configured")

    _pool = ConnectionPool.from_url(
        settings.redis_url,
        max_connections=settings.redis_max_connections,
        socket_timeout=settings.redis_socket_timeout,
        retry_on_timeout=True,
        decode_responses=True,
    )
    client = Redis(connection_pool=_pool)
    await client.ping()
    _client = client
    return client


async def close_redis() -> None:
    global _pool, _client
    client, pool = _client, _pool
    _client = _pool = None
    if client is not None:
        await client.aclose()
    if pool is not None:
        await pool.disconnect()


def get_redis_client() -> Redis | None:
    """Client set up by init_redis, or None while Redis is not in use."""
    return _client
