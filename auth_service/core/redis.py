import redis.asyncio as redis

from auth_service.config import settings


def create_redis_client() -> redis.Redis:  # type: ignore[type-arg]
    """
    Build the async Redis client backing the shared rate-limit counters.

    Connection and socket timeouts are bounded so an unreachable Redis fails
    fast and the rate limiter can fall back to in-process counting.
    """
    return redis.from_url(
        str(settings.REDIS_URL),
        encoding="utf-8",
        decode_responses=True,
        socket_timeout=settings.REDIS_TIMEOUT_SECONDS,
        socket_connect_timeout=settings.REDIS_TIMEOUT_SECONDS,
    )
