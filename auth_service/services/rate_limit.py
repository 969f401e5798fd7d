"""
Rate limiting for credential and refresh-token guessing.

Counters live behind the RateLimitStore interface:
- RedisRateLimitStore: shared across instances, expiring keys
- InMemoryRateLimitStore: process-local counters
- FallbackRateLimitStore: Redis first, in-process counting while Redis is
  unreachable (limits stay enforced per instance, never dropped entirely)

The store is chosen once at startup (build_rate_limit_store) and injected
into a RateLimiter held on the application state.
"""

import asyncio
import time
from collections.abc import Callable
from typing import Protocol

import redis.asyncio as redis
from redis.exceptions import RedisError

from auth_service.config import settings
from auth_service.core.errors import AuthError, AuthErrorKind
from auth_service.core.logging import get_logger
from auth_service.core.redis import create_redis_client

logger = get_logger(__name__)


class RateLimitStoreError(Exception):
    """The backing counter store could not be reached in time."""


class RateLimitStore(Protocol):
    """Fixed-window attempt counters."""

    async def hit(self, key: str, window_seconds: int) -> int:
        """Count one attempt under ``key`` and return the count in the current window."""
        ...

    async def reset(self, key: str) -> None:
        """Forget all attempts under ``key``."""
        ...

    async def close(self) -> None:
        """Release connections."""
        ...


class RedisRateLimitStore:
    """
    Counters in Redis.

    The window starts at the first attempt: ``SET key 0 EX window NX``
    followed by ``INCR`` in one MULTI/EXEC, so the expiry is set exactly once
    and concurrent instances share the count.
    """

    def __init__(self, client: redis.Redis, timeout: float) -> None:  # type: ignore[type-arg]
        self.client = client
        self.timeout = timeout

    async def hit(self, key: str, window_seconds: int) -> int:
        try:
            async with asyncio.timeout(self.timeout):
                pipe = self.client.pipeline(transaction=True)
                pipe.set(key, 0, ex=window_seconds, nx=True)
                pipe.incr(key)
                results = await pipe.execute()
        except (RedisError, OSError) as exc:
            raise RateLimitStoreError(f"{type(exc).__name__}: {exc}") from exc
        return int(results[-1])

    async def reset(self, key: str) -> None:
        try:
            async with asyncio.timeout(self.timeout):
                await self.client.delete(key)
        except (RedisError, OSError) as exc:
            raise RateLimitStoreError(f"{type(exc).__name__}: {exc}") from exc

    async def close(self) -> None:
        await self.client.aclose()


class InMemoryRateLimitStore:
    """
    Process-local counters.

    Used on its own for single-instance deployments and tests, and as the
    fallback behind Redis. Each read-modify-write runs without awaiting, so
    it is atomic on the event loop.
    """

    # Expired keys are swept once the table grows past this size; if that is
    # not enough, the oldest keys are dropped
    MAX_KEYS = 10_000

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._counters: dict[str, tuple[int, float]] = {}

    async def hit(self, key: str, window_seconds: int) -> int:
        now = self._clock()
        count, reset_at = self._counters.get(key, (0, 0.0))
        if reset_at <= now:
            count, reset_at = 0, now + window_seconds
        count += 1
        self._counters[key] = (count, reset_at)
        if len(self._counters) > self.MAX_KEYS:
            self._sweep(now)
        return count

    async def reset(self, key: str) -> None:
        self._counters.pop(key, None)

    async def close(self) -> None:
        self._counters.clear()

    def _sweep(self, now: float) -> None:
        expired = [k for k, (_, reset_at) in self._counters.items() if reset_at <= now]
        for k in expired:
            del self._counters[k]

        # Dicts keep insertion order, so the first keys are the oldest windows
        overflow = len(self._counters) - self.MAX_KEYS
        if overflow > 0:
            for k in list(self._counters)[:overflow]:
                del self._counters[k]
            logger.warning("rate_limit_keys_evicted", evicted=overflow)


class FallbackRateLimitStore:
    """Use ``primary`` while it answers; count in ``fallback`` when it does not."""

    def __init__(self, primary: RateLimitStore, fallback: RateLimitStore) -> None:
        self.primary = primary
        self.fallback = fallback

    async def hit(self, key: str, window_seconds: int) -> int:
        try:
            return await self.primary.hit(key, window_seconds)
        except RateLimitStoreError as exc:
            logger.warning("rate_limit_store_unavailable", operation="hit", error=str(exc))
            return await self.fallback.hit(key, window_seconds)

    async def reset(self, key: str) -> None:
        await self.fallback.reset(key)
        try:
            await self.primary.reset(key)
        except RateLimitStoreError as exc:
            logger.warning("rate_limit_store_unavailable", operation="reset", error=str(exc))

    async def close(self) -> None:
        await self.primary.close()
        await self.fallback.close()


def build_rate_limit_store() -> RateLimitStore:
    """Select the counter store from settings.RATE_LIMIT_BACKEND."""
    if settings.RATE_LIMIT_BACKEND == "memory":
        return InMemoryRateLimitStore()
    return FallbackRateLimitStore(
        RedisRateLimitStore(create_redis_client(), settings.REDIS_TIMEOUT_SECONDS),
        InMemoryRateLimitStore(),
    )


class RateLimiter:
    """
    Attempt throttling for the auth endpoints.

    - Login: per normalized email, LOGIN_RATE_LIMIT attempts per window
    - Refresh: per client IP, REFRESH_RATE_LIMIT attempts per window

    Checks run before any credential or token work, so the cost of password
    hashing is never paid once a key is over its limit.
    """

    def __init__(self, store: RateLimitStore) -> None:
        self.store = store

    async def check_login(self, email: str) -> None:
        """
        Count a login attempt for ``email``.

        Raises:
            AuthError: RATE_LIMIT_EXCEEDED once the limit is passed
        """
        await self._check(
            "login",
            f"login_rate:{email}",
            settings.LOGIN_RATE_LIMIT,
            settings.LOGIN_RATE_WINDOW_SECONDS,
        )

    async def reset_login(self, email: str) -> None:
        """Clear failed attempts after a successful login."""
        await self.store.reset(f"login_rate:{email}")

    async def check_refresh(self, ip_address: str) -> None:
        """
        Count a refresh attempt from ``ip_address``.

        Raises:
            AuthError: RATE_LIMIT_EXCEEDED once the limit is passed
        """
        await self._check(
            "refresh",
            f"refresh_rate:{ip_address}",
            settings.REFRESH_RATE_LIMIT,
            settings.REFRESH_RATE_WINDOW_SECONDS,
        )

    async def close(self) -> None:
        await self.store.close()

    async def _check(self, scope: str, key: str, limit: int, window_seconds: int) -> None:
        count = await self.store.hit(key, window_seconds)
        if count > limit:
            logger.warning("rate_limit_exceeded", scope=scope, count=count, limit=limit)
            raise AuthError(
                AuthErrorKind.RATE_LIMIT_EXCEEDED,
                headers={"Retry-After": str(window_seconds)},
            )
        logger.debug("rate_limit_check", scope=scope, count=count, limit=limit)
