import asyncio
import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from uuid import uuid4

import redis.asyncio as redis

from wishdraw.core.config import settings


logger = logging.getLogger("wishdraw.sweep_lock")

_RELEASE_SCRIPT = """
if redis.call('get', KEYS[1]) == ARGV[1] then
    return redis.call('del', KEYS[1])
end
return 0
"""


class SweepLock:
    """Best-effort mutual exclusion for cron sweeps.

    Uses ``SET NX EX`` in Redis when it is reachable and an in-process table
    otherwise. Draw correctness does not depend on it; it only keeps two
    overlapping cron invocations from doing the same work.
    """

    def __init__(self, redis_dsn: str | None = None, enabled: bool = True) -> None:
        self._redis_dsn = redis_dsn if redis_dsn is not None else settings.redis_dsn
        self._enabled = enabled
        self._redis: redis.Redis | None = None
        self._connect_lock = asyncio.Lock()
        self._cooldown_until_monotonic = 0.0
        self._connect_failures = 0
        self._memory_locks: dict[str, tuple[float, str]] = {}

    def _key(self, name: str) -> str:
        return f"wishdraw:lock:{name}"

    def _in_cooldown(self) -> bool:
        return time.monotonic() < self._cooldown_until_monotonic

    def _mark_redis_failed(self, exc: Exception) -> None:
        self._redis = None
        self._connect_failures += 1
        cooldown = min(60.0, 1.0 * (2 ** min(self._connect_failures, 6)))
        self._cooldown_until_monotonic = time.monotonic() + cooldown
        logger.warning(
            "SweepLock redis unavailable failures=%s cooldown_s=%.0f error=%s",
            self._connect_failures,
            cooldown,
            exc,
        )

    async def _get_redis(self) -> redis.Redis | None:
        if not self._enabled:
            return None
        if not self._redis_dsn or not str(self._redis_dsn).strip():
            return None
        if self._redis is not None:
            return self._redis
        if self._in_cooldown():
            return None
        async with self._connect_lock:
            if self._redis is not None:
                return self._redis
            if self._in_cooldown():
                return None
            try:
                client = redis.from_url(
                    self._redis_dsn,
                    encoding="utf-8",
                    decode_responses=True,
                    socket_connect_timeout=2,
                    socket_timeout=2,
                )
                await client.ping()
                self._redis = client
                self._connect_failures = 0
                self._cooldown_until_monotonic = 0.0
                logger.info("SweepLock connected redis=%s", self._redis_dsn)
            except (redis.RedisError, OSError) as exc:
                self._mark_redis_failed(exc)
        return self._redis

    def _mem_acquire(self, key: str, token: str, ttl_s: int) -> bool:
        now = time.monotonic()
        held = self._memory_locks.get(key)
        if held and held[0] > now:
            return False
        self._memory_locks[key] = (now + max(1, int(ttl_s)), token)
        return True

    def _mem_release(self, key: str, token: str) -> None:
        held = self._memory_locks.get(key)
        if held and held[1] == token:
            self._memory_locks.pop(key, None)

    async def acquire(self, name: str, ttl_s: int) -> str | None:
        """Return an ownership token, or ``None`` if someone else holds the lock."""
        key = self._key(name)
        token = str(uuid4())
        client = await self._get_redis()
        if client is not None:
            try:
                acquired = await client.set(key, token, nx=True, ex=max(1, int(ttl_s)))
                return token if acquired else None
            except redis.RedisError as exc:
                self._mark_redis_failed(exc)
        return token if self._mem_acquire(key, token, ttl_s) else None

    async def release(self, name: str, token: str) -> None:
        key = self._key(name)
        self._mem_release(key, token)
        client = await self._get_redis()
        if client is None:
            return
        try:
            await client.eval(_RELEASE_SCRIPT, 1, key, token)
        except redis.RedisError as exc:
            # The TTL frees the key eventually.
            self._mark_redis_failed(exc)

    @asynccontextmanager
    async def hold(self, name: str, ttl_s: int) -> AsyncIterator[bool]:
        token = await self.acquire(name, ttl_s)
        try:
            yield token is not None
        finally:
            if token is not None:
                await self.release(name, token)


sweep_lock = SweepLock()
