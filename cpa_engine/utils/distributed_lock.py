"""
Distributed lock.

Redis-backed lock used to keep a single batch run active across workers.
Falls back to a process-local asyncio lock when Redis is not available.
"""

import asyncio
import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from loguru import logger
from redis.asyncio import Redis
from redis.exceptions import RedisError

# Compare-and-delete so a worker never releases a lock it no longer owns
_RELEASE_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
else
    return 0
end
"""


class LockNotAcquiredError(Exception):
    """Raised when the lock is held by someone else."""


class DistributedLock:
    """Non-blocking distributed lock."""

    _local_locks: dict[str, asyncio.Lock] = {}

    def __init__(self, redis_client: Redis | None = None) -> None:
        self.redis_client = redis_client

    @asynccontextmanager
    async def lock(self, key: str, timeout: int = 60) -> AsyncIterator[None]:
        """
        Hold the lock for the duration of the block.

        Args:
            key: Lock name
            timeout: Lock expiry in seconds (protects against crashed holders)

        Raises:
            LockNotAcquiredError: If the lock is already held
        """
        if self.redis_client is None:
            async with self._local_lock(key):
                yield
            return

        lock_key = f"lock:{key}"
        token = uuid.uuid4().hex

        try:
            acquired = await self.redis_client.set(lock_key, token, nx=True, ex=timeout)
        except RedisError as e:
            logger.warning(f"Redis lock unavailable for {key}, using local lock: {e}")
            async with self._local_lock(key):
                yield
            return

        if not acquired:
            raise LockNotAcquiredError(f"Lock {key} is already held")

        try:
            yield
        finally:
            try:
                await self.redis_client.eval(_RELEASE_SCRIPT, 1, lock_key, token)
            except RedisError as e:
                logger.warning(f"Failed to release lock {key}: {e}")

    @asynccontextmanager
    async def _local_lock(self, key: str) -> AsyncIterator[None]:
        local = self._local_locks.setdefault(key, asyncio.Lock())
        if local.locked():
            raise LockNotAcquiredError(f"Lock {key} is already held")
        async with local:
            yield
