"""
Per-key exclusive sections for the seat ledger.

Two back-ends implement ``LockManager``:

* ``RedisLockManager`` -- wraps ``DistributedLock`` (SET NX EX on acquire,
  Lua check-and-delete on release) so API processes on different hosts
  serialise reserve/release on the same ride.
* ``LocalLockManager`` -- one ``asyncio.Lock`` per key in use, for a single
  process (tests, local runs).

Neither blocks indefinitely: acquisition gives up after ``wait_seconds``
and raises ``ConflictError`` with code ``RESOURCE_BUSY``.
"""

from __future__ import annotations

import asyncio
import time
import uuid
from collections import defaultdict
from contextlib import asynccontextmanager
from typing import AsyncIterator

import redis.asyncio as aioredis

from src.domain.errors import ConflictError
from src.domain.ports import LockManager

_RELEASE_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
else
    return 0
end
"""


class DistributedLock:
    def __init__(
        self,
        client: aioredis.Redis,
        key: str,
        ttl_seconds: int = 30,
        wait_seconds: float = 0.0,
        poll_interval: float = 0.05,
    ):
        self.redis = client
        self.key = f"lock:{key}"
        self.ttl = ttl_seconds
        self.wait = wait_seconds
        self.poll_interval = poll_interval
        self.token = str(uuid.uuid4())

    async def try_acquire(self) -> bool:
        return bool(
            await self.redis.set(self.key, self.token, nx=True, ex=self.ttl)
        )

    async def acquire(self) -> bool:
        """Retry until acquired or ``wait_seconds`` elapse.  True on success."""
        deadline = time.monotonic() + self.wait
        while True:
            if await self.try_acquire():
                return True
            if time.monotonic() >= deadline:
                return False
            await asyncio.sleep(self.poll_interval)

    async def release(self) -> None:
        """Release only if we still own the lock (atomic via Lua)."""
        await self.redis.eval(_RELEASE_SCRIPT, 1, self.key, self.token)

    # context-manager support
    async def __aenter__(self):
        acquired = await self.acquire()
        if not acquired:
            raise ConflictError(
                f"Could not acquire lock: {self.key}", "RESOURCE_BUSY"
            )
        return self

    async def __aexit__(self, *args):
        await self.release()


class RedisLockManager(LockManager):
    def __init__(
        self, client: aioredis.Redis, ttl_seconds: int = 10, wait_seconds: float = 2.0
    ):
        self.redis = client
        self.ttl = ttl_seconds
        self.wait = wait_seconds

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        async with DistributedLock(
            self.redis, key, ttl_seconds=self.ttl, wait_seconds=self.wait
        ):
            yield


class LocalLockManager(LockManager):
    def __init__(self, wait_seconds: float = 2.0):
        self.wait = wait_seconds
        self._locks: dict[str, asyncio.Lock] = {}
        self._users: dict[str, int] = defaultdict(int)

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._users[key] += 1
        try:
            try:
                await asyncio.wait_for(lock.acquire(), timeout=self.wait)
            except asyncio.TimeoutError:
                raise ConflictError(f"Could not acquire lock: {key}", "RESOURCE_BUSY")
            try:
                yield
            finally:
                lock.release()
        finally:
            # Last holder or waiter out drops the key
            self._users[key] -= 1
            if self._users[key] == 0:
                del self._users[key]
                del self._locks[key]

    def __len__(self) -> int:
        return len(self._locks)
