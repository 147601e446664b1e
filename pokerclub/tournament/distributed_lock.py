"""
Per-tournament locking.

Commands on one tournament are serialized; different tournaments never wait
on each other. The lock is not reentrant, so a locked command must not call
another locked command.

- LocalLockManager: one asyncio.Lock per tournament (single process)
- DistributedLockManager: Redis key ``lock:tournament:{id}`` holding an owner
  token, set with NX and a PX expiry; release is a Lua script that deletes
  the key only while the token still matches
"""

import asyncio
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from enum import Enum
from typing import AsyncGenerator, Dict, Optional
from uuid import uuid4

import redis.asyncio as redis

from pokerclub.logging_config import get_logger

logger = get_logger(__name__)


class LockType(Enum):
    TOURNAMENT = "tournament"


@dataclass(frozen=True)
class LockInfo:
    lock_key: str
    owner_id: str
    acquired_at: float
    expires_at: float
    lock_type: LockType = LockType.TOURNAMENT


class DistributedLockError(Exception):
    pass


class LockAcquisitionError(DistributedLockError):
    """The tournament stayed locked for the whole acquire timeout."""

    def __init__(self, lock_key: str, waited_ms: int):
        super().__init__(f"Lock {lock_key} not acquired within {waited_ms}ms")
        self.lock_key = lock_key
        self.waited_ms = waited_ms


def make_lock_key(tournament_id: str, lock_type: LockType = LockType.TOURNAMENT) -> str:
    return f"lock:{lock_type.value}:{tournament_id}"


@dataclass
class _LocalLock:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    users: int = 0  # holder plus waiters


class LocalLockManager:
    """Entries exist only while someone holds or waits for the lock."""

    def __init__(self, default_acquire_timeout_ms: int = 5000):
        self.default_acquire_timeout_ms = default_acquire_timeout_ms
        self._locks: Dict[str, _LocalLock] = {}

    async def is_locked(
        self,
        tournament_id: str,
        lock_type: LockType = LockType.TOURNAMENT,
    ) -> bool:
        entry = self._locks.get(make_lock_key(tournament_id, lock_type))
        return bool(entry and entry.lock.locked())

    @asynccontextmanager
    async def lock(
        self,
        tournament_id: str,
        lock_type: LockType = LockType.TOURNAMENT,
        acquire_timeout_ms: Optional[int] = None,
    ) -> AsyncGenerator[LockInfo, None]:
        lock_key = make_lock_key(tournament_id, lock_type)
        wait_ms = acquire_timeout_ms or self.default_acquire_timeout_ms
        entry = self._locks.setdefault(lock_key, _LocalLock())
        entry.users += 1
        try:
            try:
                await asyncio.wait_for(entry.lock.acquire(), timeout=wait_ms / 1000)
            except asyncio.TimeoutError:
                raise LockAcquisitionError(lock_key, wait_ms) from None

            try:
                yield LockInfo(lock_key, "local", time.time(), float("inf"), lock_type)
            finally:
                entry.lock.release()
        finally:
            entry.users -= 1
            if not entry.users:
                del self._locks[lock_key]

    async def cleanup_all(self) -> int:
        # asyncio locks die with the process
        return 0


class DistributedLockManager:
    """Redis lock shared by every worker process.

    A key expires after ``default_lock_timeout_ms`` even if its holder
    crashes. Acquire polls every ``retry_interval_ms`` until
    ``acquire_timeout_ms`` runs out.
    """

    RELEASE_LOCK_SCRIPT = """
    if redis.call("get", KEYS[1]) ~= ARGV[1] then
        return 0
    end
    return redis.call("del", KEYS[1])
    """

    def __init__(
        self,
        redis_client: redis.Redis,
        default_lock_timeout_ms: int = 10000,
        default_acquire_timeout_ms: int = 5000,
        retry_interval_ms: int = 50,
    ):
        self.redis = redis_client
        self.default_lock_timeout_ms = default_lock_timeout_ms
        self.default_acquire_timeout_ms = default_acquire_timeout_ms
        self.retry_interval_ms = retry_interval_ms

        self._release = redis_client.register_script(self.RELEASE_LOCK_SCRIPT)
        # lock_key -> owner token, for shutdown
        self._held: Dict[str, str] = {}

    async def acquire(
        self,
        tournament_id: str,
        lock_type: LockType = LockType.TOURNAMENT,
        lock_timeout_ms: Optional[int] = None,
        acquire_timeout_ms: Optional[int] = None,
    ) -> LockInfo:
        """Take the lock or raise LockAcquisitionError."""
        ttl_ms = lock_timeout_ms or self.default_lock_timeout_ms
        wait_ms = acquire_timeout_ms or self.default_acquire_timeout_ms
        lock_key = make_lock_key(tournament_id, lock_type)
        token = uuid4().hex
        deadline = time.monotonic() + wait_ms / 1000

        while not await self.redis.set(lock_key, token, nx=True, px=ttl_ms):
            if time.monotonic() >= deadline:
                raise LockAcquisitionError(lock_key, wait_ms)
            await asyncio.sleep(self.retry_interval_ms / 1000)

        self._held[lock_key] = token
        now = time.time()
        return LockInfo(lock_key, token, now, now + ttl_ms / 1000, lock_type)

    async def release(self, lock_info: LockInfo) -> bool:
        """False when the key expired or another owner holds it now."""
        self._held.pop(lock_info.lock_key, None)
        released = await self._release(keys=[lock_info.lock_key], args=[lock_info.owner_id])
        if released != 1:
            logger.warning("lock_lost_before_release", lock_key=lock_info.lock_key)
        return released == 1

    async def is_locked(
        self,
        tournament_id: str,
        lock_type: LockType = LockType.TOURNAMENT,
    ) -> bool:
        return bool(await self.redis.exists(make_lock_key(tournament_id, lock_type)))

    @asynccontextmanager
    async def lock(
        self,
        tournament_id: str,
        lock_type: LockType = LockType.TOURNAMENT,
        acquire_timeout_ms: Optional[int] = None,
    ) -> AsyncGenerator[LockInfo, None]:
        info = await self.acquire(tournament_id, lock_type, acquire_timeout_ms=acquire_timeout_ms)
        try:
            yield info
        finally:
            await self.release(info)

    async def cleanup_all(self) -> int:
        """Release whatever this process still holds; returns how many."""
        held, self._held = self._held, {}
        released = 0
        for lock_key, token in held.items():
            try:
                released += await self._release(keys=[lock_key], args=[token])
            except redis.RedisError as e:
                logger.warning("lock_cleanup_failed", lock_key=lock_key, error=str(e))
        return released
