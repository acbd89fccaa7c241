"""
Per-resource lock managers.

Allocation holds a lock per truck, driver, client or trip id across its
check-and-reserve sequence. There is no global lock: unrelated ids never
wait on each other. Keys are always acquired in one fixed order (trip,
truck, driver, client), and every acquisition is bounded by a timeout
that surfaces as ResourceUnavailable.
"""

import asyncio
import logging
import uuid
from contextlib import asynccontextmanager
from typing import Dict, List, Tuple

from fleet_backend.app.core.config import settings
from fleet_backend.app.core.exceptions import ResourceUnavailableError

logger = logging.getLogger(__name__)

# Redis key prefix for resource locks
LOCK_KEY_PREFIX = "fleet:lock:"

# Deletes the lock only while it still carries the caller's token
_RELEASE_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
end
return 0
"""


def truck_key(truck_id: int) -> str:
    return f"truck:{truck_id}"


def driver_key(driver_id: int) -> str:
    return f"driver:{driver_id}"


def client_key(client_id: int) -> str:
    return f"client:{client_id}"


def trip_key(trip_id: int) -> str:
    return f"trip:{trip_id}"


# Acquisition order across key kinds; ids sort within a kind
_KIND_ORDER = {"trip": 0, "truck": 1, "driver": 2, "client": 3}


def _lock_order(key: str):
    kind, _, resource_id = key.partition(":")
    return (_KIND_ORDER.get(kind, len(_KIND_ORDER)), kind, resource_id)


def _split_key(key: str) -> Tuple[str, str]:
    kind, _, resource_id = key.partition(":")
    return kind.capitalize(), resource_id


class _BaseLockManager:
    """Shared multi-key acquisition for the lock backends."""

    def __init__(self, timeout: float):
        self.timeout = timeout

    async def _acquire(self, key: str):
        raise NotImplementedError

    async def _release(self, key: str, handle) -> None:
        raise NotImplementedError

    def _timeout_error(self, key: str) -> ResourceUnavailableError:
        resource, resource_id = _split_key(key)
        logger.warning("Lock acquisition timed out", extra={"lock_key": key, "timeout": self.timeout})
        return ResourceUnavailableError(resource, resource_id, reason="lock_timeout")

    @asynccontextmanager
    async def hold(self, *keys: str):
        """
        Hold the locks for all keys for the duration of the block.

        Raises:
            ResourceUnavailableError: If any lock is not acquired in time
        """
        acquired: List[Tuple[str, object]] = []
        try:
            for key in sorted(set(keys), key=_lock_order):
                handle = await self._acquire(key)
                acquired.append((key, handle))
            yield
        finally:
            for key, handle in reversed(acquired):
                await self._release(key, handle)


class InProcessLockManager(_BaseLockManager):
    """
    asyncio locks keyed by resource id.

    Serializes coroutines of a single process. Idle locks are dropped once
    nobody holds or waits for them.
    """

    def __init__(self, timeout: float):
        super().__init__(timeout)
        self._locks: Dict[str, asyncio.Lock] = {}
        self._users: Dict[str, int] = {}

    def is_locked(self, key: str) -> bool:
        lock = self._locks.get(key)
        return lock is not None and lock.locked()

    async def _acquire(self, key: str):
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._users[key] = self._users.get(key, 0) + 1
        waiter = asyncio.ensure_future(lock.acquire())
        try:
            done, _ = await asyncio.wait({waiter}, timeout=self.timeout)
        except BaseException:
            self._abandon(key, lock, waiter)
            raise
        if not done:
            self._abandon(key, lock, waiter)
            raise self._timeout_error(key)
        return lock

    async def _release(self, key: str, handle) -> None:
        handle.release()
        self._forget(key)

    def _abandon(self, key: str, lock: asyncio.Lock, waiter: asyncio.Future) -> None:
        # An acquire that finished after the deadline or cancellation still owns the lock
        if waiter.done():
            if not waiter.cancelled() and waiter.exception() is None:
                lock.release()
        else:
            waiter.cancel()
        self._forget(key)

    def _forget(self, key: str) -> None:
        self._users[key] -= 1
        if self._users[key] == 0:
            del self._users[key]
            del self._locks[key]


class RedisLockManager(_BaseLockManager):
    """
    Distributed locks on Redis using SET NX PX.

    Each holder stores a random token; release only deletes the key while it
    still carries that token. The TTL bounds how long a crashed worker can
    keep a resource locked.
    """

    def __init__(self, client, timeout: float, ttl: float, poll_interval: float = 0.05):
        super().__init__(timeout)
        self.client = client
        self.ttl = ttl
        self.poll_interval = poll_interval

    async def _acquire(self, key: str):
        name = f"{LOCK_KEY_PREFIX}{key}"
        token = uuid.uuid4().hex
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.timeout

        while True:
            if await self.client.set(name, token, nx=True, px=int(self.ttl * 1000)):
                return token
            if loop.time() >= deadline:
                raise self._timeout_error(key)
            await asyncio.sleep(self.poll_interval)

    async def _release(self, key: str, handle) -> None:
        name = f"{LOCK_KEY_PREFIX}{key}"
        if not await self.client.eval(_RELEASE_SCRIPT, 1, name, handle):
            logger.warning("Lock expired before release", extra={"lock_key": key})


_lock_manager = None


def get_lock_manager():
    """Return the process-wide lock manager selected by settings.lock_backend."""
    global _lock_manager
    if _lock_manager is None:
        if settings.lock_backend == "redis":
            from fleet_backend.app.core.redis_client import redis_client
            _lock_manager = RedisLockManager(
                redis_client,
                timeout=settings.lock_timeout_seconds,
                ttl=settings.lock_ttl_seconds,
                poll_interval=settings.lock_poll_interval_seconds,
            )
        else:
            _lock_manager = InProcessLockManager(timeout=settings.lock_timeout_seconds)
    return _lock_manager
