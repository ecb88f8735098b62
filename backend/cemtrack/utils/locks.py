"""Ledger lock — one mutual-exclusion domain for every ledger write.

Registration and usage recording both hold the same lock, so at most one
mutating operation touches the store at a time.  Reads (dashboard, bag
lookup) never take it.

Always use the scoped form so the lock is released on every exit path:

    async with ledger_lock.hold():
        ...

Backends:
  - LedgerLock       process-local ``asyncio.Lock`` (single worker)
  - RedisLedgerLock  local lock + a Redis lock on ``lock_name``, for several
                     workers sharing one store
"""

from __future__ import annotations

import asyncio
import logging
import time
from contextlib import asynccontextmanager

import redis.asyncio as redis
from redis.exceptions import LockError, LockNotOwnedError, RedisError

from cemtrack.config import Settings
from cemtrack.middleware.exceptions import LockTimeout, StoreUnavailable

logger = logging.getLogger(__name__)

DEFAULT_LOCK_TIMEOUT = 30.0


class LedgerLock:
    """Process-local ledger lock with a bounded wait."""

    def __init__(self, timeout: float = DEFAULT_LOCK_TIMEOUT):
        self.timeout = timeout
        self._local = asyncio.Lock()

    @property
    def locked(self) -> bool:
        return self._local.locked()

    async def acquire(self, timeout: float | None = None) -> None:
        """Block until the lock is held, or raise LockTimeout."""
        timeout = self.timeout if timeout is None else timeout
        started = time.monotonic()
        try:
            await asyncio.wait_for(self._local.acquire(), timeout)
        except asyncio.TimeoutError:
            logger.warning("Ledger lock not acquired within %.1fs", timeout)
            raise LockTimeout(timeout) from None

        remaining = max(0.0, timeout - (time.monotonic() - started))
        try:
            await self._acquire_shared(timeout, remaining)
        except BaseException:
            self._local.release()
            raise
        logger.debug("Ledger lock acquired after %.3fs", time.monotonic() - started)

    async def release(self) -> None:
        try:
            await self._release_shared()
        finally:
            self._local.release()

    @asynccontextmanager
    async def hold(self, timeout: float | None = None):
        await self.acquire(timeout)
        try:
            yield self
        finally:
            await self.release()

    async def _acquire_shared(self, timeout: float, remaining: float) -> None:
        pass

    async def _release_shared(self) -> None:
        pass

    async def close(self) -> None:
        pass


class RedisLedgerLock(LedgerLock):
    """Ledger lock shared by every worker pointed at the same Redis.

    The local lock is taken first, so within a process only one coroutine
    ever waits on (or holds) the Redis key.
    """

    def __init__(
        self,
        client: redis.Redis,
        name: str,
        timeout: float = DEFAULT_LOCK_TIMEOUT,
        lease: float = 120.0,
    ):
        super().__init__(timeout)
        self.client = client
        self.name = name
        self.lease = lease
        self._held = None

    async def _acquire_shared(self, timeout: float, remaining: float) -> None:
        lock = self.client.lock(
            self.name,
            timeout=self.lease,
            blocking_timeout=remaining,
        )
        try:
            acquired = await lock.acquire()
        except RedisError as exc:
            raise StoreUnavailable(f"Lock service unavailable: {exc}") from exc
        if not acquired:
            logger.warning("Redis ledger lock %s not acquired within %.1fs", self.name, timeout)
            raise LockTimeout(timeout)
        self._held = lock

    async def _release_shared(self) -> None:
        lock, self._held = self._held, None
        if lock is None:
            return
        try:
            await lock.release()
        except LockNotOwnedError:
            # Lease ran out mid-section; another worker may have entered
            logger.error(
                "Redis ledger lock %s expired before release (lease %.0fs)",
                self.name, self.lease,
            )
        except (LockError, RedisError) as exc:
            logger.error("Failed to release Redis ledger lock %s: %s", self.name, exc)

    async def close(self) -> None:
        await self.client.aclose()


def build_ledger_lock(settings: Settings) -> LedgerLock:
    """Create the ledger lock for the configured backend."""
    if settings.lock_backend == "redis":
        client = redis.from_url(
            settings.redis_url,
            encoding="utf-8",
            decode_responses=True,
        )
        logger.info("Using Redis ledger lock %s", settings.lock_name)
        return RedisLedgerLock(
            client,
            settings.lock_name,
            timeout=settings.lock_timeout_seconds,
            lease=settings.lock_lease_seconds,
        )
    return LedgerLock(timeout=settings.lock_timeout_seconds)
