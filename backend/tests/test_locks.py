"""Ledger lock tests: bounded wait, scoped release, Redis backend."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError, LockNotOwnedError

from cemtrack.config import Settings
from cemtrack.middleware.exceptions import LockTimeout, StoreUnavailable
from cemtrack.utils.locks import LedgerLock, RedisLedgerLock, build_ledger_lock


def _redis_client(acquired=True):
    handle = MagicMock()
    handle.acquire = AsyncMock(return_value=acquired)
    handle.release = AsyncMock()
    client = MagicMock()
    client.lock.return_value = handle
    client.aclose = AsyncMock()
    return client, handle


@pytest.mark.unit
@pytest.mark.asyncio
class TestLedgerLock:

    async def test_hold_releases_on_exit(self):
        lock = LedgerLock(timeout=1)
        async with lock.hold():
            assert lock.locked
        assert not lock.locked

    async def test_hold_releases_on_error(self):
        lock = LedgerLock(timeout=1)
        with pytest.raises(RuntimeError):
            async with lock.hold():
                raise RuntimeError("boom")
        assert not lock.locked

    async def test_timeout_when_held(self):
        lock = LedgerLock(timeout=0.05)
        async with lock.hold():
            with pytest.raises(LockTimeout) as exc_info:
                await lock.acquire()
        assert exc_info.value.error_code == "LOCK_TIMEOUT"
        assert not lock.locked

    async def test_explicit_timeout_overrides_default(self):
        lock = LedgerLock(timeout=30)
        await lock.acquire()
        try:
            with pytest.raises(LockTimeout):
                await lock.acquire(timeout=0.01)
        finally:
            await lock.release()

    async def test_waiter_gets_lock_after_release(self):
        lock = LedgerLock(timeout=1)
        order = []

        async def worker(name, pause):
            async with lock.hold():
                order.append(f"{name}:in")
                await asyncio.sleep(pause)
                order.append(f"{name}:out")

        await asyncio.gather(worker("a", 0.02), worker("b", 0))
        # Sections never interleave
        assert order in (
            ["a:in", "a:out", "b:in", "b:out"],
            ["b:in", "b:out", "a:in", "a:out"],
        )


@pytest.mark.unit
@pytest.mark.asyncio
class TestRedisLedgerLock:

    async def test_acquire_and_release(self):
        client, handle = _redis_client()
        lock = RedisLedgerLock(client, "cemtrack:ledger", timeout=2, lease=60)
        async with lock.hold():
            assert lock.locked
        client.lock.assert_called_once()
        args, kwargs = client.lock.call_args
        assert args == ("cemtrack:ledger",)
        assert kwargs["timeout"] == 60
        assert 0 <= kwargs["blocking_timeout"] <= 2
        handle.release.assert_awaited_once()
        assert not lock.locked

    async def test_not_acquired_raises_timeout_and_frees_local(self):
        client, handle = _redis_client(acquired=False)
        lock = RedisLedgerLock(client, "cemtrack:ledger", timeout=0.1)
        with pytest.raises(LockTimeout):
            await lock.acquire()
        assert not lock.locked
        handle.release.assert_not_awaited()

    async def test_redis_down_is_store_unavailable(self):
        client, handle = _redis_client()
        handle.acquire.side_effect = RedisConnectionError("refused")
        lock = RedisLedgerLock(client, "cemtrack:ledger", timeout=0.1)
        with pytest.raises(StoreUnavailable):
            await lock.acquire()
        assert not lock.locked

    async def test_expired_lease_is_logged_not_raised(self, caplog):
        client, handle = _redis_client()
        handle.release.side_effect = LockNotOwnedError("expired")
        lock = RedisLedgerLock(client, "cemtrack:ledger", timeout=1, lease=1)
        async with lock.hold():
            pass
        assert not lock.locked
        assert "expired before release" in caplog.text

    async def test_close_closes_client(self):
        client, _ = _redis_client()
        await RedisLedgerLock(client, "k").close()
        client.aclose.assert_awaited_once()


@pytest.mark.unit
class TestBuildLedgerLock:

    def test_local_backend(self):
        lock = build_ledger_lock(Settings(_env_file=None, lock_timeout_seconds=12))
        assert type(lock) is LedgerLock
        assert lock.timeout == 12

    def test_redis_backend(self):
        lock = build_ledger_lock(Settings(
            _env_file=None,
            lock_backend="redis",
            redis_url="redis://localhost:6399/1",
            lock_name="test:lock",
        ))
        assert isinstance(lock, RedisLedgerLock)
        assert lock.name == "test:lock"
