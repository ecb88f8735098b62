"""Ledger container — builds the store, lock and services once per process.

The API lifespan, the CLI and the test fixtures all go through
``Ledger.from_settings`` so the wiring (and the single lock domain shared
by registration and usage recording) lives in one place.
"""

import logging
from datetime import datetime
from typing import Callable
from zoneinfo import ZoneInfo

from cemtrack.config import Settings
from cemtrack.database import create_ledger_engine
from cemtrack.services.dashboard import DashboardAggregator
from cemtrack.services.ledger_store import LedgerStore
from cemtrack.services.registration import BatchRegistrar
from cemtrack.services.usage import UsageRecorder
from cemtrack.utils.locks import LedgerLock, build_ledger_lock
from cemtrack.utils.numbering import SequenceAllocator

logger = logging.getLogger(__name__)


def make_clock(tz_name: str) -> Callable[[], datetime]:
    tz = ZoneInfo(tz_name)
    return lambda: datetime.now(tz)


class Ledger:
    def __init__(
        self,
        store: LedgerStore,
        lock: LedgerLock,
        settings: Settings,
        clock: Callable[[], datetime] | None = None,
    ):
        self.store = store
        self.lock = lock
        self.settings = settings
        self.clock = clock or make_clock(settings.timezone)

        self.allocator = SequenceAllocator(store, policy=settings.sequence_policy)
        self.registrar = BatchRegistrar(
            store,
            lock,
            self.allocator,
            clock=self.clock,
            max_batch_size=settings.max_batch_size,
        )
        self.recorder = UsageRecorder(
            store,
            lock,
            clock=self.clock,
            default_site_id=settings.default_site_id,
            mark_bag_used=settings.mark_bag_used,
            verify_bag_exists=settings.verify_bag_exists,
            duplicate_policy=settings.duplicate_usage_policy,
        )
        self.dashboard = DashboardAggregator(store)

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        clock: Callable[[], datetime] | None = None,
    ) -> "Ledger":
        engine = create_ledger_engine(settings)
        store = LedgerStore(engine, auto_provision=settings.auto_provision)
        lock = build_ledger_lock(settings)
        logger.info(
            "Ledger ready (lock=%s, sequence=%s, auto_provision=%s)",
            settings.lock_backend, settings.sequence_policy, settings.auto_provision,
        )
        return cls(store, lock, settings, clock=clock)

    async def get_bag(self, bag_id: str) -> dict | None:
        """Bag row plus its usage history, or None."""
        bag = await self.store.find_bag(bag_id)
        if bag is None:
            return None
        return {"bag": bag, "usage": await self.store.usage_for_bag(bag_id)}

    async def close(self) -> None:
        await self.lock.close()
        await self.store.dispose()
