"""Batch registration — mint identifiers for a run of newly produced bags.

Under the ledger lock:
  - Allocating the next sequence numbers for (plant, batch, today)
  - Formatting one bag identifier per sequence number
  - Appending all Bag rows (status PRODUCED) in a single ordered insert
"""

import logging
from datetime import datetime
from typing import Callable

from cemtrack.middleware.exceptions import InvalidRequest
from cemtrack.models import BagStatus
from cemtrack.services.ledger_store import BAGS, LedgerStore
from cemtrack.utils.locks import LedgerLock
from cemtrack.utils.numbering import SequenceAllocator, generate_bag_id

logger = logging.getLogger(__name__)

MAX_CODE_LENGTH = 50


def _clean_code(name: str, value) -> str:
    if not isinstance(value, str) or not value.strip():
        raise InvalidRequest(f"{name} must be a non-empty string")
    value = value.strip()
    if len(value) > MAX_CODE_LENGTH:
        raise InvalidRequest(f"{name} must be at most {MAX_CODE_LENGTH} characters")
    return value


class BatchRegistrar:
    def __init__(
        self,
        store: LedgerStore,
        lock: LedgerLock,
        allocator: SequenceAllocator,
        clock: Callable[[], datetime],
        max_batch_size: int = 10000,
    ):
        self.store = store
        self.lock = lock
        self.allocator = allocator
        self.clock = clock
        self.max_batch_size = max_batch_size

    async def register_batch(self, plant_code: str, batch: str, count: int) -> dict:
        """Register ``count`` new bags and return their identifiers.

        Returns:
            {"success": True, "count": count, "ids": [bag_id, ...]}
            with ids in ascending sequence order.

        Raises:
            InvalidRequest, LockTimeout, StoreUnavailable, SchemaMissing
        """
        plant_code = _clean_code("plant", plant_code)
        batch = _clean_code("batch", batch)
        if isinstance(count, bool) or not isinstance(count, int) or count < 1:
            raise InvalidRequest("count must be a positive integer")
        if count > self.max_batch_size:
            raise InvalidRequest(f"count must not exceed {self.max_batch_size}")

        async with self.lock.hold():
            created_at = self.clock()
            async with self.store.transaction() as conn:
                sequences = await self.allocator.allocate(
                    plant_code, batch, count, created_at.date(), conn=conn
                )
                ids = [
                    generate_bag_id(plant_code, batch, seq, created_at.date())
                    for seq in sequences
                ]
                await self.store.append_batch(
                    BAGS,
                    (
                        {
                            "bag_id": bag_id,
                            "batch_no": batch,
                            "plant_id": plant_code,
                            "created_at": created_at,
                            "status": BagStatus.PRODUCED.value,
                            "current_site_id": "",
                        }
                        for bag_id in ids
                    ),
                    conn=conn,
                )

        logger.info(
            "Registered %d bags for plant %s batch %s (%s .. %s)",
            count, plant_code, batch, ids[0], ids[-1],
        )
        return {"success": True, "count": count, "ids": ids}
