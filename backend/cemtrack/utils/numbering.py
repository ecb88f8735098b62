"""Bag identifier formatting and sequence allocation.

Format:

    CEM-{plant}-{yyyyMMdd}-{batch}-{seq:05d}
    e.g. CEM-P1-20261019-B100-00001

The sequence restarts at 1 for every (plant, batch, date) triple and is
zero-padded to 5 digits (longer sequences are printed in full, never cut).

Allocation policies:
  scan   next = max(existing seq for the triple) + 1   (default)
  naive  always start at 1 — the legacy behaviour, which mints duplicate
         identifiers when a plant+batch is registered twice on one day.
         Kept only for compatibility testing.

Allocation must run while the ledger lock is held; otherwise two
registrations can observe the same maximum.
"""

import logging
from datetime import date

from sqlalchemy.ext.asyncio import AsyncConnection

from cemtrack.services.ledger_store import LedgerStore

logger = logging.getLogger(__name__)

BAG_ID_PREFIX = "CEM"
SEQ_WIDTH = 5

SEQUENCE_POLICIES = ("scan", "naive")


def bag_id_prefix(plant_code: str, batch: str, on_date: date) -> str:
    """Everything before the sequence number, including the trailing dash."""
    return f"{BAG_ID_PREFIX}-{plant_code}-{on_date:%Y%m%d}-{batch}-"


def generate_bag_id(plant_code: str, batch: str, seq: int, on_date: date) -> str:
    """Format a bag identifier.  Pure: ``on_date`` is always explicit."""
    return f"{bag_id_prefix(plant_code, batch, on_date)}{seq:0{SEQ_WIDTH}d}"


def parse_sequence(bag_id: str, prefix: str) -> int | None:
    """Sequence number of ``bag_id`` if it belongs to ``prefix``, else None.

    A batch label may itself contain dashes, so ``B1`` and ``B1-X`` share a
    LIKE prefix; only an all-digit remainder counts.
    """
    if not bag_id.startswith(prefix):
        return None
    tail = bag_id[len(prefix):]
    if not (tail.isascii() and tail.isdigit()):
        return None
    return int(tail)


class SequenceAllocator:
    def __init__(self, store: LedgerStore, policy: str = "scan"):
        if policy not in SEQUENCE_POLICIES:
            raise ValueError(f"Unknown sequence policy: {policy}")
        self.store = store
        self.policy = policy

    async def next_start(
        self,
        plant_code: str,
        batch: str,
        on_date: date,
        conn: AsyncConnection | None = None,
    ) -> int:
        if self.policy == "naive":
            return 1

        prefix = bag_id_prefix(plant_code, batch, on_date)
        existing = await self.store.bag_ids_with_prefix(prefix, conn=conn)
        highest = 0
        for bag_id in existing:
            seq = parse_sequence(bag_id, prefix)
            if seq is not None and seq > highest:
                highest = seq
        if highest:
            logger.debug("Continuing %s after sequence %d", prefix, highest)
        return highest + 1

    async def allocate(
        self,
        plant_code: str,
        batch: str,
        count: int,
        on_date: date,
        conn: AsyncConnection | None = None,
    ) -> list[int]:
        """The next ``count`` sequence numbers for the triple, ascending."""
        start = await self.next_start(plant_code, batch, on_date, conn=conn)
        return list(range(start, start + count))
