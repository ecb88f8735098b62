"""Bag — a single unit of produced cement inventory.

Bags are minted in bulk at batch registration and carry a human-readable
identifier printed on the bag (and encoded in its scan code):

    CEM-{plant}-{yyyyMMdd}-{batch}-{seq:05d}

Lifecycle:  PRODUCED → USED  (set once, by a usage event; never deleted)
"""

import enum
from datetime import datetime

from sqlalchemy import DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from cemtrack.database import LedgerBase


class BagStatus(str, enum.Enum):
    PRODUCED = "PRODUCED"
    USED = "USED"


class Bag(LedgerBase):
    __tablename__ = "bags"

    # Insertion order; scans and batch appends rely on it
    row_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    # Unique by construction (allocated under the ledger lock), not by
    # constraint: the store is treated as an append-only sheet.
    bag_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    batch_no: Mapped[str] = mapped_column(String(50), nullable=False)
    plant_id: Mapped[str] = mapped_column(String(50), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=BagStatus.PRODUCED.value
    )
    # Empty string until consumed
    current_site_id: Mapped[str] = mapped_column(String(100), nullable=False, default="")
