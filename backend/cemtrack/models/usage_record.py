"""UsageRecord — immutable event log of bags consumed on site.

One row per scan reported by a worker.  A bag normally has exactly one
record; further records against an already-used bag are kept (the log is
append-only) and flagged as duplicate usage by the recorder.
"""

import enum
from datetime import datetime

from sqlalchemy import DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from cemtrack.database import LedgerBase


class PhotoFlag(str, enum.Enum):
    HAS_PHOTO = "HAS_PHOTO"
    NO_PHOTO = "NO_PHOTO"


class UsageRecord(LedgerBase):
    __tablename__ = "usage_records"

    row_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    usage_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)

    # Lookup key into bags.bag_id (no FK: bags has no unique constraint)
    bag_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    worker_id: Mapped[str] = mapped_column(String(100), nullable=False)
    site_id: Mapped[str] = mapped_column(String(100), nullable=False)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    photo_flag: Mapped[str] = mapped_column(
        String(20), nullable=False, default=PhotoFlag.NO_PHOTO.value
    )
