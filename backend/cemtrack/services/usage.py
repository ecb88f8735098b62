"""Usage recording — log a bag being consumed on site.

Under the ledger lock, in one transaction:
  - Checking the bag exists (BagNotFound otherwise)
  - Appending a UsageRecord (fresh usage_id, photo flag, site or default)
  - Moving the bag PRODUCED → USED and stamping current_site_id

A bag that is already USED is a data-quality problem, not a crash:
  policy "flag"    the event is still logged, the bag is left as is, and
                   the result carries ``duplicate`` + ``warning``
  policy "reject"  DuplicateUsage is raised and nothing is written
"""

import logging
import uuid
from datetime import datetime
from typing import Callable

from cemtrack.middleware.exceptions import BagNotFound, DuplicateUsage, InvalidRequest
from cemtrack.models import BagStatus, PhotoFlag
from cemtrack.services.ledger_store import USAGE_RECORDS, LedgerStore
from cemtrack.utils.locks import LedgerLock

logger = logging.getLogger(__name__)

DEFAULT_SITE_ID = "SITE-DEFAULT"
DUPLICATE_POLICIES = ("flag", "reject")


class UsageRecorder:
    def __init__(
        self,
        store: LedgerStore,
        lock: LedgerLock,
        clock: Callable[[], datetime],
        default_site_id: str = DEFAULT_SITE_ID,
        mark_bag_used: bool = True,
        verify_bag_exists: bool = True,
        duplicate_policy: str = "flag",
    ):
        if duplicate_policy not in DUPLICATE_POLICIES:
            raise ValueError(f"Unknown duplicate usage policy: {duplicate_policy}")
        self.store = store
        self.lock = lock
        self.clock = clock
        self.default_site_id = default_site_id
        self.mark_bag_used = mark_bag_used
        self.verify_bag_exists = verify_bag_exists
        self.duplicate_policy = duplicate_policy

    async def record_usage(
        self,
        bag_id: str,
        worker_id: str,
        site_id: str | None = None,
        photo_present: bool = False,
    ) -> dict:
        """Record one usage event against ``bag_id``.

        Raises:
            InvalidRequest, BagNotFound, DuplicateUsage (reject policy),
            LockTimeout, StoreUnavailable, SchemaMissing
        """
        if not bag_id or not bag_id.strip():
            raise InvalidRequest("bag_id is required")
        if not worker_id or not worker_id.strip():
            raise InvalidRequest("worker_id is required")
        bag_id = bag_id.strip()
        worker_id = worker_id.strip()
        site = site_id.strip() if site_id and site_id.strip() else self.default_site_id

        result = {"success": True}

        async with self.lock.hold():
            async with self.store.transaction() as conn:
                bag = None
                if self.verify_bag_exists or self.mark_bag_used:
                    bag = await self.store.find_bag(bag_id, conn=conn)
                    if bag is None and self.verify_bag_exists:
                        raise BagNotFound(bag_id)

                duplicate = bag is not None and bag["status"] == BagStatus.USED.value
                if duplicate and self.duplicate_policy == "reject":
                    raise DuplicateUsage(bag_id, bag["current_site_id"])

                usage_id = str(uuid.uuid4())
                await self.store.append(
                    USAGE_RECORDS,
                    {
                        "usage_id": usage_id,
                        "bag_id": bag_id,
                        "worker_id": worker_id,
                        "site_id": site,
                        "timestamp": self.clock(),
                        "photo_flag": (
                            PhotoFlag.HAS_PHOTO.value if photo_present else PhotoFlag.NO_PHOTO.value
                        ),
                    },
                    conn=conn,
                )

                if self.mark_bag_used and bag is not None and not duplicate:
                    await self.store.mark_bag_used(bag_id, site, conn=conn)

        result["usage_id"] = usage_id
        if duplicate:
            warning = DuplicateUsage(bag_id, bag["current_site_id"])
            logger.warning(
                "Duplicate usage of %s by worker %s at %s: %s",
                bag_id, worker_id, site, warning.message,
            )
            result["duplicate"] = True
            result["warning"] = f"{warning.error_code}: {warning.message}"
        else:
            logger.info("Recorded usage %s of %s at %s", usage_id, bag_id, site)

        return result
