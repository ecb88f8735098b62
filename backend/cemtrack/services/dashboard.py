"""Dashboard aggregates — read-only, lock-free.

Counts may lag an in-flight registration; the dashboard tolerates that.
"""

import logging

from cemtrack.middleware.exceptions import SchemaMissing
from cemtrack.services.ledger_store import BAGS, LedgerStore

logger = logging.getLogger(__name__)


class DashboardAggregator:
    def __init__(self, store: LedgerStore):
        self.store = store

    async def get_dashboard_stats(self) -> dict:
        """Return ``{"totalBags": n}``; an absent bags table counts as 0."""
        try:
            total = await self.store.row_count(BAGS)
        except SchemaMissing as exc:
            if exc.table != BAGS:
                raise
            logger.info("Bags table not provisioned yet; reporting 0 bags")
            total = 0
        return {"totalBags": total}
