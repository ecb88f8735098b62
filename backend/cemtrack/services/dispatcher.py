"""Action dispatcher — routes ``{action, payload}`` to the ledger services.

    getDashboardStats  {}                                     → {"totalBags": n}
    registerBatch      {plant, batch, count}                  → {"success", "count", "ids"}
    recordUsage        {bag_id, worker_id, site_id?,
                        photo_base64?, geo?}                  → {"success", "usage_id", ...}
    getBag             {bag_id}                               → {"bag", "usage"}

Payloads are validated with the pydantic models in schemas/dispatch.py;
validation errors propagate as ``pydantic.ValidationError``.
"""

import logging
from typing import Any, Awaitable, Callable

from cemtrack.middleware.exceptions import BagNotFound, UnknownAction
from cemtrack.schemas.dispatch import (
    DashboardStatsPayload,
    GetBagPayload,
    RecordUsagePayload,
    RegisterBatchPayload,
)
from cemtrack.services.ledger import Ledger

logger = logging.getLogger(__name__)


class Dispatcher:
    def __init__(self, ledger: Ledger):
        self.ledger = ledger
        self._handlers: dict[str, Callable[[dict], Awaitable[dict]]] = {
            "getDashboardStats": self._dashboard_stats,
            "registerBatch": self._register_batch,
            "recordUsage": self._record_usage,
            "getBag": self._get_bag,
        }

    @property
    def actions(self) -> list[str]:
        return list(self._handlers)

    async def dispatch(self, action: str | None, payload: dict[str, Any] | None) -> dict:
        handler = self._handlers.get(action) if action else None
        if handler is None:
            raise UnknownAction(action)
        logger.debug("Dispatching %s", action)
        return await handler(payload or {})

    async def _dashboard_stats(self, payload: dict) -> dict:
        DashboardStatsPayload.model_validate(payload)
        return await self.ledger.dashboard.get_dashboard_stats()

    async def _register_batch(self, payload: dict) -> dict:
        body = RegisterBatchPayload.model_validate(payload)
        return await self.ledger.registrar.register_batch(body.plant, body.batch, body.count)

    async def _record_usage(self, payload: dict) -> dict:
        body = RecordUsagePayload.model_validate(payload)
        return await self.ledger.recorder.record_usage(
            body.bag_id,
            body.worker_id,
            site_id=body.site_id,
            photo_present=body.photo_present,
        )

    async def _get_bag(self, payload: dict) -> dict:
        body = GetBagPayload.model_validate(payload)
        found = await self.ledger.get_bag(body.bag_id)
        if found is None:
            raise BagNotFound(body.bag_id)
        return found
