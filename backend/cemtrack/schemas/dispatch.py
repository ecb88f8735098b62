"""Pydantic schemas for the single dispatch endpoint.

The request envelope is ``{"action": str, "payload": {...}}``; each action
validates its own payload model below.
"""

from typing import Any

from pydantic import BaseModel, Field, field_validator


# ── Envelope ─────────────────────────────────────────────────

class DispatchRequest(BaseModel):
    action: str | None = None
    payload: dict[str, Any] | None = None


# ── Action payloads ──────────────────────────────────────────

class DashboardStatsPayload(BaseModel):
    pass


class RegisterBatchPayload(BaseModel):
    """Payload for ``registerBatch`` — the production-line form."""
    plant: str = Field(..., min_length=1, max_length=50)
    batch: str = Field(..., min_length=1, max_length=50)
    count: int = Field(..., ge=1, strict=True)

    @field_validator("plant", "batch")
    @classmethod
    def not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be blank")
        return value


class RecordUsagePayload(BaseModel):
    """Payload for ``recordUsage`` — sent by the scanning app.

    ``photo_base64`` only determines the photo flag; the image itself is
    stored elsewhere.  ``geo`` is accepted for compatibility and ignored.
    """
    bag_id: str = Field(..., min_length=1)
    worker_id: str = Field(..., min_length=1)
    site_id: str | None = None
    photo_base64: str | None = None
    geo: dict[str, Any] | None = None

    @property
    def photo_present(self) -> bool:
        return bool(self.photo_base64)


class GetBagPayload(BaseModel):
    bag_id: str = Field(..., min_length=1)


# ── Results ──────────────────────────────────────────────────

class DashboardStatsOut(BaseModel):
    totalBags: int


class RegisterBatchOut(BaseModel):
    success: bool
    count: int
    ids: list[str]


class RecordUsageOut(BaseModel):
    success: bool
    usage_id: str | None = None
    duplicate: bool | None = None
    warning: str | None = None
