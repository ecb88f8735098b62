"""Aggregate model imports for Alembic auto-detection."""

from cemtrack.models.bag import Bag, BagStatus  # noqa: F401
from cemtrack.models.usage_record import PhotoFlag, UsageRecord  # noqa: F401
