"""Database engine factory and the declarative base for ledger tables.

The engine is not created at import time: the ledger container builds one
per process (API lifespan, CLI command, or test fixture) and disposes it on
shutdown.
"""

from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from cemtrack.config import Settings


# ── Base class ──────────────────────────────────────────────

class LedgerBase(DeclarativeBase):
    """Tables that make up the ledger (bags + usage records)."""
    pass


# ── Engine ──────────────────────────────────────────────────

def create_ledger_engine(settings: Settings) -> AsyncEngine:
    """Create the async engine for ``settings.database_url``."""
    url = settings.database_url
    if url.startswith("sqlite"):
        # SQLite ignores pool sizing; one file shared by every connection
        return create_async_engine(url, echo=False)

    return create_async_engine(
        url,
        echo=False,
        pool_size=20,
        max_overflow=10,
        pool_pre_ping=True,
    )
