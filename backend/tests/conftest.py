"""Pytest configuration and fixtures for ledger tests.

Every test gets its own SQLite file under ``tmp_path`` and a frozen clock,
so bag identifiers are predictable: ``CEM-<plant>-20261019-<batch>-NNNNN``.
"""

from datetime import datetime, timezone
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from cemtrack.config import Settings
from cemtrack.main import create_app
from cemtrack.services.ledger import Ledger

FROZEN_NOW = datetime(2026, 10, 19, 9, 30, tzinfo=timezone.utc)
TODAY = "20261019"


def frozen_clock() -> datetime:
    return FROZEN_NOW


def bag_id(plant: str, batch: str, seq: int) -> str:
    return f"CEM-{plant}-{TODAY}-{batch}-{seq:05d}"


def make_settings(tmp_path, **overrides) -> Settings:
    values = {
        "database_url": f"sqlite+aiosqlite:///{(tmp_path / 'ledger.db').as_posix()}",
        "lock_backend": "local",
        "lock_timeout_seconds": 5.0,
        "debug": False,
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


# ── Ledger fixtures ──────────────────────────────────────────────

@pytest.fixture
def settings(tmp_path) -> Settings:
    return make_settings(tmp_path)


@pytest.fixture
def settings_for(tmp_path):
    """``settings_for(**overrides)`` → Settings on this test's database."""
    return lambda **overrides: make_settings(tmp_path, **overrides)


@pytest_asyncio.fixture
async def ledger(settings) -> AsyncGenerator[Ledger, None]:
    """Fully wired ledger on a fresh database."""
    ledger = Ledger.from_settings(settings, clock=frozen_clock)
    yield ledger
    await ledger.close()


@pytest_asyncio.fixture
async def make_ledger(tmp_path):
    """Factory for ledgers with non-default settings."""
    created = []

    def _make(**overrides) -> Ledger:
        ledger = Ledger.from_settings(make_settings(tmp_path, **overrides), clock=frozen_clock)
        created.append(ledger)
        return ledger

    yield _make

    for ledger in created:
        await ledger.close()


@pytest.fixture
def store(ledger):
    return ledger.store


@pytest.fixture
def bag_id_for():
    """``bag_id_for("P1", "B100", 1)`` → ``CEM-P1-20261019-B100-00001``."""
    return bag_id


# ── API client ───────────────────────────────────────────────────

@pytest_asyncio.fixture
async def client(settings, ledger) -> AsyncGenerator[AsyncClient, None]:
    app = create_app(settings, ledger=ledger)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


# ── Test Markers ─────────────────────────────────────────────────

def pytest_configure(config):
    """Configure custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "api: Endpoint tests")
    config.addinivalue_line("markers", "concurrency: Concurrent ledger access")
