"""Ledger store — narrow append / scan / count access to the two ledger tables.

The store is deliberately dumb: it has no uniqueness constraint on
``bags.bag_id`` and no notion of sequences.  Everything that must be unique
is decided by the services while they hold the ledger lock; the store only
guarantees that a batch append lands as one contiguous, ordered insert.

Tables are referred to by name:

    BAGS           → ``bags``           (see models/bag.py)
    USAGE_RECORDS  → ``usage_records``  (see models/usage_record.py)

Provisioning:
    With ``auto_provision`` on, the tables are created lazily on first
    access (``create_all`` is idempotent).  With it off, the first access
    inspects the database and raises ``SchemaMissing`` for an absent table;
    run ``alembic upgrade head`` or ``python -m cemtrack.cli init-db``.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Iterable

from sqlalchemy import Table, func, insert, inspect, select, update
from sqlalchemy.exc import InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine

from cemtrack.database import LedgerBase
from cemtrack.middleware.exceptions import SchemaMissing, StoreUnavailable
from cemtrack.models import Bag, BagStatus, UsageRecord

logger = logging.getLogger(__name__)

BAGS = "bags"
USAGE_RECORDS = "usage_records"

TABLES: dict[str, Table] = {
    BAGS: Bag.__table__,
    USAGE_RECORDS: UsageRecord.__table__,
}


def _table(name: str) -> Table:
    try:
        return TABLES[name]
    except KeyError:
        raise SchemaMissing(name) from None


def _public(row) -> dict[str, Any]:
    """Row mapping without the internal ordering column."""
    data = dict(row)
    data.pop("row_id", None)
    return data


class LedgerStore:
    def __init__(self, engine: AsyncEngine, auto_provision: bool = True):
        self.engine = engine
        self.auto_provision = auto_provision
        self._schema_ready: set[str] = set()
        self._schema_lock = asyncio.Lock()

    # ── Infrastructure ───────────────────────────────────────

    @asynccontextmanager
    async def _guard(self):
        """Translate driver/connection failures into StoreUnavailable."""
        try:
            yield
        except (OperationalError, InterfaceError, OSError) as exc:
            logger.error("Ledger store unavailable: %s", exc)
            raise StoreUnavailable(
                f"Ledger store unavailable: {exc.__class__.__name__}"
            ) from exc

    async def ensure_schema(self, tables: Iterable[str] = TABLES) -> None:
        """Provision (or verify) ledger tables once per store instance.

        Without auto-provisioning only ``tables`` are checked, so a reader
        of one table is not failed by another table being absent.
        """
        wanted = set(tables)
        if wanted <= self._schema_ready:
            return
        async with self._schema_lock:
            if wanted <= self._schema_ready:
                return
            async with self._guard():
                async with self.engine.begin() as conn:
                    if self.auto_provision:
                        await conn.run_sync(LedgerBase.metadata.create_all)
                        logger.info("Ledger tables provisioned: %s", ", ".join(TABLES))
                        wanted = set(TABLES)
                    else:
                        existing = await conn.run_sync(
                            lambda sync_conn: set(inspect(sync_conn).get_table_names())
                        )
                        for name in TABLES:
                            if name in wanted and name not in existing:
                                raise SchemaMissing(name)
            self._schema_ready |= wanted

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[AsyncConnection]:
        """Group several writes; commits on exit, rolls back on error."""
        await self.ensure_schema()
        async with self._guard():
            async with self.engine.begin() as conn:
                yield conn

    @asynccontextmanager
    async def _connection(self, conn: AsyncConnection | None):
        if conn is not None:
            yield conn
            return
        async with self.transaction() as own:
            yield own

    async def dispose(self) -> None:
        await self.engine.dispose()

    # ── Generic table access ─────────────────────────────────

    async def append(
        self, table: str, row: dict[str, Any], conn: AsyncConnection | None = None
    ) -> None:
        tbl = _table(table)
        async with self._connection(conn) as c:
            await c.execute(insert(tbl), [row])

    async def append_batch(
        self,
        table: str,
        rows: Iterable[dict[str, Any]],
        conn: AsyncConnection | None = None,
    ) -> int:
        """Insert all rows in one statement, in the given order.  Returns N."""
        tbl = _table(table)
        rows = list(rows)
        if not rows:
            return 0
        async with self._connection(conn) as c:
            await c.execute(insert(tbl), rows)
        return len(rows)

    async def scan(self, table: str) -> AsyncIterator[dict[str, Any]]:
        """Stream every row in insertion order.

        Each call starts a new pass over the table.  The pass holds a pooled
        connection until the generator is exhausted or closed, so a caller
        that may stop early should wrap it in ``contextlib.aclosing``.
        """
        tbl = _table(table)
        await self.ensure_schema([table])
        async with self._guard():
            async with self.engine.connect() as conn:
                result = await conn.stream(select(tbl).order_by(tbl.c.row_id))
                async for row in result.mappings():
                    yield _public(row)

    async def row_count(self, table: str) -> int:
        tbl = _table(table)
        await self.ensure_schema([table])
        async with self._guard():
            async with self.engine.connect() as conn:
                result = await conn.execute(select(func.count()).select_from(tbl))
                return result.scalar_one()

    # ── Bag lookups ──────────────────────────────────────────

    async def bag_ids_with_prefix(
        self, prefix: str, conn: AsyncConnection | None = None
    ) -> list[str]:
        """Identifiers starting with ``prefix`` (LIKE wildcards escaped).

        Some backends compare LIKE case-insensitively, so callers must
        re-check the prefix exactly.
        """
        bags = _table(BAGS)
        stmt = select(bags.c.bag_id).where(bags.c.bag_id.startswith(prefix, autoescape=True))
        async with self._connection(conn) as c:
            result = await c.execute(stmt)
            return list(result.scalars())

    async def find_bag(
        self, bag_id: str, conn: AsyncConnection | None = None
    ) -> dict[str, Any] | None:
        bags = _table(BAGS)
        stmt = (
            select(bags)
            .where(bags.c.bag_id == bag_id)
            .order_by(bags.c.row_id)
            .limit(1)
        )
        async with self._connection(conn) as c:
            row = (await c.execute(stmt)).mappings().first()
        return _public(row) if row is not None else None

    async def usage_for_bag(
        self, bag_id: str, conn: AsyncConnection | None = None
    ) -> list[dict[str, Any]]:
        usage = _table(USAGE_RECORDS)
        stmt = (
            select(usage)
            .where(usage.c.bag_id == bag_id)
            .order_by(usage.c.row_id)
        )
        async with self._connection(conn) as c:
            result = await c.execute(stmt)
            return [_public(row) for row in result.mappings()]

    async def mark_bag_used(
        self, bag_id: str, site_id: str, conn: AsyncConnection | None = None
    ) -> int:
        """PRODUCED → USED for ``bag_id``.  Returns the number of rows changed."""
        bags = _table(BAGS)
        stmt = (
            update(bags)
            .where(
                bags.c.bag_id == bag_id,
                bags.c.status == BagStatus.PRODUCED.value,
            )
            .values(status=BagStatus.USED.value, current_site_id=site_id)
        )
        async with self._connection(conn) as c:
            result = await c.execute(stmt)
            return result.rowcount
