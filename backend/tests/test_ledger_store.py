"""Ledger store tests: append, batch append, scan, counts, provisioning."""

from contextlib import aclosing
from datetime import datetime, timezone

import pytest
from sqlalchemy import text

from cemtrack.database import create_ledger_engine
from cemtrack.middleware.exceptions import SchemaMissing, StoreUnavailable
from cemtrack.services.ledger_store import BAGS, USAGE_RECORDS, LedgerStore

CREATED = datetime(2026, 10, 19, 8, 0, tzinfo=timezone.utc)


def bag_row(bag_id, status="PRODUCED"):
    return {
        "bag_id": bag_id,
        "batch_no": "B1",
        "plant_id": "P1",
        "created_at": CREATED,
        "status": status,
        "current_site_id": "",
    }


async def collect(store, table):
    return [row async for row in store.scan(table)]


@pytest.mark.unit
@pytest.mark.asyncio
class TestAppendAndScan:

    async def test_new_store_is_empty(self, store):
        assert await store.row_count(BAGS) == 0
        assert await store.row_count(USAGE_RECORDS) == 0
        assert await collect(store, BAGS) == []

    async def test_append_visible_to_next_scan(self, store):
        await store.append(BAGS, bag_row("A"))
        rows = await collect(store, BAGS)
        assert [r["bag_id"] for r in rows] == ["A"]
        assert "row_id" not in rows[0]

    async def test_batch_append_preserves_order(self, store):
        await store.append(BAGS, bag_row("first"))
        appended = await store.append_batch(BAGS, [bag_row(f"id-{i}") for i in range(5)])
        assert appended == 5
        rows = await collect(store, BAGS)
        assert [r["bag_id"] for r in rows] == ["first"] + [f"id-{i}" for i in range(5)]
        assert await store.row_count(BAGS) == 6

    async def test_empty_batch_is_noop(self, store):
        assert await store.append_batch(BAGS, []) == 0
        assert await store.row_count(BAGS) == 0

    async def test_scan_is_restartable(self, store):
        await store.append_batch(BAGS, [bag_row("A"), bag_row("B")])
        first = await collect(store, BAGS)
        second = await collect(store, BAGS)
        assert first == second
        assert len(first) == 2

    async def test_closed_early_scan_returns_connection(self, store):
        await store.append_batch(BAGS, [bag_row(f"id-{i}") for i in range(3)])
        pool = store.engine.sync_engine.pool

        async with aclosing(store.scan(BAGS)) as rows:
            async for row in rows:
                assert row["bag_id"] == "id-0"
                break
        assert pool.checkedout() == 0

        await store.append(BAGS, bag_row("after"))
        assert await store.row_count(BAGS) == 4

    async def test_no_store_level_uniqueness(self, store):
        # Uniqueness is the registrar's job; the store accepts duplicates
        await store.append(BAGS, bag_row("SAME"))
        await store.append(BAGS, bag_row("SAME"))
        assert await store.row_count(BAGS) == 2

    async def test_transaction_rolls_back_on_error(self, store):
        with pytest.raises(RuntimeError):
            async with store.transaction() as conn:
                await store.append(BAGS, bag_row("A"), conn=conn)
                raise RuntimeError("abort")
        assert await store.row_count(BAGS) == 0

    async def test_unknown_table(self, store):
        with pytest.raises(SchemaMissing):
            await store.row_count("Plants")


@pytest.mark.unit
@pytest.mark.asyncio
class TestBagLookups:

    async def test_find_bag(self, store):
        await store.append_batch(BAGS, [bag_row("A"), bag_row("B")])
        bag = await store.find_bag("B")
        assert bag["bag_id"] == "B"
        assert bag["status"] == "PRODUCED"
        assert await store.find_bag("missing") is None

    async def test_mark_bag_used_only_from_produced(self, store):
        await store.append(BAGS, bag_row("A"))
        assert await store.mark_bag_used("A", "SITE-9") == 1
        assert await store.mark_bag_used("A", "SITE-10") == 0
        bag = await store.find_bag("A")
        assert bag["status"] == "USED"
        assert bag["current_site_id"] == "SITE-9"

    async def test_prefix_lookup_escapes_wildcards(self, store):
        await store.append_batch(BAGS, [bag_row("CEM-P%1-X"), bag_row("CEM-PZ1-X")])
        assert await store.bag_ids_with_prefix("CEM-P%1-") == ["CEM-P%1-X"]

    async def test_usage_for_bag(self, store):
        for n in range(2):
            await store.append(USAGE_RECORDS, {
                "usage_id": f"u{n}",
                "bag_id": "A",
                "worker_id": "w1",
                "site_id": "S1",
                "timestamp": CREATED,
                "photo_flag": "NO_PHOTO",
            })
        usage = await store.usage_for_bag("A")
        assert [u["usage_id"] for u in usage] == ["u0", "u1"]


@pytest.mark.unit
@pytest.mark.asyncio
class TestProvisioning:

    async def test_schema_missing_without_auto_provision(self, settings_for):
        settings = settings_for(auto_provision=False)
        store = LedgerStore(create_ledger_engine(settings), auto_provision=False)
        try:
            with pytest.raises(SchemaMissing) as exc_info:
                await store.row_count(BAGS)
            assert exc_info.value.error_code == "SCHEMA_MISSING"
        finally:
            await store.dispose()

    async def test_provisioned_schema_passes_check(self, settings_for):
        settings = settings_for()
        provisioning = LedgerStore(create_ledger_engine(settings), auto_provision=True)
        await provisioning.ensure_schema()
        await provisioning.ensure_schema()  # idempotent
        await provisioning.dispose()

        strict = LedgerStore(create_ledger_engine(settings), auto_provision=False)
        try:
            assert await strict.row_count(BAGS) == 0
        finally:
            await strict.dispose()

    async def test_reads_check_only_their_table(self, settings_for):
        settings = settings_for()
        provisioning = LedgerStore(create_ledger_engine(settings), auto_provision=True)
        await provisioning.ensure_schema()
        async with provisioning.engine.begin() as conn:
            await conn.execute(text("DROP TABLE usage_records"))
        await provisioning.dispose()

        strict = LedgerStore(create_ledger_engine(settings), auto_provision=False)
        try:
            assert await strict.row_count(BAGS) == 0
            with pytest.raises(SchemaMissing) as exc_info:
                await strict.row_count(USAGE_RECORDS)
            assert exc_info.value.table == USAGE_RECORDS
            with pytest.raises(SchemaMissing):
                async with strict.transaction():
                    pass
        finally:
            await strict.dispose()

    async def test_unreachable_store(self, tmp_path, settings_for):
        missing_dir = tmp_path / "does" / "not" / "exist"
        settings = settings_for(
            database_url=f"sqlite+aiosqlite:///{(missing_dir / 'ledger.db').as_posix()}",
        )
        store = LedgerStore(create_ledger_engine(settings))
        try:
            with pytest.raises(StoreUnavailable) as exc_info:
                await store.row_count(BAGS)
            assert exc_info.value.status_code == 503
        finally:
            await store.dispose()
