"""Management CLI for the ledger store.

Usage:
    python -m cemtrack.cli init-db                    # Create the ledger tables
    python -m cemtrack.cli stats                      # Show bag / usage counts
    python -m cemtrack.cli register PLANT BATCH N     # Register N bags
"""

import asyncio
import sys

from cemtrack.config import settings
from cemtrack.logging_config import configure_logging
from cemtrack.middleware.exceptions import CemTrackException
from cemtrack.services.ledger import Ledger
from cemtrack.services.ledger_store import BAGS, USAGE_RECORDS


async def init_db():
    """Provision the ledger tables regardless of ``auto_provision``."""
    ledger = Ledger.from_settings(settings.model_copy(update={"auto_provision": True}))
    try:
        await ledger.store.ensure_schema()
        print(f"  Ledger tables ready at {settings.database_url}")
    finally:
        await ledger.close()


async def stats():
    ledger = Ledger.from_settings(settings)
    try:
        bags = await ledger.store.row_count(BAGS)
        usage = await ledger.store.row_count(USAGE_RECORDS)
        print(f"  bags:          {bags}")
        print(f"  usage records: {usage}")
    finally:
        await ledger.close()


async def register(plant: str, batch: str, count: int):
    ledger = Ledger.from_settings(settings)
    try:
        result = await ledger.registrar.register_batch(plant, batch, count)
        for bag_id in result["ids"]:
            print(f"  {bag_id}")
        print(f"\n{result['count']} bag(s) registered")
    finally:
        await ledger.close()


def main(argv: list[str]) -> int:
    configure_logging(settings)
    cmd = argv[0] if argv else ""
    try:
        if cmd == "init-db":
            asyncio.run(init_db())
        elif cmd == "stats":
            asyncio.run(stats())
        elif cmd == "register" and len(argv) == 4 and argv[3].isdigit():
            asyncio.run(register(argv[1], argv[2], int(argv[3])))
        else:
            print(__doc__)
            return 2
    except CemTrackException as exc:
        print(f"  FAILED: {exc.error_code}: {exc.message}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main(sys.argv[1:]))
