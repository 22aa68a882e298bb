"""
Replay inventory_movements for every tracked media item and report drift.

An item is healthy when its movements sum to its current tract count and the
latest movement's quantity_after matches it too. Exit status is 1 on drift.

Run locally:
  cd backend && PYTHONPATH=. uv run python scripts/verify_inventory_ledger.py
"""

from __future__ import annotations

import asyncio
import sys

from core.logging_config import configure_logging
from db.database import async_session_maker
from services.inventory_service import InventoryService
from services.stock_store import SqlAlchemyStockStore


async def main() -> int:
    service = InventoryService(SqlAlchemyStockStore(async_session_maker))
    drifts = await service.audit_ledger()
    if not drifts:
        print("Inventory ledger consistent for all tracked media")
        return 0
    for d in drifts:
        print(
            f"media {d.stock_item_id}: on hand {d.current_total}, "
            f"movements sum {d.replayed_total}, last quantity_after {d.last_quantity_after}"
        )
    return 1


if __name__ == "__main__":
    configure_logging("WARNING")
    sys.exit(asyncio.run(main()))
