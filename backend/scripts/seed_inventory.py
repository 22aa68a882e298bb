"""
Seed demo tracts with inventory tracking enabled and some opening stock.

Opening stock is booked through the inventory service so every tract has a
matching movement in inventory_movements.

Run:
- inside backend/: `uv run python scripts/seed_inventory.py`
- from repo root: `uv run python backend/scripts/seed_inventory.py --dry-run`
"""

import argparse
import asyncio
import sys
from pathlib import Path


# Allow running from repo root by ensuring `backend/` is on sys.path
BACKEND_DIR = Path(__file__).resolve().parents[1]
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

from sqlalchemy import select  # noqa: E402

from core.logging_config import configure_logging  # noqa: E402
from db.database import async_session_maker, create_db_and_tables  # noqa: E402
from db.media import Media  # noqa: E402
from services.inventory_service import InventoryService  # noqa: E402
from services.stock_store import SqlAlchemyStockStore  # noqa: E402


# name, bundle sizes, low stock threshold, opening stock (tracts)
SEED_MEDIA = [
    ("The Way to Heaven", [1, 20, 50], 200, 1270),
    ("Are You Good Enough?", [1, 20, 50], 100, 540),
    ("Million Dollar Question", [1, 25, 100], 250, 160),
    ("Gospel of John (booklet)", [1, 10], 20, 35),
]


async def _ensure_media(name: str, bundle_sizes: list[int], dry_run: bool) -> int | None:
    async with async_session_maker() as db:
        res = await db.execute(select(Media).where(Media.name == name))
        media = res.scalar_one_or_none()
        if media is not None:
            return media.id
        if dry_run:
            return None
        media = Media(name=name, type="Gospel Tract", bundle_sizes=bundle_sizes, is_visible=True)
        db.add(media)
        await db.commit()
        await db.refresh(media)
        return media.id


async def seed(dry_run: bool = False) -> None:
    await create_db_and_tables()
    service = InventoryService(SqlAlchemyStockStore(async_session_maker))

    for name, bundle_sizes, threshold, opening in SEED_MEDIA:
        media_id = await _ensure_media(name, bundle_sizes, dry_run)
        if media_id is None:
            print(f"[dry-run] would create '{name}' with {opening} tracts in bundles {bundle_sizes}")
            continue

        if dry_run:
            print(f"[dry-run] '{name}' ({media_id}) already exists; would reset it to {opening} tracts")
            continue
        await service.enable_tracking(media_id, True, bundle_sizes=bundle_sizes, low_stock_threshold=threshold)
        item = await service.restore_stock(media_id, opening, reason="Opening stock")
        print(f"Seeded '{name}' ({media_id}): {item.inventory} = {item.total_units} tracts")


if __name__ == "__main__":
    p = argparse.ArgumentParser()
    p.add_argument("--dry-run", action="store_true", help="Do not write, just print what would change")
    args = p.parse_args()

    configure_logging("INFO")
    asyncio.run(seed(dry_run=args.dry_run))
