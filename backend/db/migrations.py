"""Database migration utilities

The ``media`` catalog is shared with the rest of the site and existed before
stock was tracked, so deployments can have a ``media`` table without the
inventory columns. ``create_all`` never alters an existing table; these
columns are added here instead. ``inventory_movements`` always ships with
its full column set and is left to ``create_all``.
"""
import logging

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine

logger = logging.getLogger(__name__)

MEDIA_INVENTORY_COLUMNS = {
    "track_inventory": "BOOLEAN NOT NULL DEFAULT FALSE",
    "inventory_stock": "JSONB NULL",
    "low_stock_threshold": "INTEGER NULL",
    "bundle_sizes": "JSONB NULL",
}


async def _existing_columns(conn, table_name: str) -> set:
    result = await conn.execute(
        text("""
            SELECT column_name
            FROM information_schema.columns
            WHERE table_name = :table_name
        """),
        {"table_name": table_name},
    )
    return {row[0] for row in result.fetchall()}


async def add_inventory_columns_if_missing(engine: AsyncEngine) -> list:
    """Add the inventory columns to a pre-existing ``media`` table (Postgres)."""
    added = []
    async with engine.begin() as conn:
        existing = await _existing_columns(conn, "media")
        for column_name, ddl in MEDIA_INVENTORY_COLUMNS.items():
            if column_name in existing:
                continue
            logger.info("Adding %s column to media table...", column_name)
            await conn.execute(text(f"ALTER TABLE media ADD COLUMN {column_name} {ddl}"))
            added.append(column_name)
    if not added:
        logger.info("Inventory columns already present")
    return added
