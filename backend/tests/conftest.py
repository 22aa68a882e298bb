import os
import uuid
from types import SimpleNamespace

import pytest
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from db.database import Base, create_db_and_tables
from db.media import Media
from services.inventory_service import InventoryService
from services.records import StockItem
from services.stock_store import InMemoryStockStore, SqlAlchemyStockStore


@pytest.fixture
def staff_id():
    return uuid.uuid4()


@pytest.fixture
def memory_store():
    return InMemoryStockStore()


@pytest.fixture
def service(memory_store):
    return InventoryService(memory_store)


@pytest.fixture
def add_item(memory_store):
    """Register a StockItem in the in-memory store and return its id."""
    counter = iter(range(1, 10_000))

    def _add(inventory=None, track_inventory=True, low_stock_threshold=None, bundle_sizes=None, name=None):
        item = StockItem(
            id=next(counter),
            track_inventory=track_inventory,
            inventory=dict(inventory) if inventory is not None else None,
            low_stock_threshold=low_stock_threshold,
            bundle_sizes=bundle_sizes,
            name=name,
        )
        memory_store.add_item(item)
        return item.id

    return _add


@pytest.fixture
async def sql_session_maker(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'inventory.db'}")
    await create_db_and_tables(engine)
    yield async_sessionmaker(engine, expire_on_commit=False)
    await engine.dispose()


@pytest.fixture
def sql_service(sql_session_maker):
    return InventoryService(SqlAlchemyStockStore(sql_session_maker))


@pytest.fixture
def add_media(sql_session_maker):
    """Insert a media row directly and return its id."""

    async def _add(name="The Way to Heaven", **kwargs):
        async with sql_session_maker() as db:
            media = Media(name=name, **kwargs)
            db.add(media)
            await db.commit()
            await db.refresh(media)
            return media.id

    return _add


@pytest.fixture
def staff_user(staff_id):
    return SimpleNamespace(id=staff_id, email="staff@example.com", is_active=True, is_superuser=True)


@pytest.fixture
async def pg_engine():
    """Postgres engine from TEST_DATABASE_URL; tests using it skip when unset."""
    url = os.getenv("TEST_DATABASE_URL")
    if not url:
        pytest.skip("TEST_DATABASE_URL not set")
    engine = create_async_engine(url)
    await create_db_and_tables(engine)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def pg_service(pg_engine):
    return InventoryService(SqlAlchemyStockStore(async_sessionmaker(pg_engine, expire_on_commit=False)))
