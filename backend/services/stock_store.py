"""Storage for the inventory ledger.

A store hands out transactions. Everything done through one transaction is
committed together when the ``async with`` block exits normally and discarded
if it raises, so a failed deduction never leaves a half-applied bundle map or
an orphan movement behind.
"""

import asyncio
import itertools
from abc import ABC, abstractmethod
from collections import defaultdict
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Dict, Iterable, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from core.bundles import dump_inventory, load_inventory
from db.inventory.movement import InventoryMovement as InventoryMovementModel
from db.media import Media as MediaModel
from services.exceptions import StockItemNotFound
from services.records import MovementKind, MovementRecord, StockItem


class StockTransaction(ABC):
    @abstractmethod
    async def get_item(self, item_id, lock: bool = False) -> StockItem:
        """Load one item. ``lock=True`` holds a write lock until the transaction ends."""

    @abstractmethod
    async def save_item(self, item: StockItem) -> None:
        ...

    @abstractmethod
    async def add_movement(self, record: MovementRecord) -> MovementRecord:
        ...

    @abstractmethod
    async def list_threshold_items(self) -> List[StockItem]:
        """Tracked items that have a bundle map and a low-stock threshold."""

    @abstractmethod
    async def list_tracked_items(self) -> List[StockItem]:
        ...

    @abstractmethod
    async def list_movements(self, item_id) -> List[MovementRecord]:
        """Movements for one item in creation order."""


class StockStore(ABC):
    @abstractmethod
    def transaction(self) -> "AsyncIterator[StockTransaction]":
        ...


# ---------------------------------------------------------------------------
# SQLAlchemy
# ---------------------------------------------------------------------------
def select_media(item_id, lock: bool = False):
    stmt = select(MediaModel).where(MediaModel.id == item_id)
    if lock:
        # row lock held until commit/rollback; serializes writers on one item
        stmt = stmt.with_for_update()
    return stmt


def _item_from_row(media: MediaModel) -> StockItem:
    return StockItem(
        id=media.id,
        track_inventory=bool(media.track_inventory),
        inventory=load_inventory(media.inventory_stock),
        low_stock_threshold=media.low_stock_threshold,
        bundle_sizes=[int(s) for s in media.bundle_sizes] if media.bundle_sizes else None,
        name=media.name,
    )


def _movement_from_row(row: InventoryMovementModel) -> MovementRecord:
    return MovementRecord(
        id=row.id,
        stock_item_id=row.media_id,
        quantity_change=int(row.quantity_change),
        quantity_after=int(row.quantity_after),
        kind=MovementKind(row.type),
        reason=row.reason,
        order_id=row.order_id,
        changed_by=row.changed_by,
        denomination_deltas=load_inventory(row.denomination_deltas) or {},
        created_at=row.created_at,
    )


class _SqlAlchemyStockTransaction(StockTransaction):
    def __init__(self, session: AsyncSession):
        self._session = session
        self._rows: Dict[Any, MediaModel] = {}

    async def get_item(self, item_id, lock: bool = False) -> StockItem:
        res = await self._session.execute(select_media(item_id, lock=lock))
        media = res.scalar_one_or_none()
        if media is None:
            raise StockItemNotFound(item_id)
        self._rows[media.id] = media
        return _item_from_row(media)

    async def save_item(self, item: StockItem) -> None:
        media = self._rows.get(item.id)
        if media is None:
            media = await self._session.get(MediaModel, item.id)
            if media is None:
                raise StockItemNotFound(item.id)
        media.track_inventory = bool(item.track_inventory)
        # always assign a fresh dict so the JSON column is flagged dirty
        media.inventory_stock = dump_inventory(item.inventory)
        media.low_stock_threshold = item.low_stock_threshold
        await self._session.flush()

    async def add_movement(self, record: MovementRecord) -> MovementRecord:
        row = InventoryMovementModel(
            media_id=record.stock_item_id,
            quantity_change=record.quantity_change,
            quantity_after=record.quantity_after,
            type=MovementKind(record.kind).value,
            reason=record.reason,
            denomination_deltas=dump_inventory(record.denomination_deltas),
            order_id=record.order_id,
            changed_by=record.changed_by,
        )
        self._session.add(row)
        await self._session.flush()
        await self._session.refresh(row)
        return _movement_from_row(row)

    async def list_threshold_items(self) -> List[StockItem]:
        res = await self._session.execute(
            select(MediaModel)
            .where(MediaModel.track_inventory.is_(True))
            .where(MediaModel.inventory_stock.isnot(None))
            .where(MediaModel.low_stock_threshold.isnot(None))
            .order_by(MediaModel.id)
        )
        return [_item_from_row(m) for m in res.scalars().all()]

    async def list_tracked_items(self) -> List[StockItem]:
        res = await self._session.execute(
            select(MediaModel)
            .where(MediaModel.track_inventory.is_(True))
            .where(MediaModel.inventory_stock.isnot(None))
            .order_by(MediaModel.id)
        )
        return [_item_from_row(m) for m in res.scalars().all()]

    async def list_movements(self, item_id) -> List[MovementRecord]:
        res = await self._session.execute(
            select(InventoryMovementModel)
            .where(InventoryMovementModel.media_id == item_id)
            .order_by(InventoryMovementModel.created_at.asc(), InventoryMovementModel.id.asc())
        )
        return [_movement_from_row(r) for r in res.scalars().all()]


class SqlAlchemyStockStore(StockStore):
    """Store backed by the ``media`` and ``inventory_movements`` tables."""

    def __init__(self, session_maker: async_sessionmaker):
        self._session_maker = session_maker

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[StockTransaction]:
        async with self._session_maker() as session:
            async with session.begin():
                yield _SqlAlchemyStockTransaction(session)


# ---------------------------------------------------------------------------
# In-memory
# ---------------------------------------------------------------------------
class _InMemoryStockTransaction(StockTransaction):
    def __init__(self, store: "InMemoryStockStore"):
        self._store = store
        self._held: List[asyncio.Lock] = []
        self._locked_ids: set = set()
        self._items: Dict[Any, StockItem] = {}
        self._movements: List[MovementRecord] = []

    async def get_item(self, item_id, lock: bool = False) -> StockItem:
        if item_id not in self._store.items:
            raise StockItemNotFound(item_id)
        if lock and item_id not in self._locked_ids:
            item_lock = self._store._locks[item_id]
            await item_lock.acquire()
            self._held.append(item_lock)
            self._locked_ids.add(item_id)
        # yield to the loop like a real storage round trip would
        await asyncio.sleep(0)
        if item_id in self._items:
            return self._items[item_id].copy()
        return self._store.items[item_id].copy()

    async def save_item(self, item: StockItem) -> None:
        if item.id not in self._store.items:
            raise StockItemNotFound(item.id)
        self._items[item.id] = item.copy()

    async def add_movement(self, record: MovementRecord) -> MovementRecord:
        staged = MovementRecord(
            stock_item_id=record.stock_item_id,
            quantity_change=record.quantity_change,
            quantity_after=record.quantity_after,
            kind=MovementKind(record.kind),
            reason=record.reason,
            order_id=record.order_id,
            changed_by=record.changed_by,
            denomination_deltas=dict(record.denomination_deltas),
            created_at=datetime.now(timezone.utc),
        )
        self._movements.append(staged)
        return staged

    async def list_threshold_items(self) -> List[StockItem]:
        return [i for i in await self.list_tracked_items() if i.low_stock_threshold is not None]

    async def list_tracked_items(self) -> List[StockItem]:
        items = []
        for item_id in sorted(self._store.items, key=str):
            item = self._items.get(item_id) or self._store.items[item_id]
            if item.is_tracked:
                items.append(item.copy())
        return items

    async def list_movements(self, item_id) -> List[MovementRecord]:
        committed = [m for m in self._store.movements if m.stock_item_id == item_id]
        staged = [m for m in self._movements if m.stock_item_id == item_id]
        return committed + staged

    def commit(self) -> None:
        for item_id, item in self._items.items():
            self._store.items[item_id] = item
        for record in self._movements:
            record.id = next(self._store._ids)
            self._store.movements.append(record)

    def release(self) -> None:
        for item_lock in reversed(self._held):
            item_lock.release()
        self._held.clear()
        self._locked_ids.clear()


class InMemoryStockStore(StockStore):
    """Dict-backed store with per-item locks, for tests."""

    def __init__(self, items: Optional[Iterable[StockItem]] = None):
        self.items: Dict[Any, StockItem] = {}
        self.movements: List[MovementRecord] = []
        self._locks: Dict[Any, asyncio.Lock] = defaultdict(asyncio.Lock)
        self._ids = itertools.count(1)
        for item in items or ():
            self.add_item(item)

    def add_item(self, item: StockItem) -> StockItem:
        self.items[item.id] = item.copy()
        return item

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[StockTransaction]:
        tx = _InMemoryStockTransaction(self)
        try:
            yield tx
            tx.commit()
        finally:
            tx.release()
