"""Bundle-based inventory ledger.

Stock for a media item is held as bundles (packs of 1, 20, 50 tracts...).
Orders deduct using the largest bundles first so the fewest packages are
picked, cancellations put units back the same way, and admins can set a
bundle count directly. Every change to the bundle map is written in the same
transaction as its movement row, and the row is locked for the duration, so
two orders racing for the last packs cannot both succeed.

Items that do not track inventory are accepted by deduct/restore and left
alone; the order flow calls these for every line regardless of media type.
"""

import logging
from typing import Any, Iterable, List, Optional, Sequence, Tuple

from core.bundles import (
    DEFAULT_BUNDLE_SIZES,
    LOOSE_UNIT_BUNDLE,
    apply_deltas,
    describe_bundles,
    fill_largest_first,
    normalize_bundle_sizes,
    take_largest_first,
    total_units,
    validate_bundle_size,
)
from services.exceptions import (
    InsufficientStock,
    InvalidQuantity,
    NotInitialized,
    TrackingDisabled,
)
from services.records import LedgerDrift, LineOutcome, MovementKind, MovementRecord, StockItem
from services.stock_store import StockStore, StockTransaction

logger = logging.getLogger(__name__)

ORDER_PLACED_REASON = "Order placed"
ORDER_CANCELLED_REASON = "Order cancelled"
MANUAL_ADJUSTMENT_REASON = "Manual adjustment"
REINITIALIZED_REASON = "Inventory reinitialized"


def _positive_quantity(value: Any, name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise InvalidQuantity(f"{name} must be a positive integer, got {value!r}")
    return value


def _bundle_sizes(sizes: Iterable[Any]) -> List[int]:
    try:
        return normalize_bundle_sizes(sizes)
    except ValueError as e:
        raise InvalidQuantity(str(e)) from e


class InventoryService:
    def __init__(self, store: StockStore, default_bundle_sizes: Optional[Sequence[int]] = None):
        self.store = store
        self.default_bundle_sizes = _bundle_sizes(default_bundle_sizes or DEFAULT_BUNDLE_SIZES)

    # -------------------------------------------------------------------
    # Order flow
    # -------------------------------------------------------------------
    async def deduct_stock(
        self,
        item_id,
        quantity_ordered: int,
        order_id: Optional[int] = None,
        reason: Optional[str] = None,
    ) -> StockItem:
        """Remove ``quantity_ordered`` tracts using the largest bundles first.

        The bundles taken must add up to the quantity exactly; otherwise
        InsufficientStock is raised and nothing is written. Untracked items
        are returned unchanged.
        """
        quantity_ordered = _positive_quantity(quantity_ordered, "quantity_ordered")

        async with self.store.transaction() as tx:
            item = await tx.get_item(item_id, lock=True)
            if not item.is_tracked:
                return item

            used = take_largest_first(item.inventory, quantity_ordered)
            if used is None:
                available = total_units(item.inventory)
                logger.warning(
                    "Rejected deduction of %s from media %s: no exact bundle combination (on hand %s)",
                    quantity_ordered, item_id, available,
                )
                raise InsufficientStock(item_id, quantity_ordered, available)

            deltas = {size: -count for size, count in used.items()}
            await self._commit_change(
                tx,
                item,
                deltas,
                kind=MovementKind.DEDUCTION,
                quantity_change=-quantity_ordered,
                reason=reason or f"Deducted: {describe_bundles(used)}",
                order_id=order_id,
            )
            return item

    async def restore_stock(
        self,
        item_id,
        quantity: int,
        order_id: Optional[int] = None,
        reason: Optional[str] = None,
    ) -> StockItem:
        """Put ``quantity`` tracts back, filling the largest bundles first.

        Whatever the configured bundles cannot hold exactly is kept as loose
        units in the size-1 bundle (created if missing), so no tract is lost.
        """
        quantity = _positive_quantity(quantity, "quantity")

        async with self.store.transaction() as tx:
            item = await tx.get_item(item_id, lock=True)
            if not item.is_tracked:
                return item

            added, remainder = fill_largest_first(item.inventory.keys(), quantity)
            if remainder:
                added[LOOSE_UNIT_BUNDLE] = added.get(LOOSE_UNIT_BUNDLE, 0) + remainder
                logger.info(
                    "Restored %s loose tracts to media %s outside configured bundles",
                    remainder, item_id,
                )

            await self._commit_change(
                tx,
                item,
                added,
                kind=MovementKind.ADDITION,
                quantity_change=quantity,
                reason=reason or f"Restored: {describe_bundles(added)}",
                order_id=order_id,
            )
            return item

    async def deduct_order_lines(
        self,
        order_id: Optional[int],
        lines: Iterable[Tuple[Any, int]],
        reason: Optional[str] = ORDER_PLACED_REASON,
    ) -> List[LineOutcome]:
        """Deduct each ``(item_id, quantity)`` line in its own transaction.

        A line that cannot be fulfilled is reported in its outcome; lines
        already deducted stay deducted. The order flow decides what to do.
        """
        outcomes = []
        for item_id, quantity in lines:
            try:
                item = await self.deduct_stock(item_id, quantity, order_id=order_id, reason=reason)
            except InsufficientStock as e:
                outcomes.append(LineOutcome(stock_item_id=item_id, quantity=quantity, error=e))
                continue
            outcomes.append(LineOutcome(stock_item_id=item_id, quantity=quantity, item=item))
        return outcomes

    async def restore_order_lines(
        self,
        order_id: Optional[int],
        lines: Iterable[Tuple[Any, int]],
        reason: Optional[str] = ORDER_CANCELLED_REASON,
    ) -> List[LineOutcome]:
        outcomes = []
        for item_id, quantity in lines:
            item = await self.restore_stock(item_id, quantity, order_id=order_id, reason=reason)
            outcomes.append(LineOutcome(stock_item_id=item_id, quantity=quantity, item=item))
        return outcomes

    # -------------------------------------------------------------------
    # Admin
    # -------------------------------------------------------------------
    async def set_stock(
        self,
        item_id,
        bundle_size: int,
        new_quantity: int,
        changed_by,
        reason: Optional[str] = MANUAL_ADJUSTMENT_REASON,
    ) -> StockItem:
        """Set the number of bundles held for one bundle size (not a delta)."""
        try:
            bundle_size = validate_bundle_size(bundle_size)
        except ValueError as e:
            raise InvalidQuantity(str(e)) from e
        if isinstance(new_quantity, bool) or not isinstance(new_quantity, int) or new_quantity < 0:
            raise InvalidQuantity(f"quantity must be a non-negative integer, got {new_quantity!r}")
        if changed_by is None:
            raise ValueError("changed_by is required for manual adjustments")

        async with self.store.transaction() as tx:
            item = await tx.get_item(item_id, lock=True)
            if not item.track_inventory:
                raise TrackingDisabled(item_id)
            if item.inventory is None:
                raise NotInitialized(item_id)

            old_quantity = item.inventory.get(bundle_size, 0)
            delta = new_quantity - old_quantity
            quantity_change = delta * bundle_size

            await self._commit_change(
                tx,
                item,
                {bundle_size: delta},
                kind=MovementKind.ADDITION if quantity_change >= 0 else MovementKind.DEDUCTION,
                quantity_change=quantity_change,
                reason=reason or f"Adjusted bundle {bundle_size}: {old_quantity} -> {new_quantity}",
                changed_by=changed_by,
            )
            return item

    async def initialize_inventory(
        self,
        item_id,
        bundle_sizes: Optional[Iterable[int]] = None,
        changed_by=None,
    ) -> StockItem:
        """Replace the bundle map with ``{size: 0}`` for each size.

        The tracking flag is left as it is. Prior sizes are not merged in.
        """
        sizes = _bundle_sizes(bundle_sizes if bundle_sizes is not None else self.default_bundle_sizes)
        async with self.store.transaction() as tx:
            item = await tx.get_item(item_id, lock=True)
            await self._reseed(tx, item, sizes, changed_by)
            await tx.save_item(item)
            return item

    async def enable_tracking(
        self,
        item_id,
        track_inventory: bool,
        bundle_sizes: Optional[Iterable[int]] = None,
        low_stock_threshold: Optional[int] = None,
        changed_by=None,
    ) -> StockItem:
        """Turn tracking on or off for a media item.

        Turning it on seeds the bundle map from ``bundle_sizes``, else the
        media's configured sizes, else a single size-1 bundle, and sets the
        threshold. Turning it off keeps the map and threshold for history.
        """
        if low_stock_threshold is not None and (
            isinstance(low_stock_threshold, bool)
            or not isinstance(low_stock_threshold, int)
            or low_stock_threshold < 0
        ):
            raise InvalidQuantity(f"low_stock_threshold must be >= 0, got {low_stock_threshold!r}")

        async with self.store.transaction() as tx:
            item = await tx.get_item(item_id, lock=True)
            item.track_inventory = bool(track_inventory)
            if item.track_inventory:
                sizes = _bundle_sizes(bundle_sizes or item.bundle_sizes or [LOOSE_UNIT_BUNDLE])
                await self._reseed(tx, item, sizes, changed_by)
                item.low_stock_threshold = low_stock_threshold
            await tx.save_item(item)
            logger.info("Inventory tracking for media %s set to %s", item_id, item.track_inventory)
            return item

    # -------------------------------------------------------------------
    # Reporting
    # -------------------------------------------------------------------
    async def check_stock(self, item_id, required_quantity: int) -> bool:
        async with self.store.transaction() as tx:
            item = await tx.get_item(item_id)
        if not item.is_tracked:
            return True
        return total_units(item.inventory) >= required_quantity

    async def is_low_stock(self, item_id) -> bool:
        async with self.store.transaction() as tx:
            item = await tx.get_item(item_id)
        return self._below_threshold(item)

    async def get_low_stock_items(self) -> List[StockItem]:
        # TODO: filter in SQL once media carries a denormalized total_units column
        async with self.store.transaction() as tx:
            candidates = await tx.list_threshold_items()
        return [item for item in candidates if self._below_threshold(item)]

    async def count_low_stock_items(self) -> int:
        return len(await self.get_low_stock_items())

    async def get_movements(self, item_id) -> List[MovementRecord]:
        async with self.store.transaction() as tx:
            await tx.get_item(item_id)
            return await tx.list_movements(item_id)

    async def audit_ledger(self) -> List[LedgerDrift]:
        """Replay every tracked item's movements and report the ones that disagree.

        An item is consistent when the summed ``quantity_change`` and the last
        ``quantity_after`` both equal its current total units.
        """
        drifts = []
        async with self.store.transaction() as tx:
            for item in await tx.list_tracked_items():
                movements = await tx.list_movements(item.id)
                replayed = sum(m.quantity_change for m in movements)
                last_after = movements[-1].quantity_after if movements else 0
                current = total_units(item.inventory)
                if replayed != current or last_after != current:
                    drifts.append(
                        LedgerDrift(
                            stock_item_id=item.id,
                            current_total=current,
                            replayed_total=replayed,
                            last_quantity_after=last_after,
                        )
                    )
        for drift in drifts:
            logger.warning("Ledger drift on media %s: %s", drift.stock_item_id, drift)
        return drifts

    # -------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------
    @staticmethod
    def _below_threshold(item: StockItem) -> bool:
        if not item.is_tracked or item.low_stock_threshold is None:
            return False
        return total_units(item.inventory) <= item.low_stock_threshold

    async def _commit_change(
        self,
        tx: StockTransaction,
        item: StockItem,
        deltas,
        *,
        kind: MovementKind,
        quantity_change: int,
        reason: Optional[str],
        order_id: Optional[int] = None,
        changed_by=None,
    ) -> MovementRecord:
        item.inventory = apply_deltas(item.inventory, deltas)
        await tx.save_item(item)
        record = await tx.add_movement(
            MovementRecord(
                stock_item_id=item.id,
                quantity_change=quantity_change,
                quantity_after=total_units(item.inventory),
                kind=kind,
                reason=reason,
                order_id=order_id,
                changed_by=changed_by,
                denomination_deltas={size: d for size, d in deltas.items() if d},
            )
        )
        logger.info(
            "Media %s %s %+d tracts -> %s (order=%s, by=%s)",
            item.id, kind.value, quantity_change, record.quantity_after, order_id, changed_by,
        )
        return record

    async def _reseed(self, tx: StockTransaction, item: StockItem, sizes: List[int], changed_by) -> None:
        # Zeroing a map that still held tracts is logged so the ledger keeps adding up.
        held = total_units(item.inventory)
        previous = dict(item.inventory or {})
        item.inventory = {size: 0 for size in sizes}
        if held:
            await tx.add_movement(
                MovementRecord(
                    stock_item_id=item.id,
                    quantity_change=-held,
                    quantity_after=0,
                    kind=MovementKind.DEDUCTION,
                    reason=REINITIALIZED_REASON,
                    changed_by=changed_by,
                    denomination_deltas={size: -count for size, count in previous.items() if count},
                )
            )
