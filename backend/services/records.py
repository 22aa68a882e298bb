"""Plain records passed between the inventory service and its stores."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from core.bundles import total_units


class MovementKind(str, Enum):
    DEDUCTION = "deduction"
    ADDITION = "addition"


@dataclass
class StockItem:
    """Inventory facet of a media row."""

    id: Any
    track_inventory: bool = False
    inventory: Optional[Dict[int, int]] = None
    low_stock_threshold: Optional[int] = None
    bundle_sizes: Optional[List[int]] = None
    name: Optional[str] = None

    @property
    def is_tracked(self) -> bool:
        return bool(self.track_inventory) and self.inventory is not None

    @property
    def total_units(self) -> int:
        return total_units(self.inventory)

    def copy(self) -> "StockItem":
        return StockItem(
            id=self.id,
            track_inventory=self.track_inventory,
            inventory=dict(self.inventory) if self.inventory is not None else None,
            low_stock_threshold=self.low_stock_threshold,
            bundle_sizes=list(self.bundle_sizes) if self.bundle_sizes is not None else None,
            name=self.name,
        )


@dataclass
class MovementRecord:
    stock_item_id: Any
    quantity_change: int
    quantity_after: int
    kind: MovementKind
    reason: Optional[str] = None
    order_id: Optional[int] = None
    changed_by: Any = None
    # signed change in bundle count per bundle size
    denomination_deltas: Dict[int, int] = field(default_factory=dict)
    id: Optional[int] = None
    created_at: Optional[datetime] = None


@dataclass
class LineOutcome:
    """Result of one order line pushed through deduct/restore."""

    stock_item_id: Any
    quantity: int
    item: Optional[StockItem] = None
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class LedgerDrift:
    stock_item_id: Any
    current_total: int
    replayed_total: int
    last_quantity_after: int
