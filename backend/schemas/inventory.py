from datetime import datetime
from typing import Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from services.records import MovementKind


class StockAdjustRequest(BaseModel):
    bundle_size: int = Field(..., ge=1)
    quantity: int = Field(..., ge=0)
    reason: Optional[str] = None

    @field_validator("reason")
    @classmethod
    def _strip_nullable(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        v = v.strip()
        return v or None


class TrackingUpdateRequest(BaseModel):
    track_inventory: bool
    bundle_sizes: Optional[List[int]] = None
    low_stock_threshold: Optional[int] = Field(None, ge=0)

    @field_validator("bundle_sizes")
    @classmethod
    def _sizes_positive(cls, v: Optional[List[int]]) -> Optional[List[int]]:
        if v is None:
            return None
        if any(size < 1 for size in v):
            raise ValueError("bundle sizes must be >= 1")
        return v or None


class StockItemOut(BaseModel):
    id: int
    name: Optional[str] = None
    track_inventory: bool
    inventory: Optional[Dict[int, int]] = None
    total_units: int
    low_stock_threshold: Optional[int] = None
    bundle_sizes: Optional[List[int]] = None

    class Config:
        from_attributes = True


class LowStockResponse(BaseModel):
    items: List[StockItemOut]


class StockCheckOut(BaseModel):
    media_id: int
    quantity: int
    available: bool
    low_stock: bool


class InventoryMovementOut(BaseModel):
    id: Optional[int] = None
    stock_item_id: int
    quantity_change: int
    quantity_after: int
    kind: MovementKind
    reason: Optional[str] = None
    order_id: Optional[int] = None
    changed_by: Optional[UUID] = None
    denomination_deltas: Dict[int, int] = {}
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True
