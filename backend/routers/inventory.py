import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query, status

from core.auth import current_active_superuser, current_active_user
from core.config import settings
from db.database import async_session_maker
from db.users import User
from schemas.inventory import (
    InventoryMovementOut,
    LowStockResponse,
    StockAdjustRequest,
    StockCheckOut,
    StockItemOut,
    TrackingUpdateRequest,
)
from services.exceptions import (
    InsufficientStock,
    InventoryError,
    InvalidQuantity,
    NotInitialized,
    StockItemNotFound,
    TrackingDisabled,
)
from services.inventory_service import InventoryService
from services.stock_store import SqlAlchemyStockStore

logger = logging.getLogger(__name__)

router = APIRouter()


def get_inventory_service() -> InventoryService:
    return InventoryService(
        SqlAlchemyStockStore(async_session_maker),
        default_bundle_sizes=settings.default_bundle_sizes,
    )


def _http_error(e: InventoryError) -> HTTPException:
    if isinstance(e, StockItemNotFound):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Media not found")
    if isinstance(e, InsufficientStock):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    if isinstance(e, (TrackingDisabled, NotInitialized, InvalidQuantity)):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    logger.error("Unhandled inventory error: %r", e)
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to update inventory")


@router.get("/low-stock", response_model=LowStockResponse)
async def low_stock(
    user: User = Depends(current_active_user),
    service: InventoryService = Depends(get_inventory_service),
):
    items = await service.get_low_stock_items()
    return LowStockResponse(items=[StockItemOut.model_validate(i) for i in items])


@router.put("/{media_id}/tracking", response_model=StockItemOut)
async def update_tracking(
    media_id: int,
    payload: TrackingUpdateRequest,
    user: User = Depends(current_active_superuser),
    service: InventoryService = Depends(get_inventory_service),
):
    try:
        item = await service.enable_tracking(
            media_id,
            payload.track_inventory,
            bundle_sizes=payload.bundle_sizes,
            low_stock_threshold=payload.low_stock_threshold,
            changed_by=user.id,
        )
    except InventoryError as e:
        raise _http_error(e)
    return StockItemOut.model_validate(item)


@router.put("/{media_id}/adjust", response_model=StockItemOut)
async def adjust_stock(
    media_id: int,
    payload: StockAdjustRequest,
    user: User = Depends(current_active_superuser),
    service: InventoryService = Depends(get_inventory_service),
):
    try:
        item = await service.set_stock(
            media_id,
            payload.bundle_size,
            payload.quantity,
            changed_by=user.id,
            reason=payload.reason or "Manual adjustment",
        )
    except InventoryError as e:
        raise _http_error(e)
    return StockItemOut.model_validate(item)


@router.get("/{media_id}/movements", response_model=List[InventoryMovementOut])
async def list_movements(
    media_id: int,
    user: User = Depends(current_active_user),
    service: InventoryService = Depends(get_inventory_service),
):
    try:
        movements = await service.get_movements(media_id)
    except InventoryError as e:
        raise _http_error(e)
    return [InventoryMovementOut.model_validate(m) for m in movements]


@router.get("/{media_id}/check", response_model=StockCheckOut)
async def check_stock(
    media_id: int,
    quantity: int = Query(..., ge=1),
    user: User = Depends(current_active_user),
    service: InventoryService = Depends(get_inventory_service),
):
    try:
        available = await service.check_stock(media_id, quantity)
        low = await service.is_low_stock(media_id)
    except InventoryError as e:
        raise _http_error(e)
    return StockCheckOut(media_id=media_id, quantity=quantity, available=available, low_stock=low)
