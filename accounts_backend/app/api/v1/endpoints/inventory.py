"""
Inventory API Endpoints.
"""

from decimal import Decimal
from typing import List

from fastapi import APIRouter, Depends, Path, status
from sqlalchemy.ext.asyncio import AsyncSession

from accounts_backend.app.core.dependencies import get_current_owner, get_inventory_service
from accounts_backend.app.db.session import get_db
from accounts_backend.app.domain.inventory.service import InventoryService
from accounts_backend.app.domain.inventory.stock_ledger import (
    InventoryStockLedger,
    StockChange,
    StockLine,
    reorder_quantity,
    stock_level,
)
from accounts_backend.app.schemas.inventory import (
    AvailabilityRequest,
    AvailabilityResponse,
    InventoryItemCreate,
    InventoryItemResponse,
    LowStockItemResponse,
    StockAdd,
    StockAdjust,
    StockChangeResponse,
    StockMovementResponse,
    StockReduce,
    StockRestore,
)

router = APIRouter(prefix="/inventory", tags=["Inventory"])


def to_change_response(change: StockChange) -> StockChangeResponse:
    return StockChangeResponse(
        movement=StockMovementResponse.model_validate(change.movement),
        current_stock=change.item.current_stock,
        alert=change.alert,
    )


@router.post("/items", response_model=InventoryItemResponse, status_code=status.HTTP_201_CREATED)
async def create_item(
    payload: InventoryItemCreate,
    owner_id: int = Depends(get_current_owner),
    service: InventoryService = Depends(get_inventory_service),
):
    fields = payload.model_dump(exclude={"opening_stock"})
    return await service.create_item(
        owner_id, opening_stock=payload.opening_stock, opening_unit_price=payload.cost_price, **fields
    )


@router.get("/items/{item_id}", response_model=InventoryItemResponse)
async def get_item(
    item_id: int = Path(..., description="Inventory item ID"),
    owner_id: int = Depends(get_current_owner),
    db: AsyncSession = Depends(get_db),
):
    return await InventoryStockLedger.get_item(db, owner_id, item_id)


@router.post("/items/{item_id}/add-stock", response_model=StockChangeResponse)
async def add_stock(
    payload: StockAdd,
    item_id: int = Path(..., description="Inventory item ID"),
    owner_id: int = Depends(get_current_owner),
    service: InventoryService = Depends(get_inventory_service),
):
    change = await service.add_stock(
        owner_id, item_id, payload.quantity, payload.unit_price, payload.reference, payload.reason
    )
    return to_change_response(change)


@router.post("/items/{item_id}/reduce-stock", response_model=StockChangeResponse)
async def reduce_stock(
    payload: StockReduce,
    item_id: int = Path(..., description="Inventory item ID"),
    owner_id: int = Depends(get_current_owner),
    service: InventoryService = Depends(get_inventory_service),
):
    change = await service.reduce_stock(owner_id, item_id, payload.quantity, payload.reference, payload.reason)
    return to_change_response(change)


@router.post("/items/{item_id}/adjust-stock", response_model=StockChangeResponse)
async def adjust_stock(
    payload: StockAdjust,
    item_id: int = Path(..., description="Inventory item ID"),
    owner_id: int = Depends(get_current_owner),
    service: InventoryService = Depends(get_inventory_service),
):
    """Set stock to a physically counted quantity."""
    change = await service.adjust_stock(owner_id, item_id, payload.new_quantity, payload.reason, payload.reference)
    return to_change_response(change)


@router.post("/items/{item_id}/restore-stock", response_model=StockChangeResponse)
async def restore_stock(
    payload: StockRestore,
    item_id: int = Path(..., description="Inventory item ID"),
    owner_id: int = Depends(get_current_owner),
    service: InventoryService = Depends(get_inventory_service),
):
    change = await service.restore_stock(owner_id, item_id, payload.quantity, payload.reference, payload.reason_kind)
    return to_change_response(change)


@router.get("/items/{item_id}/movements", response_model=List[StockMovementResponse])
async def list_movements(
    item_id: int = Path(..., description="Inventory item ID"),
    owner_id: int = Depends(get_current_owner),
    db: AsyncSession = Depends(get_db),
):
    return await InventoryStockLedger.movements_for(db, owner_id, item_id)


@router.post("/availability", response_model=AvailabilityResponse)
async def check_availability(
    payload: AvailabilityRequest,
    owner_id: int = Depends(get_current_owner),
    db: AsyncSession = Depends(get_db),
):
    """Advisory pre-check; the authoritative check happens when stock is reduced."""
    result = await InventoryStockLedger.check_availability(
        db, owner_id, [StockLine(line.inventory_item_id, line.quantity) for line in payload.items]
    )
    return AvailabilityResponse(
        available=result.available,
        shortfalls=[shortfall.__dict__ for shortfall in result.shortfalls],
    )


@router.get("/low-stock", response_model=List[LowStockItemResponse])
async def list_low_stock(
    owner_id: int = Depends(get_current_owner),
    db: AsyncSession = Depends(get_db),
):
    items = await InventoryStockLedger.low_stock_items(db, owner_id)
    return [
        LowStockItemResponse(
            **InventoryItemResponse.model_validate(item).model_dump(),
            level=stock_level(item),
            recommended_order_quantity=reorder_quantity(item),
        )
        for item in items
    ]


@router.get("/valuation")
async def get_valuation(
    owner_id: int = Depends(get_current_owner),
    db: AsyncSession = Depends(get_db),
) -> dict:
    total: Decimal = await InventoryStockLedger.valuation(db, owner_id)
    return {"total_value": str(total)}
