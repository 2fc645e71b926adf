"""
Inventory Schemas.
"""

from pydantic import BaseModel, Field
from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from accounts_backend.app.models.inventory_enums import MovementType, RestockReason, StockAlert, StockLevel


class InventoryItemCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=150)
    sku: Optional[str] = Field(None, max_length=60)
    unit: str = Field("pcs", max_length=20)
    category: Optional[str] = Field(None, max_length=80)
    minimum_stock: int = Field(0, ge=0)
    reorder_level: Optional[int] = Field(None, ge=0)
    maximum_stock: Optional[int] = Field(None, ge=0)
    cost_price: Decimal = Field(Decimal("0"), ge=0)
    selling_price: Decimal = Field(Decimal("0"), ge=0)
    opening_stock: int = Field(0, ge=0)


class InventoryItemResponse(BaseModel):
    id: int
    name: str
    sku: Optional[str]
    unit: str
    category: Optional[str]
    current_stock: int
    minimum_stock: int
    reorder_level: Optional[int]
    maximum_stock: Optional[int]
    cost_price: Decimal
    selling_price: Decimal
    last_purchase_price: Optional[Decimal]
    last_purchase_date: Optional[date]
    is_active: bool

    class Config:
        from_attributes = True


class StockAdd(BaseModel):
    quantity: int = Field(..., gt=0)
    unit_price: Optional[Decimal] = Field(None, ge=0)
    reference: Optional[str] = Field(None, max_length=100)
    reason: str = Field("Purchase", max_length=255)


class StockReduce(BaseModel):
    quantity: int = Field(..., gt=0)
    reference: Optional[str] = Field(None, max_length=100)
    reason: str = Field("Manual issue", max_length=255)


class StockAdjust(BaseModel):
    new_quantity: int = Field(..., ge=0)
    reason: str = Field(..., min_length=1, max_length=255)
    reference: Optional[str] = Field(None, max_length=100)


class StockRestore(BaseModel):
    quantity: int = Field(..., gt=0)
    reason_kind: RestockReason = RestockReason.RETURNED
    reference: Optional[str] = Field(None, max_length=100)


class StockMovementResponse(BaseModel):
    id: int
    inventory_item_id: int
    type: MovementType
    quantity: int
    previous_stock: int
    new_stock: int
    reason: Optional[str]
    reference: Optional[str]
    unit_price: Optional[Decimal]
    total_value: Optional[Decimal]
    created_at: datetime

    class Config:
        from_attributes = True


class StockChangeResponse(BaseModel):
    movement: StockMovementResponse
    current_stock: int
    alert: Optional[StockAlert]


class AvailabilityLine(BaseModel):
    inventory_item_id: int
    quantity: int = Field(..., gt=0)


class AvailabilityRequest(BaseModel):
    items: List[AvailabilityLine] = Field(..., min_length=1)


class ShortfallResponse(BaseModel):
    inventory_item_id: int
    requested: int
    available: int
    item_name: Optional[str]


class AvailabilityResponse(BaseModel):
    available: bool
    shortfalls: List[ShortfallResponse]


class LowStockItemResponse(InventoryItemResponse):
    level: StockLevel
    recommended_order_quantity: int
