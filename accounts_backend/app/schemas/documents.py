"""
Sale and Invoice Schemas.
"""

from pydantic import BaseModel, Field
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from accounts_backend.app.domain.settlement.lines import DocumentLine
from accounts_backend.app.models.billing_enums import DocumentStatus


class LineItem(BaseModel):
    description: str = Field(..., min_length=1, max_length=200)
    quantity: int = Field(..., gt=0)
    unit_price: Decimal = Field(..., ge=0)
    inventory_item_id: Optional[int] = None

    def to_line(self) -> DocumentLine:
        return DocumentLine(
            description=self.description,
            quantity=self.quantity,
            unit_price=self.unit_price,
            inventory_item_id=self.inventory_item_id,
        )


class DocumentCreate(BaseModel):
    """Either ``items`` or ``amount`` is required; with both, they must agree."""
    date: date
    due_date: Optional[date] = None
    items: List[LineItem] = Field(default_factory=list)
    amount: Optional[Decimal] = Field(None, gt=0)
    discount: Decimal = Field(Decimal("0"), ge=0)
    round_off: Decimal = Decimal("0")
    voucher_id: Optional[str] = Field(None, max_length=50)
    notes: Optional[str] = None

    def lines(self) -> List[DocumentLine]:
        return [item.to_line() for item in self.items]


class SaleCreate(DocumentCreate):
    customer_id: int
    sale_no: str = Field(..., min_length=1, max_length=50)


class InvoiceCreate(DocumentCreate):
    party_id: int
    invoice_no: str = Field(..., min_length=1, max_length=50)


class AmountChange(BaseModel):
    amount: Decimal = Field(..., gt=0)
    reason: str = Field(..., min_length=1, max_length=200)


class CancelRequest(BaseModel):
    reason: str = Field(..., min_length=1, max_length=200)


class DocumentResponse(BaseModel):
    id: int
    date: date
    due_date: Optional[date]
    items: List[Dict[str, Any]]
    amount: Decimal
    paid_amount: Decimal
    remaining_amount: Decimal
    status: DocumentStatus
    is_overdue: bool = False
    notes: Optional[str]
    cancellation_reason: Optional[str]
    created_at: datetime

    class Config:
        from_attributes = True


class SaleResponse(DocumentResponse):
    customer_id: int
    sale_no: str
    stock_committed: bool


class InvoiceResponse(DocumentResponse):
    party_id: int
    invoice_no: str
    stock_received: bool
