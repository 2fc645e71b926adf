"""
Sale Receipt and Invoice Payment Schemas.
"""

from pydantic import BaseModel, Field
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from accounts_backend.app.models.billing_enums import PaymentMethod, PaymentStatus


class PaymentCreate(BaseModel):
    date: date
    amount: Decimal = Field(..., gt=0)
    method: PaymentMethod = PaymentMethod.CASH
    cheque_no: Optional[str] = Field(None, max_length=50)
    bank_name: Optional[str] = Field(None, max_length=100)
    reference: Optional[str] = Field(None, max_length=100)
    notes: Optional[str] = None


class SaleReceiptCreate(PaymentCreate):
    customer_id: int
    receipt_no: str = Field(..., min_length=1, max_length=50)
    sale_id: Optional[int] = None
    voucher_id: Optional[str] = Field(None, max_length=50)


class InvoicePaymentCreate(PaymentCreate):
    party_id: int
    voucher_no: str = Field(..., min_length=1, max_length=50)
    invoice_id: Optional[int] = None


class ReversalRequest(BaseModel):
    reason: str = Field(..., min_length=1, max_length=200)


class PaymentAmountChange(BaseModel):
    amount: Decimal = Field(..., gt=0)
    reason: str = Field(..., min_length=1, max_length=200)


class ChequeClearance(BaseModel):
    clearance_date: Optional[date] = None
    charges: Decimal = Field(Decimal("0"), ge=0)


class PaymentResponse(BaseModel):
    id: int
    date: date
    amount: Decimal
    method: PaymentMethod
    status: PaymentStatus
    cheque_no: Optional[str]
    bank_name: Optional[str]
    reference: Optional[str]
    reversed_at: Optional[datetime]
    reversal_reason: Optional[str]
    created_at: datetime

    class Config:
        from_attributes = True


class SaleReceiptResponse(PaymentResponse):
    customer_id: int
    sale_id: Optional[int]
    receipt_no: str
    clearance_date: Optional[date]
    charges: Decimal


class InvoicePaymentResponse(PaymentResponse):
    party_id: int
    invoice_id: Optional[int]
    voucher_no: str
