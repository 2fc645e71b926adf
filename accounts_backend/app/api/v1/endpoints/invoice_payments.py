"""
Invoice Payment API Endpoints.
"""

from fastapi import APIRouter, Depends, Path, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from accounts_backend.app.core.dependencies import get_current_owner, get_settlement_engine
from accounts_backend.app.core.exceptions import ResourceNotFoundError
from accounts_backend.app.db.session import get_db
from accounts_backend.app.domain.settlement.engine import SettlementEngine
from accounts_backend.app.models.invoice_payment import InvoicePayment
from accounts_backend.app.schemas.payments import (
    InvoicePaymentCreate,
    InvoicePaymentResponse,
    PaymentAmountChange,
    ReversalRequest,
)

router = APIRouter(prefix="/invoice-payments", tags=["Invoice Payments"])


@router.post("", response_model=InvoicePaymentResponse, status_code=status.HTTP_201_CREATED)
async def create_invoice_payment(
    payload: InvoicePaymentCreate,
    owner_id: int = Depends(get_current_owner),
    engine: SettlementEngine = Depends(get_settlement_engine),
):
    return await engine.record_invoice_payment(
        owner_id=owner_id,
        party_id=payload.party_id,
        voucher_no=payload.voucher_no,
        amount=payload.amount,
        payment_date=payload.date,
        method=payload.method,
        invoice_id=payload.invoice_id,
        cheque_no=payload.cheque_no,
        bank_name=payload.bank_name,
        reference=payload.reference,
        notes=payload.notes,
    )


@router.get("/{payment_id}", response_model=InvoicePaymentResponse)
async def get_invoice_payment(
    payment_id: int = Path(..., description="Payment ID"),
    owner_id: int = Depends(get_current_owner),
    db: AsyncSession = Depends(get_db),
):
    result = await db.execute(
        select(InvoicePayment).where(InvoicePayment.id == payment_id, InvoicePayment.owner_id == owner_id)
    )
    payment = result.scalar_one_or_none()
    if not payment:
        raise ResourceNotFoundError("InvoicePayment", payment_id)
    return payment


@router.post("/{payment_id}/reverse", response_model=InvoicePaymentResponse)
async def reverse_invoice_payment(
    payload: ReversalRequest,
    payment_id: int = Path(..., description="Payment ID"),
    owner_id: int = Depends(get_current_owner),
    engine: SettlementEngine = Depends(get_settlement_engine),
):
    return await engine.reverse_invoice_payment(owner_id, payment_id, payload.reason)


@router.patch("/{payment_id}/amount", response_model=InvoicePaymentResponse)
async def change_invoice_payment_amount(
    payload: PaymentAmountChange,
    payment_id: int = Path(..., description="Payment ID"),
    owner_id: int = Depends(get_current_owner),
    engine: SettlementEngine = Depends(get_settlement_engine),
):
    return await engine.change_payment_amount(InvoicePayment, owner_id, payment_id, payload.amount, payload.reason)
