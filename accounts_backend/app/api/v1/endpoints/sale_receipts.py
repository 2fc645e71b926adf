"""
Sale Receipt API Endpoints.

Receipts are never deleted; the delete flow is a reversal that keeps the
row for audit and offsets it in the ledger.
"""

from fastapi import APIRouter, Depends, Path, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from accounts_backend.app.core.dependencies import get_current_owner, get_settlement_engine
from accounts_backend.app.core.exceptions import ResourceNotFoundError
from accounts_backend.app.db.session import get_db
from accounts_backend.app.domain.settlement.engine import SettlementEngine
from accounts_backend.app.models.sale_receipt import SaleReceipt
from accounts_backend.app.schemas.payments import (
    ChequeClearance,
    PaymentAmountChange,
    ReversalRequest,
    SaleReceiptCreate,
    SaleReceiptResponse,
)

router = APIRouter(prefix="/sale-receipts", tags=["Sale Receipts"])


@router.post("", response_model=SaleReceiptResponse, status_code=status.HTTP_201_CREATED)
async def create_sale_receipt(
    payload: SaleReceiptCreate,
    owner_id: int = Depends(get_current_owner),
    engine: SettlementEngine = Depends(get_settlement_engine),
):
    """Record a receipt, allocating it to ``sale_id`` when given."""
    return await engine.record_sale_receipt(
        owner_id=owner_id,
        customer_id=payload.customer_id,
        receipt_no=payload.receipt_no,
        amount=payload.amount,
        receipt_date=payload.date,
        method=payload.method,
        sale_id=payload.sale_id,
        cheque_no=payload.cheque_no,
        bank_name=payload.bank_name,
        reference=payload.reference,
        voucher_id=payload.voucher_id,
        notes=payload.notes,
    )


@router.get("/{receipt_id}", response_model=SaleReceiptResponse)
async def get_sale_receipt(
    receipt_id: int = Path(..., description="Receipt ID"),
    owner_id: int = Depends(get_current_owner),
    db: AsyncSession = Depends(get_db),
):
    result = await db.execute(
        select(SaleReceipt).where(SaleReceipt.id == receipt_id, SaleReceipt.owner_id == owner_id)
    )
    receipt = result.scalar_one_or_none()
    if not receipt:
        raise ResourceNotFoundError("SaleReceipt", receipt_id)
    return receipt


@router.post("/{receipt_id}/reverse", response_model=SaleReceiptResponse)
async def reverse_sale_receipt(
    payload: ReversalRequest,
    receipt_id: int = Path(..., description="Receipt ID"),
    owner_id: int = Depends(get_current_owner),
    engine: SettlementEngine = Depends(get_settlement_engine),
):
    return await engine.reverse_sale_receipt(owner_id, receipt_id, payload.reason)


@router.patch("/{receipt_id}/amount", response_model=SaleReceiptResponse)
async def change_sale_receipt_amount(
    payload: PaymentAmountChange,
    receipt_id: int = Path(..., description="Receipt ID"),
    owner_id: int = Depends(get_current_owner),
    engine: SettlementEngine = Depends(get_settlement_engine),
):
    return await engine.change_payment_amount(SaleReceipt, owner_id, receipt_id, payload.amount, payload.reason)


@router.post("/{receipt_id}/clear", response_model=SaleReceiptResponse)
async def clear_cheque(
    payload: ChequeClearance,
    receipt_id: int = Path(..., description="Receipt ID"),
    owner_id: int = Depends(get_current_owner),
    engine: SettlementEngine = Depends(get_settlement_engine),
):
    """Mark a cheque receipt as cleared by the bank."""
    return await engine.mark_cheque_cleared(owner_id, receipt_id, payload.clearance_date, payload.charges)
