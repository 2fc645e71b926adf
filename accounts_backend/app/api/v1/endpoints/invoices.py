"""
Invoice API Endpoints.
"""

from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Path, Query, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from accounts_backend.app.core.dependencies import get_current_owner, get_settlement_engine
from accounts_backend.app.core.exceptions import ResourceNotFoundError
from accounts_backend.app.db.session import get_db
from accounts_backend.app.domain.settlement.engine import SettlementEngine
from accounts_backend.app.domain.settlement.state import is_overdue
from accounts_backend.app.models.invoice import Invoice
from accounts_backend.app.schemas.documents import AmountChange, CancelRequest, InvoiceCreate, InvoiceResponse

router = APIRouter(prefix="/invoices", tags=["Invoices"])


def to_invoice_response(invoice: Invoice, as_of: Optional[date] = None) -> InvoiceResponse:
    response = InvoiceResponse.model_validate(invoice)
    response.is_overdue = is_overdue(invoice, as_of or date.today())
    return response


@router.post("", response_model=InvoiceResponse, status_code=status.HTTP_201_CREATED)
async def create_invoice(
    payload: InvoiceCreate,
    owner_id: int = Depends(get_current_owner),
    engine: SettlementEngine = Depends(get_settlement_engine),
):
    """Record a supplier invoice; stocked line items are received into inventory."""
    invoice = await engine.create_invoice(
        owner_id=owner_id,
        party_id=payload.party_id,
        invoice_no=payload.invoice_no,
        invoice_date=payload.date,
        lines=payload.lines(),
        amount=payload.amount,
        discount=payload.discount,
        round_off=payload.round_off,
        due_date=payload.due_date,
        voucher_id=payload.voucher_id,
        notes=payload.notes,
    )
    return to_invoice_response(invoice)


@router.get("/overdue", response_model=List[InvoiceResponse])
async def list_overdue_invoices(
    as_of: Optional[date] = Query(None, description="Defaults to today"),
    owner_id: int = Depends(get_current_owner),
    db: AsyncSession = Depends(get_db),
):
    as_of = as_of or date.today()
    invoices = await SettlementEngine.overdue_documents(db, Invoice, owner_id, as_of)
    return [to_invoice_response(invoice, as_of) for invoice in invoices]


@router.get("/{invoice_id}", response_model=InvoiceResponse)
async def get_invoice(
    invoice_id: int = Path(..., description="Invoice ID"),
    owner_id: int = Depends(get_current_owner),
    db: AsyncSession = Depends(get_db),
):
    result = await db.execute(select(Invoice).where(Invoice.id == invoice_id, Invoice.owner_id == owner_id))
    invoice = result.scalar_one_or_none()
    if not invoice:
        raise ResourceNotFoundError("Invoice", invoice_id)
    return to_invoice_response(invoice)


@router.post("/{invoice_id}/cancel", response_model=InvoiceResponse)
async def cancel_invoice(
    payload: CancelRequest,
    invoice_id: int = Path(..., description="Invoice ID"),
    owner_id: int = Depends(get_current_owner),
    engine: SettlementEngine = Depends(get_settlement_engine),
):
    invoice = await engine.cancel_invoice(owner_id, invoice_id, payload.reason)
    return to_invoice_response(invoice)


@router.patch("/{invoice_id}/amount", response_model=InvoiceResponse)
async def change_invoice_amount(
    payload: AmountChange,
    invoice_id: int = Path(..., description="Invoice ID"),
    owner_id: int = Depends(get_current_owner),
    engine: SettlementEngine = Depends(get_settlement_engine),
):
    invoice = await engine.change_invoice_amount(owner_id, invoice_id, payload.amount, payload.reason)
    return to_invoice_response(invoice)
