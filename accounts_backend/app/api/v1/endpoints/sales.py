"""
Sale API Endpoints.
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
from accounts_backend.app.models.sale import Sale
from accounts_backend.app.schemas.documents import AmountChange, CancelRequest, SaleCreate, SaleResponse

router = APIRouter(prefix="/sales", tags=["Sales"])


def to_sale_response(sale: Sale, as_of: Optional[date] = None) -> SaleResponse:
    response = SaleResponse.model_validate(sale)
    response.is_overdue = is_overdue(sale, as_of or date.today())
    return response


@router.post("", response_model=SaleResponse, status_code=status.HTTP_201_CREATED)
async def create_sale(
    payload: SaleCreate,
    owner_id: int = Depends(get_current_owner),
    engine: SettlementEngine = Depends(get_settlement_engine),
):
    """
    Create a sale and debit the customer's account.

    Exceeding the customer's credit limit is reported, not refused.
    """
    sale = await engine.create_sale(
        owner_id=owner_id,
        customer_id=payload.customer_id,
        sale_no=payload.sale_no,
        sale_date=payload.date,
        lines=payload.lines(),
        amount=payload.amount,
        discount=payload.discount,
        round_off=payload.round_off,
        due_date=payload.due_date,
        voucher_id=payload.voucher_id,
        notes=payload.notes,
    )
    return to_sale_response(sale)


@router.get("/overdue", response_model=List[SaleResponse])
async def list_overdue_sales(
    as_of: Optional[date] = Query(None, description="Defaults to today"),
    owner_id: int = Depends(get_current_owner),
    db: AsyncSession = Depends(get_db),
):
    as_of = as_of or date.today()
    sales = await SettlementEngine.overdue_documents(db, Sale, owner_id, as_of)
    return [to_sale_response(sale, as_of) for sale in sales]


@router.get("/{sale_id}", response_model=SaleResponse)
async def get_sale(
    sale_id: int = Path(..., description="Sale ID"),
    owner_id: int = Depends(get_current_owner),
    db: AsyncSession = Depends(get_db),
):
    result = await db.execute(select(Sale).where(Sale.id == sale_id, Sale.owner_id == owner_id))
    sale = result.scalar_one_or_none()
    if not sale:
        raise ResourceNotFoundError("Sale", sale_id)
    return to_sale_response(sale)


@router.post("/{sale_id}/cancel", response_model=SaleResponse)
async def cancel_sale(
    payload: CancelRequest,
    sale_id: int = Path(..., description="Sale ID"),
    owner_id: int = Depends(get_current_owner),
    engine: SettlementEngine = Depends(get_settlement_engine),
):
    """Cancel an unpaid sale."""
    sale = await engine.cancel_sale(owner_id, sale_id, payload.reason)
    return to_sale_response(sale)


@router.patch("/{sale_id}/amount", response_model=SaleResponse)
async def change_sale_amount(
    payload: AmountChange,
    sale_id: int = Path(..., description="Sale ID"),
    owner_id: int = Depends(get_current_owner),
    engine: SettlementEngine = Depends(get_settlement_engine),
):
    sale = await engine.change_sale_amount(owner_id, sale_id, payload.amount, payload.reason)
    return to_sale_response(sale)
