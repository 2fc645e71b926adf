"""
Customer API Endpoints.

Customer master data plus the receivable-account views (balance, statement)
and account-level postings (opening balance, credit limit, adjustments).
"""

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Path, Query, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from accounts_backend.app.core.dependencies import get_current_owner, get_settlement_engine
from accounts_backend.app.core.exceptions import ConflictError, ResourceNotFoundError
from accounts_backend.app.db.session import get_db
from accounts_backend.app.domain.ledger.account import CustomerAccount
from accounts_backend.app.domain.ledger.balance import BalanceCalculator
from accounts_backend.app.domain.settlement.engine import SettlementEngine
from accounts_backend.app.models.customer import Customer
from accounts_backend.app.schemas.accounts import (
    AccountSummaryResponse,
    AdjustmentCreate,
    BalanceResponse,
    CreditLimitUpdate,
    CustomerCreate,
    CustomerResponse,
    LedgerEntryResponse,
    OpeningBalanceCreate,
    StatementLineResponse,
    StatementResponse,
)
from accounts_backend.app.models.ledger_entry import LedgerEntry

router = APIRouter(prefix="/customers", tags=["Customers"])


async def _get_customer(db: AsyncSession, owner_id: int, customer_id: int) -> Customer:
    result = await db.execute(
        select(Customer).where(Customer.id == customer_id, Customer.owner_id == owner_id)
    )
    customer = result.scalar_one_or_none()
    if not customer:
        raise ResourceNotFoundError("Customer", customer_id)
    return customer


@router.post("", response_model=CustomerResponse, status_code=status.HTTP_201_CREATED)
async def create_customer(
    payload: CustomerCreate,
    owner_id: int = Depends(get_current_owner),
    db: AsyncSession = Depends(get_db),
):
    """Create a customer."""
    existing = await db.execute(
        select(Customer.id).where(Customer.owner_id == owner_id, Customer.name == payload.name)
    )
    if existing.first() is not None:
        raise ConflictError("Customer", "name", payload.name)

    customer = Customer(owner_id=owner_id, **payload.model_dump())
    db.add(customer)
    await db.commit()
    await db.refresh(customer)
    return customer


@router.get("/{customer_id}", response_model=CustomerResponse)
async def get_customer(
    customer_id: int = Path(..., description="Customer ID"),
    owner_id: int = Depends(get_current_owner),
    db: AsyncSession = Depends(get_db),
):
    return await _get_customer(db, owner_id, customer_id)


@router.put("/{customer_id}/credit-limit", response_model=CustomerResponse)
async def update_credit_limit(
    payload: CreditLimitUpdate,
    customer_id: int = Path(..., description="Customer ID"),
    owner_id: int = Depends(get_current_owner),
    engine: SettlementEngine = Depends(get_settlement_engine),
):
    """Change the credit limit; the change is logged in the ledger."""
    return await engine.change_credit_limit(owner_id, customer_id, payload.credit_limit, payload.reason)


@router.post("/{customer_id}/opening-balance", response_model=LedgerEntryResponse, status_code=status.HTTP_201_CREATED)
async def add_opening_balance(
    payload: OpeningBalanceCreate,
    customer_id: int = Path(..., description="Customer ID"),
    owner_id: int = Depends(get_current_owner),
    engine: SettlementEngine = Depends(get_settlement_engine),
):
    entry_id = await engine.record_opening_balance(
        CustomerAccount(owner_id=owner_id, customer_id=customer_id),
        payload.amount, payload.entry_date, payload.description,
    )
    return await engine.db.get(LedgerEntry, entry_id)


@router.post("/{customer_id}/adjustments", response_model=LedgerEntryResponse, status_code=status.HTTP_201_CREATED)
async def add_adjustment(
    payload: AdjustmentCreate,
    customer_id: int = Path(..., description="Customer ID"),
    owner_id: int = Depends(get_current_owner),
    engine: SettlementEngine = Depends(get_settlement_engine),
):
    entry_id = await engine.record_adjustment(
        CustomerAccount(owner_id=owner_id, customer_id=customer_id),
        payload.amount, payload.description, payload.reason, payload.entry_date,
    )
    return await engine.db.get(LedgerEntry, entry_id)


@router.get("/{customer_id}/balance", response_model=BalanceResponse)
async def get_customer_balance(
    customer_id: int = Path(..., description="Customer ID"),
    date_from: Optional[date] = Query(None),
    date_to: Optional[date] = Query(None),
    owner_id: int = Depends(get_current_owner),
    db: AsyncSession = Depends(get_db),
):
    """Amount the customer owes, folded from the ledger."""
    await _get_customer(db, owner_id, customer_id)
    account = CustomerAccount(owner_id=owner_id, customer_id=customer_id)
    balance = await BalanceCalculator.balance(db, account, date_from, date_to)
    return BalanceResponse(
        kind=account.kind,
        counterparty_id=customer_id,
        balance=balance,
        date_from=date_from,
        date_to=date_to,
    )


@router.get("/{customer_id}/statement", response_model=StatementResponse)
async def get_customer_statement(
    customer_id: int = Path(..., description="Customer ID"),
    date_from: Optional[date] = Query(None),
    date_to: Optional[date] = Query(None),
    owner_id: int = Depends(get_current_owner),
    db: AsyncSession = Depends(get_db),
):
    await _get_customer(db, owner_id, customer_id)
    account = CustomerAccount(owner_id=owner_id, customer_id=customer_id)
    statement = await BalanceCalculator.statement(db, account, date_from, date_to)
    return StatementResponse(
        kind=account.kind,
        counterparty_id=customer_id,
        date_from=statement.date_from,
        date_to=statement.date_to,
        opening_balance=statement.opening_balance,
        closing_balance=statement.closing_balance,
        total_debit=statement.total_debit,
        total_credit=statement.total_credit,
        entry_count=statement.entry_count,
        lines=[StatementLineResponse.model_validate(line) for line in statement.lines],
    )


@router.get("/{customer_id}/summary", response_model=AccountSummaryResponse)
async def get_customer_summary(
    customer_id: int = Path(..., description="Customer ID"),
    owner_id: int = Depends(get_current_owner),
    db: AsyncSession = Depends(get_db),
):
    """Balance with lifetime debit/credit totals and the last posting date."""
    await _get_customer(db, owner_id, customer_id)
    summary = await BalanceCalculator.summary(db, CustomerAccount(owner_id=owner_id, customer_id=customer_id))
    return AccountSummaryResponse(
        kind=summary.account.kind,
        counterparty_id=customer_id,
        balance=summary.balance,
        total_debit=summary.total_debit,
        total_credit=summary.total_credit,
        entry_count=summary.entry_count,
        last_entry_date=summary.last_entry_date,
    )
