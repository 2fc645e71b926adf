"""
Party (Supplier) API Endpoints.
"""

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Path, Query, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from accounts_backend.app.core.dependencies import get_current_owner, get_settlement_engine
from accounts_backend.app.core.exceptions import ConflictError, ResourceNotFoundError
from accounts_backend.app.db.session import get_db
from accounts_backend.app.domain.ledger.account import PartyAccount
from accounts_backend.app.domain.ledger.balance import BalanceCalculator
from accounts_backend.app.domain.settlement.engine import SettlementEngine
from accounts_backend.app.models.ledger_entry import LedgerEntry
from accounts_backend.app.models.party import Party
from accounts_backend.app.schemas.accounts import (
    AccountSummaryResponse,
    AdjustmentCreate,
    BalanceResponse,
    LedgerEntryResponse,
    OpeningBalanceCreate,
    PartyCreate,
    PartyResponse,
    StatementLineResponse,
    StatementResponse,
)

router = APIRouter(prefix="/parties", tags=["Parties"])


async def _get_party(db: AsyncSession, owner_id: int, party_id: int) -> Party:
    result = await db.execute(select(Party).where(Party.id == party_id, Party.owner_id == owner_id))
    party = result.scalar_one_or_none()
    if not party:
        raise ResourceNotFoundError("Party", party_id)
    return party


@router.post("", response_model=PartyResponse, status_code=status.HTTP_201_CREATED)
async def create_party(
    payload: PartyCreate,
    owner_id: int = Depends(get_current_owner),
    db: AsyncSession = Depends(get_db),
):
    existing = await db.execute(select(Party.id).where(Party.owner_id == owner_id, Party.name == payload.name))
    if existing.first() is not None:
        raise ConflictError("Party", "name", payload.name)

    party = Party(owner_id=owner_id, **payload.model_dump())
    db.add(party)
    await db.commit()
    await db.refresh(party)
    return party


@router.get("/{party_id}", response_model=PartyResponse)
async def get_party(
    party_id: int = Path(..., description="Party ID"),
    owner_id: int = Depends(get_current_owner),
    db: AsyncSession = Depends(get_db),
):
    return await _get_party(db, owner_id, party_id)


@router.post("/{party_id}/opening-balance", response_model=LedgerEntryResponse, status_code=status.HTTP_201_CREATED)
async def add_opening_balance(
    payload: OpeningBalanceCreate,
    party_id: int = Path(..., description="Party ID"),
    owner_id: int = Depends(get_current_owner),
    engine: SettlementEngine = Depends(get_settlement_engine),
):
    entry_id = await engine.record_opening_balance(
        PartyAccount(owner_id=owner_id, party_id=party_id),
        payload.amount, payload.entry_date, payload.description,
    )
    return await engine.db.get(LedgerEntry, entry_id)


@router.post("/{party_id}/adjustments", response_model=LedgerEntryResponse, status_code=status.HTTP_201_CREATED)
async def add_adjustment(
    payload: AdjustmentCreate,
    party_id: int = Path(..., description="Party ID"),
    owner_id: int = Depends(get_current_owner),
    engine: SettlementEngine = Depends(get_settlement_engine),
):
    entry_id = await engine.record_adjustment(
        PartyAccount(owner_id=owner_id, party_id=party_id),
        payload.amount, payload.description, payload.reason, payload.entry_date,
    )
    return await engine.db.get(LedgerEntry, entry_id)


@router.get("/{party_id}/balance", response_model=BalanceResponse)
async def get_party_balance(
    party_id: int = Path(..., description="Party ID"),
    date_from: Optional[date] = Query(None),
    date_to: Optional[date] = Query(None),
    owner_id: int = Depends(get_current_owner),
    db: AsyncSession = Depends(get_db),
):
    """Amount owed to the party, folded from the ledger."""
    await _get_party(db, owner_id, party_id)
    account = PartyAccount(owner_id=owner_id, party_id=party_id)
    balance = await BalanceCalculator.balance(db, account, date_from, date_to)
    return BalanceResponse(
        kind=account.kind,
        counterparty_id=party_id,
        balance=balance,
        date_from=date_from,
        date_to=date_to,
    )


@router.get("/{party_id}/statement", response_model=StatementResponse)
async def get_party_statement(
    party_id: int = Path(..., description="Party ID"),
    date_from: Optional[date] = Query(None),
    date_to: Optional[date] = Query(None),
    owner_id: int = Depends(get_current_owner),
    db: AsyncSession = Depends(get_db),
):
    await _get_party(db, owner_id, party_id)
    account = PartyAccount(owner_id=owner_id, party_id=party_id)
    statement = await BalanceCalculator.statement(db, account, date_from, date_to)
    return StatementResponse(
        kind=account.kind,
        counterparty_id=party_id,
        date_from=statement.date_from,
        date_to=statement.date_to,
        opening_balance=statement.opening_balance,
        closing_balance=statement.closing_balance,
        total_debit=statement.total_debit,
        total_credit=statement.total_credit,
        entry_count=statement.entry_count,
        lines=[StatementLineResponse.model_validate(line) for line in statement.lines],
    )


@router.get("/{party_id}/summary", response_model=AccountSummaryResponse)
async def get_party_summary(
    party_id: int = Path(..., description="Party ID"),
    owner_id: int = Depends(get_current_owner),
    db: AsyncSession = Depends(get_db),
):
    await _get_party(db, owner_id, party_id)
    summary = await BalanceCalculator.summary(db, PartyAccount(owner_id=owner_id, party_id=party_id))
    return AccountSummaryResponse(
        kind=summary.account.kind,
        counterparty_id=party_id,
        balance=summary.balance,
        total_debit=summary.total_debit,
        total_credit=summary.total_credit,
        entry_count=summary.entry_count,
        last_entry_date=summary.last_entry_date,
    )
