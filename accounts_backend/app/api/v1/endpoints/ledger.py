"""
Ledger API Endpoints.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from accounts_backend.app.core.dependencies import get_current_owner
from accounts_backend.app.db.session import get_db
from accounts_backend.app.domain.ledger.balance import BalanceCalculator
from accounts_backend.app.schemas.accounts import IntegrityIssueResponse, IntegrityReportResponse

router = APIRouter(prefix="/ledger", tags=["Ledger"])


@router.get("/integrity", response_model=IntegrityReportResponse)
async def check_integrity(
    owner_id: int = Depends(get_current_owner),
    db: AsyncSession = Depends(get_db),
):
    """
    Cross-check ledger balances against sale/invoice and payment totals.

    A non-empty ``issues`` list means the journal and the documents disagree.
    """
    report = await BalanceCalculator.verify_integrity(db, owner_id)
    return IntegrityReportResponse(
        accounts_checked=report.accounts_checked,
        is_consistent=report.is_consistent,
        issues=[
            IntegrityIssueResponse(
                kind=issue.account.kind,
                counterparty_id=issue.account.counterparty_id,
                ledger_balance=issue.ledger_balance,
                expected_balance=issue.expected_balance,
                difference=issue.difference,
            )
            for issue in report.issues
        ],
    )
