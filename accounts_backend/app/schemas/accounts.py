"""
Customer, Party and Ledger Schemas.
"""

from pydantic import BaseModel, Field
from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from accounts_backend.app.models.billing_enums import LedgerEntryType, PartyKind


class CustomerCreate(BaseModel):
    """Schema for creating a customer."""
    name: str = Field(..., min_length=1, max_length=150)
    phone: Optional[str] = Field(None, max_length=30)
    email: Optional[str] = Field(None, max_length=255)
    address: Optional[str] = Field(None, max_length=255)
    credit_limit: Decimal = Field(Decimal("0"), ge=0)


class CustomerResponse(BaseModel):
    id: int
    name: str
    phone: Optional[str]
    email: Optional[str]
    credit_limit: Decimal
    is_active: bool
    created_at: datetime

    class Config:
        from_attributes = True


class PartyCreate(BaseModel):
    """Schema for creating a party (supplier)."""
    name: str = Field(..., min_length=1, max_length=150)
    phone: Optional[str] = Field(None, max_length=30)
    email: Optional[str] = Field(None, max_length=255)
    gst_no: Optional[str] = Field(None, max_length=30)
    address: Optional[str] = Field(None, max_length=255)


class PartyResponse(BaseModel):
    id: int
    name: str
    phone: Optional[str]
    email: Optional[str]
    gst_no: Optional[str]
    is_active: bool
    created_at: datetime

    class Config:
        from_attributes = True


class CreditLimitUpdate(BaseModel):
    credit_limit: Decimal = Field(..., ge=0)
    reason: Optional[str] = Field(None, max_length=200)


class OpeningBalanceCreate(BaseModel):
    """Signed: positive raises the account balance (debit for a customer, credit for a party)."""
    amount: Decimal
    entry_date: Optional[date] = None
    description: str = Field("Opening balance", min_length=1, max_length=200)


class AdjustmentCreate(BaseModel):
    """Signed like OpeningBalanceCreate: positive raises the account balance, negative lowers it."""
    amount: Decimal
    description: str = Field(..., min_length=1, max_length=150)
    reason: str = Field(..., min_length=1, max_length=100)
    entry_date: Optional[date] = None


class LedgerEntryResponse(BaseModel):
    id: int
    date: date
    description: str
    entry_type: LedgerEntryType
    reference: Optional[str]
    debit: Decimal
    credit: Decimal

    class Config:
        from_attributes = True


class BalanceResponse(BaseModel):
    kind: PartyKind
    counterparty_id: int
    balance: Decimal
    date_from: Optional[date] = None
    date_to: Optional[date] = None


class StatementLineResponse(BaseModel):
    entry_id: int
    date: date
    description: str
    entry_type: LedgerEntryType
    reference: Optional[str]
    debit: Decimal
    credit: Decimal
    running_balance: Decimal

    class Config:
        from_attributes = True


class StatementResponse(BaseModel):
    kind: PartyKind
    counterparty_id: int
    date_from: Optional[date]
    date_to: Optional[date]
    opening_balance: Decimal
    closing_balance: Decimal
    total_debit: Decimal
    total_credit: Decimal
    entry_count: int
    lines: List[StatementLineResponse]


class IntegrityIssueResponse(BaseModel):
    kind: PartyKind
    counterparty_id: int
    ledger_balance: Decimal
    expected_balance: Decimal
    difference: Decimal


class IntegrityReportResponse(BaseModel):
    accounts_checked: int
    is_consistent: bool
    issues: List[IntegrityIssueResponse]


class AccountSummaryResponse(BaseModel):
    kind: PartyKind
    counterparty_id: int
    balance: Decimal
    total_debit: Decimal
    total_credit: Decimal
    entry_count: int
    last_entry_date: Optional[date]
