"""
Balance Calculator (Domain Logic).

Balances are folded from ledger entries on every read and never cached.
The fold is a plain sum, so entry order does not matter.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Dict, Iterable, List, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from accounts_backend.app.core.config import settings
from accounts_backend.app.domain.ledger.account import AccountRef, CustomerAccount, PartyAccount, account_of
from accounts_backend.app.domain.ledger.journal import LedgerJournal
from accounts_backend.app.domain.money import ZERO, to_money
from accounts_backend.app.models.billing_enums import (
    DocumentStatus,
    LedgerEntryType,
    PartyKind,
    PaymentStatus,
)
from accounts_backend.app.models.invoice import Invoice
from accounts_backend.app.models.invoice_payment import InvoicePayment
from accounts_backend.app.models.ledger_entry import LedgerEntry
from accounts_backend.app.models.sale import Sale
from accounts_backend.app.models.sale_receipt import SaleReceipt

logger = logging.getLogger("accounts.ledger")

UNLINKED_BALANCE_TYPES = (LedgerEntryType.OPENING_BALANCE, LedgerEntryType.ADJUSTMENT)


def entry_effect(kind: PartyKind, debit: Decimal, credit: Decimal) -> Decimal:
    """Signed effect of one entry on an account of ``kind``."""
    if kind == PartyKind.CUSTOMER:
        return to_money(debit) - to_money(credit)
    return to_money(credit) - to_money(debit)


def fold_balance(kind: PartyKind, entries: Iterable) -> Decimal:
    """
    Fold entries (anything with ``debit`` and ``credit``) into a balance.

    CUSTOMER: sum(debit) - sum(credit), positive means the customer owes us.
    PARTY: sum(credit) - sum(debit), positive means we owe the party.
    """
    total_debit = ZERO
    total_credit = ZERO
    for entry in entries:
        total_debit += to_money(entry.debit)
        total_credit += to_money(entry.credit)
    return entry_effect(kind, total_debit, total_credit)


@dataclass
class StatementLine:
    entry_id: int
    date: date
    description: str
    entry_type: LedgerEntryType
    reference: Optional[str]
    debit: Decimal
    credit: Decimal
    running_balance: Decimal


@dataclass
class LedgerStatement:
    account: AccountRef
    date_from: Optional[date]
    date_to: Optional[date]
    opening_balance: Decimal
    closing_balance: Decimal
    total_debit: Decimal
    total_credit: Decimal
    entry_count: int
    lines: List[StatementLine] = field(default_factory=list)


@dataclass
class AccountSummary:
    account: AccountRef
    balance: Decimal
    total_debit: Decimal
    total_credit: Decimal
    entry_count: int
    last_entry_date: Optional[date]


@dataclass
class IntegrityIssue:
    account: AccountRef
    ledger_balance: Decimal
    expected_balance: Decimal

    @property
    def difference(self) -> Decimal:
        return self.ledger_balance - self.expected_balance


@dataclass
class IntegrityReport:
    owner_id: int
    accounts_checked: int = 0
    issues: List[IntegrityIssue] = field(default_factory=list)

    @property
    def is_consistent(self) -> bool:
        return not self.issues


class BalanceCalculator:

    @staticmethod
    async def balance(
        db: AsyncSession,
        account: AccountRef,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
    ) -> Decimal:
        """
        Current balance of ``account``, optionally limited to a date window.

        Full scan of the account's entries; no cached value is consulted.
        """
        stmt = select(LedgerEntry.debit, LedgerEntry.credit).where(account.criteria())
        if date_from is not None:
            stmt = stmt.where(LedgerEntry.date >= date_from)
        if date_to is not None:
            stmt = stmt.where(LedgerEntry.date <= date_to)

        rows = (await db.execute(stmt)).all()
        return fold_balance(account.kind, rows)

    @staticmethod
    async def statement(
        db: AsyncSession,
        account: AccountRef,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
    ) -> LedgerStatement:
        """
        Ledger statement with a running balance per line.

        The opening balance is the fold of everything before ``date_from``.
        """
        opening = ZERO
        if date_from is not None:
            earlier = select(LedgerEntry.debit, LedgerEntry.credit).where(
                account.criteria(), LedgerEntry.date < date_from
            )
            opening = fold_balance(account.kind, (await db.execute(earlier)).all())

        entries = await LedgerJournal.entries_for(db, account, date_from, date_to)

        running = opening
        total_debit = ZERO
        total_credit = ZERO
        lines = []
        for entry in entries:
            running += entry_effect(account.kind, entry.debit, entry.credit)
            total_debit += to_money(entry.debit)
            total_credit += to_money(entry.credit)
            lines.append(StatementLine(
                entry_id=entry.id,
                date=entry.date,
                description=entry.description,
                entry_type=entry.entry_type,
                reference=entry.reference,
                debit=to_money(entry.debit),
                credit=to_money(entry.credit),
                running_balance=running,
            ))

        return LedgerStatement(
            account=account,
            date_from=date_from,
            date_to=date_to,
            opening_balance=opening,
            closing_balance=running,
            total_debit=total_debit,
            total_credit=total_credit,
            entry_count=len(lines),
            lines=lines,
        )

    @staticmethod
    async def summary(db: AsyncSession, account: AccountRef) -> AccountSummary:
        entries = await LedgerJournal.entries_for(db, account)
        return AccountSummary(
            account=account,
            balance=fold_balance(account.kind, entries),
            total_debit=sum((to_money(e.debit) for e in entries), ZERO),
            total_credit=sum((to_money(e.credit) for e in entries), ZERO),
            entry_count=len(entries),
            last_entry_date=entries[-1].date if entries else None,
        )

    @staticmethod
    async def verify_integrity(db: AsyncSession, owner_id: int) -> IntegrityReport:
        """
        Cross-check every account's folded balance against its documents.

        expected = sum(open and settled document amounts)
                 - sum(non-reversed payment amounts)
                 + unlinked opening balance and manual adjustment entries

        Differences beyond ``settings.integrity_tolerance`` are reported.
        """
        result = await db.execute(select(LedgerEntry).where(LedgerEntry.owner_id == owner_id))
        by_account: Dict[AccountRef, list] = defaultdict(list)
        for entry in result.scalars().all():
            by_account[account_of(entry)].append(entry)

        sale_totals = await _grouped_sum(
            db, Sale.customer_id, Sale.amount,
            Sale.owner_id == owner_id, Sale.status != DocumentStatus.CANCELLED,
        )
        receipt_totals = await _grouped_sum(
            db, SaleReceipt.customer_id, SaleReceipt.amount,
            SaleReceipt.owner_id == owner_id, SaleReceipt.status != PaymentStatus.REVERSED,
        )
        invoice_totals = await _grouped_sum(
            db, Invoice.party_id, Invoice.amount,
            Invoice.owner_id == owner_id, Invoice.status != DocumentStatus.CANCELLED,
        )
        payment_totals = await _grouped_sum(
            db, InvoicePayment.party_id, InvoicePayment.amount,
            InvoicePayment.owner_id == owner_id, InvoicePayment.status != PaymentStatus.REVERSED,
        )

        accounts = set(by_account)
        accounts.update(CustomerAccount(owner_id, cid) for cid in set(sale_totals) | set(receipt_totals))
        accounts.update(PartyAccount(owner_id, pid) for pid in set(invoice_totals) | set(payment_totals))

        report = IntegrityReport(owner_id=owner_id)
        tolerance = to_money(settings.integrity_tolerance)

        for account in sorted(accounts, key=lambda a: (a.kind.value, a.counterparty_id)):
            entries = by_account.get(account, [])
            ledger_balance = fold_balance(account.kind, entries)
            manual = fold_balance(
                account.kind,
                [e for e in entries if e.entry_type in UNLINKED_BALANCE_TYPES and not e.is_linked],
            )
            if account.kind == PartyKind.CUSTOMER:
                documents = sale_totals.get(account.customer_id, ZERO)
                payments = receipt_totals.get(account.customer_id, ZERO)
            else:
                documents = invoice_totals.get(account.party_id, ZERO)
                payments = payment_totals.get(account.party_id, ZERO)

            expected = documents - payments + manual
            report.accounts_checked += 1

            if abs(ledger_balance - expected) > tolerance:
                issue = IntegrityIssue(account=account, ledger_balance=ledger_balance, expected_balance=expected)
                report.issues.append(issue)
                logger.warning(
                    "Ledger balance mismatch",
                    extra={
                        "owner_id": owner_id,
                        "account_kind": account.kind.value,
                        "counterparty_id": account.counterparty_id,
                        "ledger_balance": str(ledger_balance),
                        "expected_balance": str(expected),
                    },
                )

        return report


async def _grouped_sum(db: AsyncSession, key_column, amount_column, *criteria) -> Dict[int, Decimal]:
    stmt = select(key_column, func.sum(amount_column)).where(*criteria).group_by(key_column)
    rows = (await db.execute(stmt)).all()
    return {key: to_money(total) for key, total in rows}
