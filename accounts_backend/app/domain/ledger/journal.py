"""
Ledger Journal (Domain Logic).

Append-only store of debit/credit entries. The journal never opens, commits
or rolls back a transaction: every call flushes into the caller's session so
it composes with the settlement unit of work.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from accounts_backend.app.core.exceptions import ValidationFailedError
from accounts_backend.app.domain.ledger.account import AccountRef
from accounts_backend.app.domain.money import ZERO, to_money
from accounts_backend.app.models.billing_enums import LedgerEntryType, PartyKind
from accounts_backend.app.models.ledger_entry import LedgerEntry

logger = logging.getLogger("accounts.ledger")

AUDIT_ONLY_TYPES = frozenset({LedgerEntryType.CREDIT_LIMIT_CHANGE})


@dataclass
class JournalEntryDraft:
    """A fully formed entry waiting to be appended."""

    account: AccountRef
    entry_date: date
    description: str
    entry_type: LedgerEntryType
    debit: Decimal = ZERO
    credit: Decimal = ZERO
    reference: Optional[str] = None
    sale_id: Optional[int] = None
    invoice_id: Optional[int] = None
    sale_receipt_id: Optional[int] = None
    invoice_payment_id: Optional[int] = None


def signed_sides(kind: PartyKind, amount: Decimal) -> tuple:
    """
    Split a signed balance change into (debit, credit).

    A positive amount raises the account balance: debit for a customer,
    credit for a party. A negative amount lands on the other side.
    """
    raises_on_debit = kind == PartyKind.CUSTOMER
    if (amount > 0) == raises_on_debit:
        return abs(amount), ZERO
    return ZERO, abs(amount)


def new_reference(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:10].upper()}"


class LedgerJournal:

    @staticmethod
    def validate(draft: JournalEntryDraft) -> None:
        """
        Check the debit/credit shape of a draft.

        Raises:
            ValidationFailedError: negative side, both sides set, or an
                empty entry that is not audit-only
        """
        debit = to_money(draft.debit)
        credit = to_money(draft.credit)

        if debit < 0 or credit < 0:
            raise ValidationFailedError(
                "Ledger entry sides must not be negative",
                details={"debit": str(debit), "credit": str(credit)},
            )
        if debit != 0 and credit != 0:
            raise ValidationFailedError(
                "Ledger entry must carry either a debit or a credit, not both",
                details={"debit": str(debit), "credit": str(credit)},
            )
        if debit == 0 and credit == 0 and draft.entry_type not in AUDIT_ONLY_TYPES:
            raise ValidationFailedError(
                f"{draft.entry_type.value} entry must carry a nonzero amount",
                details={"entry_type": draft.entry_type.value},
            )
        if not draft.description:
            raise ValidationFailedError("Ledger entry description is required")

    @staticmethod
    async def append(db: AsyncSession, draft: JournalEntryDraft) -> int:
        """
        Persist one entry inside the caller's transaction.

        Args:
            db: Session owned by the caller (flushed, never committed here)
            draft: Fully formed entry

        Returns:
            ID of the new ledger entry
        """
        LedgerJournal.validate(draft)

        entry = LedgerEntry(
            **draft.account.entry_columns(),
            date=draft.entry_date,
            description=draft.description[:255],
            entry_type=draft.entry_type,
            reference=draft.reference,
            debit=to_money(draft.debit),
            credit=to_money(draft.credit),
            sale_id=draft.sale_id,
            invoice_id=draft.invoice_id,
            sale_receipt_id=draft.sale_receipt_id,
            invoice_payment_id=draft.invoice_payment_id,
        )
        db.add(entry)
        await db.flush()

        logger.info(
            "Ledger entry appended",
            extra={
                "entry_id": entry.id,
                "owner_id": draft.account.owner_id,
                "account_kind": draft.account.kind.value,
                "counterparty_id": draft.account.counterparty_id,
                "entry_type": draft.entry_type.value,
                "debit": str(entry.debit),
                "credit": str(entry.credit),
                "reference": draft.reference,
            },
        )
        return entry.id

    @staticmethod
    async def append_adjustment(
        db: AsyncSession,
        account: AccountRef,
        amount: Decimal,
        description: str,
        reason: str,
        entry_date: Optional[date] = None,
        reference: Optional[str] = None,
        sale_id: Optional[int] = None,
        invoice_id: Optional[int] = None,
        sale_receipt_id: Optional[int] = None,
        invoice_payment_id: Optional[int] = None,
    ) -> int:
        """
        Append a correcting ADJUSTMENT entry.

        ``amount`` is the signed effect on the account balance: a negated
        document amount undoes that document, a positive amount undoes a
        payment.
        """
        amount = to_money(amount)
        if amount == 0:
            raise ValidationFailedError("Adjustment amount must be nonzero")

        debit, credit = signed_sides(account.kind, amount)
        text = f"{description} - {reason}" if reason else description

        return await LedgerJournal.append(db, JournalEntryDraft(
            account=account,
            entry_date=entry_date or date.today(),
            description=text,
            entry_type=LedgerEntryType.ADJUSTMENT,
            debit=debit,
            credit=credit,
            reference=reference or new_reference("ADJ"),
            sale_id=sale_id,
            invoice_id=invoice_id,
            sale_receipt_id=sale_receipt_id,
            invoice_payment_id=invoice_payment_id,
        ))

    @staticmethod
    async def append_opening_balance(
        db: AsyncSession,
        account: AccountRef,
        amount: Decimal,
        entry_date: Optional[date] = None,
        description: str = "Opening balance",
    ) -> int:
        """Carry in a balance from before this ledger existed (signed, like adjustments)."""
        amount = to_money(amount)
        if amount == 0:
            raise ValidationFailedError("Opening balance must be nonzero")

        debit, credit = signed_sides(account.kind, amount)
        return await LedgerJournal.append(db, JournalEntryDraft(
            account=account,
            entry_date=entry_date or date.today(),
            description=description,
            entry_type=LedgerEntryType.OPENING_BALANCE,
            debit=debit,
            credit=credit,
            reference=new_reference("OB"),
        ))

    @staticmethod
    async def log_credit_limit_change(
        db: AsyncSession,
        account: AccountRef,
        old_limit: Decimal,
        new_limit: Decimal,
        reason: Optional[str] = None,
    ) -> int:
        """Record a credit limit change as a zero-sided audit entry."""
        text = f"Credit limit changed from {to_money(old_limit)} to {to_money(new_limit)}"
        if reason:
            text = f"{text} - {reason}"
        return await LedgerJournal.append(db, JournalEntryDraft(
            account=account,
            entry_date=date.today(),
            description=text,
            entry_type=LedgerEntryType.CREDIT_LIMIT_CHANGE,
            reference=new_reference("CL"),
        ))

    @staticmethod
    async def entries_for(
        db: AsyncSession,
        account: AccountRef,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
    ) -> List[LedgerEntry]:
        """Entries of one account in journal order (date, then insertion)."""
        stmt = select(LedgerEntry).where(account.criteria())
        if date_from is not None:
            stmt = stmt.where(LedgerEntry.date >= date_from)
        if date_to is not None:
            stmt = stmt.where(LedgerEntry.date <= date_to)
        stmt = stmt.order_by(LedgerEntry.date, LedgerEntry.id)

        result = await db.execute(stmt)
        return list(result.scalars().all())
