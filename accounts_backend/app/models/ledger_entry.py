"""
Ledger Entry database model.

Immutable debit/credit records. Account balances are folded from these rows.
"""

from sqlalchemy import CheckConstraint, Column, Date, DateTime, Enum, ForeignKey, Integer, String
from sqlalchemy.sql import func

from accounts_backend.app.db.session import Base
from accounts_backend.app.models.billing_enums import LedgerEntryType
from accounts_backend.app.models.mixins import MONEY, utcnow


class LedgerEntry(Base):
    """
    Ledger Entry model.

    Exactly one of customer_id / party_id is set. Rows are never updated or
    deleted; corrections are appended as ADJUSTMENT entries. Both sides are
    non-negative and at most one is nonzero, except audit-only entries
    (CREDIT_LIMIT_CHANGE) which carry zero on both sides.
    """
    __tablename__ = "ledger_entries"
    __table_args__ = (
        CheckConstraint(
            "(customer_id IS NULL) <> (party_id IS NULL)",
            name="ck_ledger_entries_single_account",
        ),
        CheckConstraint("debit >= 0 AND credit >= 0", name="ck_ledger_entries_non_negative"),
        CheckConstraint("debit = 0 OR credit = 0", name="ck_ledger_entries_one_side"),
    )

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    owner_id = Column(Integer, nullable=False, index=True)

    # Account
    customer_id = Column(Integer, ForeignKey("customers.id"), nullable=True, index=True)
    party_id = Column(Integer, ForeignKey("parties.id"), nullable=True, index=True)

    # Entry details
    date = Column(Date, nullable=False, index=True)
    description = Column(String(255), nullable=False)
    entry_type = Column(Enum(LedgerEntryType), nullable=False, index=True)
    reference = Column(String(100), nullable=True)

    # Financials
    debit = Column(MONEY, nullable=False, default=0)
    credit = Column(MONEY, nullable=False, default=0)

    # Linked document / payment
    sale_id = Column(Integer, ForeignKey("sales.id"), nullable=True, index=True)
    invoice_id = Column(Integer, ForeignKey("invoices.id"), nullable=True, index=True)
    sale_receipt_id = Column(Integer, ForeignKey("sale_receipts.id"), nullable=True)
    invoice_payment_id = Column(Integer, ForeignKey("invoice_payments.id"), nullable=True)

    # Timestamps (Immutable - no updated_at)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)

    @property
    def is_linked(self) -> bool:
        return any(
            ref is not None
            for ref in (self.sale_id, self.invoice_id, self.sale_receipt_id, self.invoice_payment_id)
        )

    def __repr__(self):
        return (
            f"<LedgerEntry(id={self.id}, type='{self.entry_type.value}', "
            f"debit={self.debit}, credit={self.credit})>"
        )
