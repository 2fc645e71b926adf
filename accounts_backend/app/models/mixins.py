"""
Shared column sets for the accounts models.
"""

from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import Column, Date, DateTime, Enum, JSON, Numeric, String, Text

from accounts_backend.app.models.billing_enums import DocumentStatus, PaymentMethod, PaymentStatus

MONEY = Numeric(14, 2)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TimestampMixin:
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)


class SettlementDocumentMixin(TimestampMixin):
    """
    Money columns shared by Sale and Invoice.

    ``remaining_amount`` is stored alongside ``amount`` and ``paid_amount`` and
    must always equal ``amount - paid_amount``. Only the settlement engine
    writes these three columns and ``status``.
    """

    date = Column(Date, nullable=False)
    due_date = Column(Date, nullable=True)
    items = Column(JSON, nullable=False, default=list)

    amount = Column(MONEY, nullable=False)
    paid_amount = Column(MONEY, nullable=False, default=Decimal("0"))
    remaining_amount = Column(MONEY, nullable=False)
    status = Column(Enum(DocumentStatus), nullable=False, default=DocumentStatus.PENDING, index=True)

    notes = Column(Text, nullable=True)
    cancellation_reason = Column(String(255), nullable=True)


class SettlementPaymentMixin(TimestampMixin):
    """Columns shared by SaleReceipt and InvoicePayment."""

    date = Column(Date, nullable=False)
    amount = Column(MONEY, nullable=False)
    method = Column(Enum(PaymentMethod), nullable=False, default=PaymentMethod.CASH)
    status = Column(Enum(PaymentStatus), nullable=False, default=PaymentStatus.COMPLETED)

    cheque_no = Column(String(50), nullable=True)
    bank_name = Column(String(100), nullable=True)
    reference = Column(String(100), nullable=True)
    notes = Column(Text, nullable=True)

    reversed_at = Column(DateTime(timezone=True), nullable=True)
    reversal_reason = Column(String(255), nullable=True)
