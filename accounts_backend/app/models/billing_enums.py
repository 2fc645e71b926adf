"""
Ledger and settlement enumerations.
"""

import enum


class PartyKind(str, enum.Enum):
    """Which side of the business an account belongs to."""
    CUSTOMER = "CUSTOMER"  # Receivable: positive balance = customer owes us
    PARTY = "PARTY"  # Payable: positive balance = we owe the supplier


class LedgerEntryType(str, enum.Enum):
    """Ledger entry type enumeration."""
    OPENING_BALANCE = "OPENING_BALANCE"
    SALE_CREATED = "SALE_CREATED"
    SALE_RECEIPT = "SALE_RECEIPT"
    INVOICE_CREATED = "INVOICE_CREATED"
    INVOICE_PAYMENT = "INVOICE_PAYMENT"
    ADJUSTMENT = "ADJUSTMENT"
    CREDIT_LIMIT_CHANGE = "CREDIT_LIMIT_CHANGE"  # Audit only, zero on both sides


class DocumentStatus(str, enum.Enum):
    """
    Sale / Invoice status.

    OVERDUE is not a stored status; it is derived from due_date at read time.
    """
    PENDING = "PENDING"
    PARTIALLY_PAID = "PARTIALLY_PAID"
    PAID = "PAID"
    CANCELLED = "CANCELLED"


class PaymentMethod(str, enum.Enum):
    CASH = "CASH"
    CHEQUE = "CHEQUE"
    BANK_TRANSFER = "BANK_TRANSFER"
    UPI = "UPI"
    CARD = "CARD"
    OTHER = "OTHER"


class PaymentStatus(str, enum.Enum):
    """Sale receipt / invoice payment status."""
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    REVERSED = "REVERSED"  # Offset by an adjustment entry; row kept for audit
