"""
Document status rules.

Status is a pure function of ``amount`` and ``paid_amount``; CANCELLED is the
only status set explicitly. OVERDUE is never stored: it is derived from
``due_date`` whenever a document is read.
"""

from datetime import date
from decimal import Decimal

from accounts_backend.app.core.exceptions import InvalidStateTransitionError, ValidationFailedError
from accounts_backend.app.domain.money import to_money
from accounts_backend.app.models.billing_enums import DocumentStatus

OPEN_STATUSES = frozenset({DocumentStatus.PENDING, DocumentStatus.PARTIALLY_PAID})


def derive_status(amount: Decimal, paid_amount: Decimal) -> DocumentStatus:
    remaining = to_money(amount) - to_money(paid_amount)
    if remaining <= 0:
        return DocumentStatus.PAID
    if remaining < to_money(amount):
        return DocumentStatus.PARTIALLY_PAID
    return DocumentStatus.PENDING


def apply_amounts(document, amount: Decimal, paid_amount: Decimal) -> None:
    """Write amount, paid, remaining and derived status together."""
    amount = to_money(amount)
    paid_amount = to_money(paid_amount)
    if paid_amount < 0:
        raise InvalidStateTransitionError(
            "Paid amount cannot become negative",
            details={"paid_amount": str(paid_amount)},
        )
    document.amount = amount
    document.paid_amount = paid_amount
    document.remaining_amount = amount - paid_amount
    document.status = derive_status(amount, paid_amount)


def ensure_accepts_payment(document) -> None:
    if document.status not in OPEN_STATUSES:
        raise InvalidStateTransitionError(
            f"Cannot allocate a payment to a {document.status.value} document",
            details={"document_id": document.id, "status": document.status.value},
        )


def ensure_cancellable(document) -> None:
    if document.status == DocumentStatus.CANCELLED:
        raise InvalidStateTransitionError(
            "Document is already cancelled",
            details={"document_id": document.id},
        )
    if to_money(document.paid_amount) > 0 or document.status not in OPEN_STATUSES:
        raise InvalidStateTransitionError(
            "Cannot cancel a document with payments; reverse the payments first",
            details={
                "document_id": document.id,
                "status": document.status.value,
                "paid_amount": str(document.paid_amount),
            },
        )


def ensure_amount_editable(document, new_amount: Decimal) -> None:
    if document.status not in OPEN_STATUSES:
        raise InvalidStateTransitionError(
            f"Cannot change the amount of a {document.status.value} document",
            details={"document_id": document.id, "status": document.status.value},
        )
    new_amount = to_money(new_amount)
    if new_amount <= 0:
        raise ValidationFailedError("Amount must be greater than zero")
    if new_amount < to_money(document.paid_amount):
        raise ValidationFailedError(
            "Amount cannot be less than the amount already paid",
            details={"paid_amount": str(document.paid_amount), "amount": str(new_amount)},
        )
    if new_amount == to_money(document.amount):
        raise ValidationFailedError("Amount is unchanged")


def is_overdue(document, as_of: date) -> bool:
    return (
        document.due_date is not None
        and document.due_date < as_of
        and document.status in OPEN_STATUSES
    )
