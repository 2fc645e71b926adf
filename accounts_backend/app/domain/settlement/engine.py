"""
Settlement Engine (Domain Logic).

Orchestrates the sale / invoice lifecycle: creation, payment allocation,
reversal, amount changes and cancellation. Each public operation is one
unit of work: the document update, its ledger entries and any stock
movements commit or roll back together. Events are published only after
the commit succeeds.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import List, Optional, Sequence, Union

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from accounts_backend.app.core.config import settings
from accounts_backend.app.core.exceptions import (
    ConflictError,
    InsufficientBalanceError,
    InvalidStateTransitionError,
    ResourceNotFoundError,
    ValidationFailedError,
)
from accounts_backend.app.db.session import transaction
from accounts_backend.app.domain.events import (
    INVOICE_FIELDS,
    INVOICE_PAYMENT_FIELDS,
    SALE_FIELDS,
    SALE_RECEIPT_FIELDS,
    EventBuffer,
    EventTopic,
    snapshot,
)
from accounts_backend.app.domain.inventory.stock_ledger import InventoryStockLedger
from accounts_backend.app.domain.ledger.account import AccountRef, CustomerAccount, PartyAccount
from accounts_backend.app.domain.ledger.journal import JournalEntryDraft, LedgerJournal
from accounts_backend.app.domain.money import ZERO, to_money
from accounts_backend.app.domain.settlement.credit_guard import CreditCheck, CreditLimitGuard
from accounts_backend.app.domain.settlement.lines import (
    DocumentLine,
    document_total,
    serialize_lines,
    stock_lines,
    stored_lines,
)
from accounts_backend.app.domain.settlement.state import (
    OPEN_STATUSES,
    apply_amounts,
    ensure_accepts_payment,
    ensure_amount_editable,
    ensure_cancellable,
)
from accounts_backend.app.models.billing_enums import (
    DocumentStatus,
    LedgerEntryType,
    PaymentMethod,
    PaymentStatus,
)
from accounts_backend.app.models.customer import Customer
from accounts_backend.app.models.inventory_enums import RestockReason
from accounts_backend.app.models.invoice import Invoice
from accounts_backend.app.models.invoice_payment import InvoicePayment
from accounts_backend.app.models.party import Party
from accounts_backend.app.models.sale import Sale
from accounts_backend.app.models.sale_receipt import SaleReceipt
from accounts_backend.app.services.event_publisher import EventPublisher, publish_events

logger = logging.getLogger("accounts.settlement")

Document = Union[Sale, Invoice]
Payment = Union[SaleReceipt, InvoicePayment]


@dataclass(frozen=True)
class _DocumentProfile:
    label: str
    fields: tuple
    updated: EventTopic
    partially_paid: EventTopic
    paid: EventTopic
    cancelled: EventTopic


_PROFILES = {
    Sale: _DocumentProfile(
        label="Sale",
        fields=SALE_FIELDS,
        updated=EventTopic.SALE_UPDATED,
        partially_paid=EventTopic.SALE_PARTIALLY_PAID,
        paid=EventTopic.SALE_PAID,
        cancelled=EventTopic.SALE_CANCELLED,
    ),
    Invoice: _DocumentProfile(
        label="Invoice",
        fields=INVOICE_FIELDS,
        updated=EventTopic.INVOICE_UPDATED,
        partially_paid=EventTopic.INVOICE_PARTIALLY_PAID,
        paid=EventTopic.INVOICE_PAID,
        cancelled=EventTopic.INVOICE_CANCELLED,
    ),
}


def account_for(record) -> AccountRef:
    """Account a document or payment is booked against."""
    if isinstance(record, (Sale, SaleReceipt)):
        return CustomerAccount(owner_id=record.owner_id, customer_id=record.customer_id)
    return PartyAccount(owner_id=record.owner_id, party_id=record.party_id)


def _document_links(document: Optional[Document]) -> dict:
    if isinstance(document, Sale):
        return {"sale_id": document.id}
    if isinstance(document, Invoice):
        return {"invoice_id": document.id}
    return {}


def _payment_links(payment: Payment) -> dict:
    if isinstance(payment, SaleReceipt):
        return {"sale_receipt_id": payment.id}
    return {"invoice_payment_id": payment.id}


def _positive(amount, what: str = "Amount") -> Decimal:
    amount = to_money(amount)
    if amount <= 0:
        raise ValidationFailedError(f"{what} must be greater than zero", details={"amount": str(amount)})
    return amount


class SettlementEngine:
    """
    Document settlement orchestrator.

    Args:
        db: Session the engine runs its units of work on
        publisher: Receives committed events
        sale_stock_reduction: "on_payment" takes a sale's stock out when the
            first payment is allocated, "on_create" when the sale is created
    """

    def __init__(self, db: AsyncSession, publisher: EventPublisher, sale_stock_reduction: str = None):
        self.db = db
        self.publisher = publisher
        self.sale_stock_reduction = sale_stock_reduction or settings.sale_stock_reduction

    async def _publish(self, events: EventBuffer) -> None:
        await publish_events(self.publisher, events.events)

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    async def _get(self, model, owner_id: int, record_id: int, for_update: bool = False):
        stmt = select(model).where(model.id == record_id, model.owner_id == owner_id)
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        record = (await self.db.execute(stmt)).scalar_one_or_none()
        if record is None:
            label = _PROFILES[model].label if model in _PROFILES else model.__name__
            raise ResourceNotFoundError(label, record_id)
        return record

    async def _active_counterparty(self, model, owner_id: int, record_id: int):
        record = await self._get(model, owner_id, record_id)
        if not record.is_active:
            raise ValidationFailedError(f"{model.__name__} {record_id} is inactive")
        return record

    async def _ensure_unique(self, model, column, value, **scope) -> None:
        stmt = select(model.id).where(column == value, *[getattr(model, k) == v for k, v in scope.items()])
        if (await self.db.execute(stmt)).first() is not None:
            raise ConflictError(model.__name__, column.key, value)

    async def _insert(self, record, column_name: str) -> None:
        self.db.add(record)
        try:
            await self.db.flush()
        except IntegrityError:
            raise ConflictError(type(record).__name__, column_name, getattr(record, column_name))

    # ------------------------------------------------------------------
    # In-transaction primitives
    # ------------------------------------------------------------------

    def _status_event(self, document: Document, events: EventBuffer, before: dict, **extra) -> None:
        profile = _PROFILES[type(document)]
        if document.status == DocumentStatus.PAID and before["status"] != DocumentStatus.PAID.value:
            topic = profile.paid
        elif document.status == DocumentStatus.PARTIALLY_PAID and before["status"] == DocumentStatus.PENDING.value:
            topic = profile.partially_paid
        else:
            topic = profile.updated
        events.add(topic, document.id, {**snapshot(document, *profile.fields), "previous": before, **extra})

    async def allocate_payment(self, document: Document, amount: Decimal, events: EventBuffer) -> Document:
        """
        Apply ``amount`` to an open document inside the current transaction.

        For a sale in "on_payment" mode the first allocation also takes its
        line items out of stock; a shortfall fails the whole settlement.

        Raises:
            InvalidStateTransitionError: document is PAID or CANCELLED
            InsufficientBalanceError: amount exceeds the remaining amount
        """
        amount = _positive(amount, "Payment amount")
        ensure_accepts_payment(document)

        remaining = to_money(document.remaining_amount)
        if amount > remaining:
            raise InsufficientBalanceError(amount, remaining, details={"document_id": document.id})

        before = snapshot(document, "status", "paid_amount", "remaining_amount")
        apply_amounts(document, document.amount, to_money(document.paid_amount) + amount)

        if (
            isinstance(document, Sale)
            and self.sale_stock_reduction == "on_payment"
            and not document.stock_committed
        ):
            await self._issue_sale_stock(document, events)

        await self.db.flush()
        self._status_event(document, events, before, allocated=str(amount))

        logger.info(
            "Payment allocated",
            extra={
                "document_type": type(document).__name__,
                "document_id": document.id,
                "allocated": str(amount),
                "status": document.status.value,
                "remaining_amount": str(document.remaining_amount),
            },
        )
        return document

    async def reverse(
        self,
        document: Optional[Document],
        account: AccountRef,
        amount: Decimal,
        reason: str,
        description: str,
        events: EventBuffer,
        payment: Optional[Payment] = None,
    ) -> Optional[Document]:
        """
        Undo ``amount`` of payment inside the current transaction.

        Appends an ADJUSTMENT that raises the account balance back by
        ``amount`` and, when a document is given, takes the amount off its
        paid total and re-derives its status.

        Raises:
            InvalidStateTransitionError: the document's paid amount would go negative
        """
        amount = _positive(amount)

        if document is not None:
            paid = to_money(document.paid_amount)
            if amount > paid:
                raise InvalidStateTransitionError(
                    "Reversal would drive the paid amount negative",
                    details={"document_id": document.id, "paid_amount": str(paid), "amount": str(amount)},
                )
            before = snapshot(document, "status", "paid_amount", "remaining_amount")
            apply_amounts(document, document.amount, paid - amount)
            await self.db.flush()
            self._status_event(document, events, before, reversed=str(amount))

        links = _document_links(document)
        if payment is not None:
            links.update(_payment_links(payment))

        await LedgerJournal.append_adjustment(
            self.db, account, amount, description, reason,
            reference=payment.number if payment is not None else None,
            **links,
        )
        return document

    async def _issue_sale_stock(self, sale: Sale, events: EventBuffer) -> None:
        for line in stock_lines(stored_lines(sale.items)):
            await InventoryStockLedger.reduce_stock(
                self.db, sale.owner_id, line.inventory_item_id, line.quantity,
                reference=sale.sale_no, events=events, reason=f"Sale {sale.sale_no}",
            )
        sale.stock_committed = True

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    async def create_sale(
        self,
        owner_id: int,
        customer_id: int,
        sale_no: str,
        sale_date: date,
        lines: Sequence[DocumentLine] = (),
        amount: Optional[Decimal] = None,
        discount: Decimal = ZERO,
        round_off: Decimal = ZERO,
        due_date: Optional[date] = None,
        voucher_id: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> Sale:
        """
        Create a sale and debit the customer's account.

        The credit limit is consulted but never blocks. In "on_create" mode
        the line items are taken out of stock in the same transaction.

        Raises:
            ValidationFailedError: amount not positive, or does not match lines
            ConflictError: sale_no already used for this customer
            InsufficientStockError: "on_create" mode and a line is short
        """
        amount = self._document_amount(lines, amount, discount, round_off)
        events = EventBuffer()

        async with transaction(self.db):
            await self._active_counterparty(Customer, owner_id, customer_id)
            await self._ensure_unique(Sale, Sale.sale_no, sale_no, owner_id=owner_id, customer_id=customer_id)

            account = CustomerAccount(owner_id=owner_id, customer_id=customer_id)
            credit = await CreditLimitGuard.evaluate(self.db, account, amount)

            if lines and self.sale_stock_reduction == "on_payment":
                availability = await InventoryStockLedger.check_availability(self.db, owner_id, stock_lines(lines))
                if not availability.available:
                    logger.warning(
                        "Sale created with insufficient stock",
                        extra={
                            "sale_no": sale_no,
                            "shortfalls": [s.inventory_item_id for s in availability.shortfalls],
                        },
                    )

            sale = Sale(
                owner_id=owner_id,
                customer_id=customer_id,
                sale_no=sale_no,
                voucher_id=voucher_id,
                date=sale_date,
                due_date=due_date,
                items=serialize_lines(lines),
                notes=notes,
                stock_committed=False,
            )
            apply_amounts(sale, amount, ZERO)
            await self._insert(sale, "sale_no")

            await LedgerJournal.append(self.db, JournalEntryDraft(
                account=account,
                entry_date=sale_date,
                description=f"Sale {sale_no}",
                entry_type=LedgerEntryType.SALE_CREATED,
                debit=amount,
                reference=sale_no,
                sale_id=sale.id,
            ))

            if self.sale_stock_reduction == "on_create":
                await self._issue_sale_stock(sale, events)
                await self.db.flush()

            events.add(EventTopic.SALE_CREATED, sale.id, snapshot(sale, *SALE_FIELDS))
            if credit.exceeds:
                events.add(EventTopic.CUSTOMER_CREDIT_LIMIT_EXCEEDED, customer_id, _credit_payload(credit, sale))

        logger.info("Sale created", extra={"sale_id": sale.id, "sale_no": sale_no, "amount": str(amount)})
        await self._publish(events)
        return sale

    async def create_invoice(
        self,
        owner_id: int,
        party_id: int,
        invoice_no: str,
        invoice_date: date,
        lines: Sequence[DocumentLine] = (),
        amount: Optional[Decimal] = None,
        discount: Decimal = ZERO,
        round_off: Decimal = ZERO,
        due_date: Optional[date] = None,
        voucher_id: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> Invoice:
        """
        Record a supplier invoice and credit the party's account.

        Lines tied to an inventory item are received into stock at their
        unit price in the same transaction.
        """
        amount = self._document_amount(lines, amount, discount, round_off)
        events = EventBuffer()

        async with transaction(self.db):
            await self._active_counterparty(Party, owner_id, party_id)
            await self._ensure_unique(Invoice, Invoice.invoice_no, invoice_no, owner_id=owner_id, party_id=party_id)

            invoice = Invoice(
                owner_id=owner_id,
                party_id=party_id,
                invoice_no=invoice_no,
                voucher_id=voucher_id,
                date=invoice_date,
                due_date=due_date,
                items=serialize_lines(lines),
                notes=notes,
                stock_received=False,
            )
            apply_amounts(invoice, amount, ZERO)
            await self._insert(invoice, "invoice_no")

            await LedgerJournal.append(self.db, JournalEntryDraft(
                account=PartyAccount(owner_id=owner_id, party_id=party_id),
                entry_date=invoice_date,
                description=f"Invoice {invoice_no}",
                entry_type=LedgerEntryType.INVOICE_CREATED,
                credit=amount,
                reference=invoice_no,
                invoice_id=invoice.id,
            ))

            received = [line for line in lines if line.inventory_item_id is not None]
            for line in received:
                await InventoryStockLedger.add_stock(
                    self.db, owner_id, line.inventory_item_id, line.quantity, line.unit_price,
                    reference=invoice_no, events=events,
                    reason=f"Invoice {invoice_no}", received_on=invoice_date,
                )
            if received:
                invoice.stock_received = True
                await self.db.flush()

            events.add(EventTopic.INVOICE_CREATED, invoice.id, snapshot(invoice, *INVOICE_FIELDS))

        logger.info("Invoice created", extra={"invoice_id": invoice.id, "invoice_no": invoice_no, "amount": str(amount)})
        await self._publish(events)
        return invoice

    def _document_amount(self, lines, amount, discount, round_off) -> Decimal:
        if lines:
            computed = document_total(lines, discount, round_off)
            if amount is not None and to_money(amount) != computed:
                raise ValidationFailedError(
                    "Amount does not match line items",
                    details={"amount": str(to_money(amount)), "computed": str(computed)},
                )
            amount = computed
        elif amount is None:
            raise ValidationFailedError("Either line items or an amount is required")
        return _positive(amount)

    async def cancel_sale(self, owner_id: int, sale_id: int, reason: str) -> Sale:
        """
        Cancel an unpaid sale.

        Appends a full offsetting credit and restores any stock the sale had
        already taken out.
        """
        events = EventBuffer()
        async with transaction(self.db):
            sale = await self._get(Sale, owner_id, sale_id, for_update=True)
            ensure_cancellable(sale)

            await LedgerJournal.append_adjustment(
                self.db, account_for(sale), -to_money(sale.amount),
                f"Sale {sale.sale_no} cancelled", reason,
                reference=sale.sale_no, sale_id=sale.id,
            )

            if sale.stock_committed:
                for line in stock_lines(stored_lines(sale.items)):
                    await InventoryStockLedger.restore_stock(
                        self.db, owner_id, line.inventory_item_id, line.quantity,
                        reference=sale.sale_no, reason_kind=RestockReason.CANCELLED, events=events,
                    )
                sale.stock_committed = False

            self._mark_cancelled(sale, reason)
            await self.db.flush()
            events.add(EventTopic.SALE_CANCELLED, sale.id, {**snapshot(sale, *SALE_FIELDS), "reason": reason})

        logger.info("Sale cancelled", extra={"sale_id": sale.id, "reason": reason})
        await self._publish(events)
        return sale

    async def cancel_invoice(self, owner_id: int, invoice_id: int, reason: str) -> Invoice:
        """
        Cancel an unpaid invoice.

        Stock received with the invoice is issued back out, which fails with
        INSUFFICIENT_STOCK if it has since been sold.
        """
        events = EventBuffer()
        async with transaction(self.db):
            invoice = await self._get(Invoice, owner_id, invoice_id, for_update=True)
            ensure_cancellable(invoice)

            await LedgerJournal.append_adjustment(
                self.db, account_for(invoice), -to_money(invoice.amount),
                f"Invoice {invoice.invoice_no} cancelled", reason,
                reference=invoice.invoice_no, invoice_id=invoice.id,
            )

            if invoice.stock_received:
                for line in stock_lines(stored_lines(invoice.items)):
                    await InventoryStockLedger.reduce_stock(
                        self.db, owner_id, line.inventory_item_id, line.quantity,
                        reference=invoice.invoice_no, events=events,
                        reason=f"Invoice {invoice.invoice_no} cancelled",
                    )
                invoice.stock_received = False

            self._mark_cancelled(invoice, reason)
            await self.db.flush()
            events.add(EventTopic.INVOICE_CANCELLED, invoice.id, {**snapshot(invoice, *INVOICE_FIELDS), "reason": reason})

        logger.info("Invoice cancelled", extra={"invoice_id": invoice.id, "reason": reason})
        await self._publish(events)
        return invoice

    @staticmethod
    def _mark_cancelled(document: Document, reason: str) -> None:
        document.status = DocumentStatus.CANCELLED
        document.cancellation_reason = reason

    async def change_document_amount(self, model, owner_id: int, document_id: int, new_amount: Decimal, reason: str) -> Document:
        """
        Change the amount of an open sale or invoice.

        The difference is booked as an ADJUSTMENT linked to the document and
        the status is re-derived.
        """
        events = EventBuffer()
        async with transaction(self.db):
            document = await self._get(model, owner_id, document_id, for_update=True)
            ensure_amount_editable(document, new_amount)

            new_amount = to_money(new_amount)
            difference = new_amount - to_money(document.amount)
            before = snapshot(document, "status", "amount", "paid_amount", "remaining_amount")

            await LedgerJournal.append_adjustment(
                self.db, account_for(document), difference,
                f"{_PROFILES[model].label} {document.number} amount changed", reason,
                reference=document.number, **_document_links(document),
            )
            apply_amounts(document, new_amount, document.paid_amount)
            await self.db.flush()
            self._status_event(document, events, before, reason=reason)

        await self._publish(events)
        return document

    async def change_sale_amount(self, owner_id: int, sale_id: int, new_amount: Decimal, reason: str) -> Sale:
        return await self.change_document_amount(Sale, owner_id, sale_id, new_amount, reason)

    async def change_invoice_amount(self, owner_id: int, invoice_id: int, new_amount: Decimal, reason: str) -> Invoice:
        return await self.change_document_amount(Invoice, owner_id, invoice_id, new_amount, reason)

    # ------------------------------------------------------------------
    # Payments
    # ------------------------------------------------------------------

    async def record_sale_receipt(
        self,
        owner_id: int,
        customer_id: int,
        receipt_no: str,
        amount: Decimal,
        receipt_date: date,
        method: PaymentMethod = PaymentMethod.CASH,
        sale_id: Optional[int] = None,
        cheque_no: Optional[str] = None,
        bank_name: Optional[str] = None,
        reference: Optional[str] = None,
        voucher_id: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> SaleReceipt:
        """
        Record money received from a customer.

        With ``sale_id`` the amount is allocated to that sale; without it the
        receipt is an advance that only credits the customer's account.
        Cheque receipts stay PENDING until cleared.
        """
        amount = _positive(amount, "Receipt amount")
        if method == PaymentMethod.CHEQUE and not cheque_no:
            raise ValidationFailedError("Cheque number is required for cheque receipts")

        events = EventBuffer()
        async with transaction(self.db):
            await self._active_counterparty(Customer, owner_id, customer_id)
            await self._ensure_unique(
                SaleReceipt, SaleReceipt.receipt_no, receipt_no, owner_id=owner_id, customer_id=customer_id
            )

            sale = None
            if sale_id is not None:
                sale = await self._get(Sale, owner_id, sale_id, for_update=True)
                if sale.customer_id != customer_id:
                    raise ValidationFailedError(
                        "Sale belongs to a different customer",
                        details={"sale_id": sale_id, "customer_id": customer_id},
                    )
                await self.allocate_payment(sale, amount, events)

            receipt = SaleReceipt(
                owner_id=owner_id,
                customer_id=customer_id,
                sale_id=sale_id,
                receipt_no=receipt_no,
                voucher_id=voucher_id,
                date=receipt_date,
                amount=amount,
                method=method,
                status=PaymentStatus.PENDING if method == PaymentMethod.CHEQUE else PaymentStatus.COMPLETED,
                cheque_no=cheque_no,
                bank_name=bank_name,
                reference=reference,
                notes=notes,
                charges=ZERO,
            )
            await self._insert(receipt, "receipt_no")

            await LedgerJournal.append(self.db, JournalEntryDraft(
                account=CustomerAccount(owner_id=owner_id, customer_id=customer_id),
                entry_date=receipt_date,
                description=f"Receipt {receipt_no}" + (f" against sale {sale.sale_no}" if sale else ""),
                entry_type=LedgerEntryType.SALE_RECEIPT,
                credit=amount,
                reference=receipt_no,
                sale_id=sale_id,
                sale_receipt_id=receipt.id,
            ))

            events.add(EventTopic.SALE_RECEIPT_CREATED, receipt.id, snapshot(receipt, *SALE_RECEIPT_FIELDS))

        logger.info("Sale receipt recorded", extra={"receipt_id": receipt.id, "amount": str(amount), "sale_id": sale_id})
        await self._publish(events)
        return receipt

    async def record_invoice_payment(
        self,
        owner_id: int,
        party_id: int,
        voucher_no: str,
        amount: Decimal,
        payment_date: date,
        method: PaymentMethod = PaymentMethod.CASH,
        invoice_id: Optional[int] = None,
        cheque_no: Optional[str] = None,
        bank_name: Optional[str] = None,
        reference: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> InvoicePayment:
        """Record money paid to a party, optionally allocated to one invoice."""
        amount = _positive(amount, "Payment amount")

        events = EventBuffer()
        async with transaction(self.db):
            await self._active_counterparty(Party, owner_id, party_id)
            await self._ensure_unique(
                InvoicePayment, InvoicePayment.voucher_no, voucher_no, owner_id=owner_id, party_id=party_id
            )

            invoice = None
            if invoice_id is not None:
                invoice = await self._get(Invoice, owner_id, invoice_id, for_update=True)
                if invoice.party_id != party_id:
                    raise ValidationFailedError(
                        "Invoice belongs to a different party",
                        details={"invoice_id": invoice_id, "party_id": party_id},
                    )
                await self.allocate_payment(invoice, amount, events)

            payment = InvoicePayment(
                owner_id=owner_id,
                party_id=party_id,
                invoice_id=invoice_id,
                voucher_no=voucher_no,
                date=payment_date,
                amount=amount,
                method=method,
                status=PaymentStatus.COMPLETED,
                cheque_no=cheque_no,
                bank_name=bank_name,
                reference=reference,
                notes=notes,
            )
            await self._insert(payment, "voucher_no")

            await LedgerJournal.append(self.db, JournalEntryDraft(
                account=PartyAccount(owner_id=owner_id, party_id=party_id),
                entry_date=payment_date,
                description=f"Payment {voucher_no}" + (f" against invoice {invoice.invoice_no}" if invoice else ""),
                entry_type=LedgerEntryType.INVOICE_PAYMENT,
                debit=amount,
                reference=voucher_no,
                invoice_id=invoice_id,
                invoice_payment_id=payment.id,
            ))

            events.add(EventTopic.INVOICE_PAYMENT_CREATED, payment.id, snapshot(payment, *INVOICE_PAYMENT_FIELDS))

        logger.info("Invoice payment recorded", extra={"payment_id": payment.id, "amount": str(amount), "invoice_id": invoice_id})
        await self._publish(events)
        return payment

    @staticmethod
    def _ensure_receipt_reversible(receipt: SaleReceipt) -> None:
        if receipt.status == PaymentStatus.REVERSED:
            raise InvalidStateTransitionError("Receipt is already reversed", details={"receipt_id": receipt.id})
        if receipt.method == PaymentMethod.CHEQUE and receipt.clearance_date is not None:
            raise InvalidStateTransitionError(
                "Cannot modify a cheque receipt that has cleared",
                details={"receipt_id": receipt.id, "clearance_date": receipt.clearance_date.isoformat()},
            )

    @staticmethod
    def _ensure_payment_reversible(payment: InvoicePayment) -> None:
        if payment.status == PaymentStatus.REVERSED:
            raise InvalidStateTransitionError("Payment is already reversed", details={"payment_id": payment.id})
        if payment.status == PaymentStatus.COMPLETED and payment.method == PaymentMethod.CHEQUE:
            raise InvalidStateTransitionError(
                "Cannot modify a completed cheque payment",
                details={"payment_id": payment.id},
            )

    async def _linked_document(self, payment: Payment) -> Optional[Document]:
        if isinstance(payment, SaleReceipt) and payment.sale_id is not None:
            return await self._get(Sale, payment.owner_id, payment.sale_id, for_update=True)
        if isinstance(payment, InvoicePayment) and payment.invoice_id is not None:
            return await self._get(Invoice, payment.owner_id, payment.invoice_id, for_update=True)
        return None

    async def _reverse_payment(
        self, model, owner_id: int, payment_id: int, reason: str,
        guard, label: str, topic: EventTopic, fields: tuple,
    ) -> Payment:
        events = EventBuffer()
        async with transaction(self.db):
            payment = await self._get(model, owner_id, payment_id, for_update=True)
            guard(payment)

            document = await self._linked_document(payment)
            await self.reverse(
                document, account_for(payment), payment.amount, reason,
                f"{label} {payment.number} reversed", events, payment=payment,
            )
            payment.status = PaymentStatus.REVERSED
            payment.reversed_at = datetime.now(timezone.utc)
            payment.reversal_reason = reason
            await self.db.flush()
            events.add(topic, payment.id, {**snapshot(payment, *fields), "reason": reason})

        logger.info("Payment reversed", extra={"payment_type": model.__name__, "payment_id": payment.id})
        await self._publish(events)
        return payment

    async def reverse_sale_receipt(self, owner_id: int, receipt_id: int, reason: str) -> SaleReceipt:
        """
        Delete flow for a receipt: offset it and release its allocation.

        Refused once a cheque receipt has a clearance date.
        """
        return await self._reverse_payment(
            SaleReceipt, owner_id, receipt_id, reason, self._ensure_receipt_reversible,
            "Receipt", EventTopic.SALE_RECEIPT_DELETED, SALE_RECEIPT_FIELDS,
        )

    async def reverse_invoice_payment(self, owner_id: int, payment_id: int, reason: str) -> InvoicePayment:
        """
        Delete flow for an invoice payment.

        Refused for COMPLETED cheque payments.
        """
        return await self._reverse_payment(
            InvoicePayment, owner_id, payment_id, reason, self._ensure_payment_reversible,
            "Payment", EventTopic.INVOICE_PAYMENT_DELETED, INVOICE_PAYMENT_FIELDS,
        )

    async def change_payment_amount(self, model, owner_id: int, payment_id: int, new_amount: Decimal, reason: str) -> Payment:
        """
        Update flow for a receipt or invoice payment amount.

        An increase is allocated like a new payment, a decrease is reversed;
        either way the difference is booked as an ADJUSTMENT.
        """
        new_amount = _positive(new_amount)
        events = EventBuffer()

        async with transaction(self.db):
            payment = await self._get(model, owner_id, payment_id, for_update=True)
            if isinstance(payment, SaleReceipt):
                self._ensure_receipt_reversible(payment)
                topic, fields, label = EventTopic.SALE_RECEIPT_UPDATED, SALE_RECEIPT_FIELDS, "Receipt"
            else:
                self._ensure_payment_reversible(payment)
                topic, fields, label = EventTopic.INVOICE_PAYMENT_UPDATED, INVOICE_PAYMENT_FIELDS, "Payment"

            old_amount = to_money(payment.amount)
            difference = new_amount - old_amount
            if difference == 0:
                raise ValidationFailedError("Amount is unchanged")

            account = account_for(payment)
            document = await self._linked_document(payment)
            description = f"{label} {payment.number} amount changed"

            if difference > 0:
                if document is not None:
                    await self.allocate_payment(document, difference, events)
                links = {**_document_links(document), **_payment_links(payment)}
                await LedgerJournal.append_adjustment(
                    self.db, account, -difference, description, reason,
                    reference=payment.number, **links,
                )
            else:
                await self.reverse(document, account, -difference, reason, description, events, payment=payment)

            payment.amount = new_amount
            await self.db.flush()
            events.add(topic, payment.id, {
                **snapshot(payment, *fields),
                "previous_amount": str(old_amount),
                "reason": reason,
            })

        await self._publish(events)
        return payment

    async def mark_cheque_cleared(
        self,
        owner_id: int,
        receipt_id: int,
        clearance_date: Optional[date] = None,
        charges: Decimal = ZERO,
    ) -> SaleReceipt:
        """Reconcile a cheque receipt with the bank. Bank charges are recorded on the receipt only."""
        events = EventBuffer()
        async with transaction(self.db):
            receipt = await self._get(SaleReceipt, owner_id, receipt_id, for_update=True)
            if receipt.method != PaymentMethod.CHEQUE:
                raise ValidationFailedError("Only cheque receipts can be cleared", details={"receipt_id": receipt_id})
            if receipt.status == PaymentStatus.REVERSED:
                raise InvalidStateTransitionError("Receipt is reversed", details={"receipt_id": receipt_id})
            if receipt.clearance_date is not None:
                raise InvalidStateTransitionError("Cheque is already cleared", details={"receipt_id": receipt_id})
            if to_money(charges) < 0:
                raise ValidationFailedError("Charges must not be negative")

            receipt.clearance_date = clearance_date or date.today()
            receipt.charges = to_money(charges)
            receipt.status = PaymentStatus.COMPLETED
            await self.db.flush()
            events.add(EventTopic.SALE_RECEIPT_CLEARED, receipt.id, snapshot(receipt, *SALE_RECEIPT_FIELDS))

        await self._publish(events)
        return receipt

    # ------------------------------------------------------------------
    # Accounts
    # ------------------------------------------------------------------

    async def change_credit_limit(self, owner_id: int, customer_id: int, new_limit: Decimal, reason: Optional[str] = None) -> Customer:
        new_limit = to_money(new_limit)
        if new_limit < 0:
            raise ValidationFailedError("Credit limit must not be negative")

        events = EventBuffer()
        async with transaction(self.db):
            customer = await self._get(Customer, owner_id, customer_id, for_update=True)
            old_limit = to_money(customer.credit_limit)
            if old_limit == new_limit:
                return customer

            await LedgerJournal.log_credit_limit_change(
                self.db, CustomerAccount(owner_id=owner_id, customer_id=customer_id), old_limit, new_limit, reason
            )
            customer.credit_limit = new_limit
            await self.db.flush()
            events.add(EventTopic.CUSTOMER_CREDIT_LIMIT_CHANGED, customer.id, {
                "customer_id": customer.id,
                "previous_limit": str(old_limit),
                "credit_limit": str(new_limit),
                "reason": reason,
            })

        await self._publish(events)
        return customer

    async def record_opening_balance(
        self,
        account: AccountRef,
        amount: Decimal,
        entry_date: Optional[date] = None,
        description: str = "Opening balance",
    ) -> int:
        """Book a carried-in balance for a customer or party (signed)."""
        async with transaction(self.db):
            model = Customer if isinstance(account, CustomerAccount) else Party
            await self._get(model, account.owner_id, account.counterparty_id)
            entry_id = await LedgerJournal.append_opening_balance(self.db, account, amount, entry_date, description)
        return entry_id

    async def record_adjustment(
        self,
        account: AccountRef,
        amount: Decimal,
        description: str,
        reason: str,
        entry_date: Optional[date] = None,
    ) -> int:
        """Manual correction not tied to any document (signed effect on the balance)."""
        async with transaction(self.db):
            model = Customer if isinstance(account, CustomerAccount) else Party
            await self._get(model, account.owner_id, account.counterparty_id)
            entry_id = await LedgerJournal.append_adjustment(
                self.db, account, amount, description, reason, entry_date=entry_date,
            )
        return entry_id

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @staticmethod
    async def overdue_documents(db: AsyncSession, model, owner_id: int, as_of: Optional[date] = None) -> List[Document]:
        """Open documents whose due date is before ``as_of`` (today by default)."""
        as_of = as_of or date.today()
        result = await db.execute(
            select(model)
            .where(
                model.owner_id == owner_id,
                model.due_date.is_not(None),
                model.due_date < as_of,
                model.status.in_(list(OPEN_STATUSES)),
            )
            .order_by(model.due_date, model.id)
        )
        return list(result.scalars().all())


def _credit_payload(check: CreditCheck, sale: Sale) -> dict:
    return {
        "customer_id": sale.customer_id,
        "sale_id": sale.id,
        "credit_limit": str(check.credit_limit),
        "current_balance": str(check.current_balance),
        "projected_balance": str(check.projected_balance),
    }
