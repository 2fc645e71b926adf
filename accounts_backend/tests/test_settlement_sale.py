"""
Sale Settlement Tests.

Sale lifecycle through the settlement engine: creation, receipts,
cancellation, amount changes and sale-driven stock reduction.
"""

import pytest
from datetime import date
from decimal import Decimal
from sqlalchemy import func, select

from accounts_backend.app.core.exceptions import (
    ConflictError,
    InsufficientBalanceError,
    InsufficientStockError,
    InvalidStateTransitionError,
    ValidationFailedError,
)
from accounts_backend.app.domain.events import EventTopic
from accounts_backend.app.domain.ledger.account import CustomerAccount
from accounts_backend.app.domain.ledger.balance import BalanceCalculator
from accounts_backend.app.domain.settlement.engine import SettlementEngine
from accounts_backend.app.domain.settlement.lines import DocumentLine
from accounts_backend.app.models.billing_enums import DocumentStatus, LedgerEntryType, PaymentMethod, PaymentStatus
from accounts_backend.app.models.ledger_entry import LedgerEntry
from accounts_backend.app.models.sale import Sale
from accounts_backend.app.models.sale_receipt import SaleReceipt

SALE_DATE = date(2024, 4, 1)


async def _entry_count(db) -> int:
    return (await db.execute(select(func.count(LedgerEntry.id)))).scalar_one()


async def _balance(db, customer) -> Decimal:
    return await BalanceCalculator.balance(db, CustomerAccount(customer.owner_id, customer.id))


def _assert_remaining(document):
    assert document.remaining_amount == document.amount - document.paid_amount


@pytest.mark.asyncio
async def test_create_sale_debits_customer(db_session, settlement, publisher, customer):
    sale = await settlement.create_sale(customer.owner_id, customer.id, "S-1", SALE_DATE, amount=Decimal("1000"))

    assert sale.status == DocumentStatus.PENDING
    assert sale.paid_amount == Decimal("0")
    assert sale.remaining_amount == Decimal("1000.00")
    assert await _balance(db_session, customer) == Decimal("1000.00")

    entry = (await db_session.execute(select(LedgerEntry))).scalar_one()
    assert entry.entry_type == LedgerEntryType.SALE_CREATED
    assert entry.debit == Decimal("1000.00")
    assert entry.sale_id == sale.id
    assert publisher.topics() == [EventTopic.SALE_CREATED]


@pytest.mark.asyncio
async def test_partial_then_full_payment(db_session, settlement, publisher, customer):
    sale = await settlement.create_sale(customer.owner_id, customer.id, "S-1", SALE_DATE, amount=Decimal("1000"))
    publisher.clear()

    await settlement.record_sale_receipt(
        customer.owner_id, customer.id, "R-1", Decimal("400"), SALE_DATE, sale_id=sale.id,
    )
    assert sale.status == DocumentStatus.PARTIALLY_PAID
    assert sale.remaining_amount == Decimal("600.00")
    _assert_remaining(sale)
    assert await _balance(db_session, customer) == Decimal("600.00")
    assert publisher.topics() == [EventTopic.SALE_PARTIALLY_PAID, EventTopic.SALE_RECEIPT_CREATED]

    publisher.clear()
    receipt = await settlement.record_sale_receipt(
        customer.owner_id, customer.id, "R-2", Decimal("600"), SALE_DATE, sale_id=sale.id,
    )
    assert receipt.status == PaymentStatus.COMPLETED
    assert sale.status == DocumentStatus.PAID
    assert sale.remaining_amount == Decimal("0.00")
    _assert_remaining(sale)
    assert await _balance(db_session, customer) == Decimal("0.00")
    assert publisher.topics() == [EventTopic.SALE_PAID, EventTopic.SALE_RECEIPT_CREATED]


@pytest.mark.asyncio
async def test_payment_on_paid_sale_is_rejected(db_session, settlement, customer):
    sale = await settlement.create_sale(customer.owner_id, customer.id, "S-1", SALE_DATE, amount=Decimal("100"))
    await settlement.record_sale_receipt(customer.owner_id, customer.id, "R-1", Decimal("100"), SALE_DATE, sale_id=sale.id)

    with pytest.raises(InvalidStateTransitionError):
        await settlement.record_sale_receipt(
            customer.owner_id, customer.id, "R-2", Decimal("1"), SALE_DATE, sale_id=sale.id,
        )


@pytest.mark.asyncio
async def test_overpayment_writes_nothing(db_session, settlement, publisher, customer):
    sale = await settlement.create_sale(customer.owner_id, customer.id, "S-1", SALE_DATE, amount=Decimal("1000"))
    await settlement.record_sale_receipt(customer.owner_id, customer.id, "R-1", Decimal("400"), SALE_DATE, sale_id=sale.id)
    entries_before = await _entry_count(db_session)
    publisher.clear()

    with pytest.raises(InsufficientBalanceError) as exc_info:
        await settlement.record_sale_receipt(
            customer.owner_id, customer.id, "R-2", Decimal("700"), SALE_DATE, sale_id=sale.id,
        )

    assert exc_info.value.error_code == "INSUFFICIENT_BALANCE"
    assert publisher.events == []

    await db_session.refresh(sale)
    assert sale.paid_amount == Decimal("400.00")
    assert sale.status == DocumentStatus.PARTIALLY_PAID
    assert await _entry_count(db_session) == entries_before
    receipts = (await db_session.execute(select(SaleReceipt))).scalars().all()
    assert [r.receipt_no for r in receipts] == ["R-1"]


@pytest.mark.asyncio
async def test_advance_receipt_credits_account_only(db_session, settlement, customer):
    receipt = await settlement.record_sale_receipt(customer.owner_id, customer.id, "ADV-1", Decimal("250"), SALE_DATE)

    assert receipt.sale_id is None
    assert await _balance(db_session, customer) == Decimal("-250.00")


@pytest.mark.asyncio
async def test_cheque_receipt_requires_number_and_starts_pending(db_session, settlement, publisher, customer):
    with pytest.raises(ValidationFailedError):
        await settlement.record_sale_receipt(
            customer.owner_id, customer.id, "R-1", Decimal("50"), SALE_DATE, method=PaymentMethod.CHEQUE,
        )

    receipt = await settlement.record_sale_receipt(
        customer.owner_id, customer.id, "R-1", Decimal("50"), SALE_DATE,
        method=PaymentMethod.CHEQUE, cheque_no="000123", bank_name="SBI",
    )
    assert receipt.status == PaymentStatus.PENDING

    cleared = await settlement.mark_cheque_cleared(customer.owner_id, receipt.id, date(2024, 4, 5), Decimal("15"))
    assert cleared.status == PaymentStatus.COMPLETED
    assert cleared.clearance_date == date(2024, 4, 5)
    assert cleared.charges == Decimal("15.00")
    assert publisher.topics()[-1] == EventTopic.SALE_RECEIPT_CLEARED
    # Bank charges do not touch the ledger
    assert await _balance(db_session, customer) == Decimal("-50.00")

    with pytest.raises(InvalidStateTransitionError):
        await settlement.mark_cheque_cleared(customer.owner_id, receipt.id)


@pytest.mark.asyncio
async def test_cancel_pending_sale(db_session, settlement, publisher, customer):
    sale = await settlement.create_sale(customer.owner_id, customer.id, "S-1", SALE_DATE, amount=Decimal("1000"))
    publisher.clear()

    await settlement.cancel_sale(customer.owner_id, sale.id, "Order withdrawn")

    assert sale.status == DocumentStatus.CANCELLED
    assert sale.cancellation_reason == "Order withdrawn"
    _assert_remaining(sale)
    assert await _balance(db_session, customer) == Decimal("0.00")

    adjustments = (await db_session.execute(
        select(LedgerEntry).where(LedgerEntry.entry_type == LedgerEntryType.ADJUSTMENT)
    )).scalars().all()
    assert len(adjustments) == 1
    assert adjustments[0].sale_id == sale.id
    assert adjustments[0].credit == Decimal("1000.00")
    assert adjustments[0].debit == Decimal("0.00")
    assert publisher.topics() == [EventTopic.SALE_CANCELLED]

    with pytest.raises(InvalidStateTransitionError):
        await settlement.cancel_sale(customer.owner_id, sale.id, "Again")


@pytest.mark.asyncio
async def test_cancel_sale_with_payment_is_rejected(db_session, settlement, customer):
    sale = await settlement.create_sale(customer.owner_id, customer.id, "S-1", SALE_DATE, amount=Decimal("1000"))
    await settlement.record_sale_receipt(customer.owner_id, customer.id, "R-1", Decimal("400"), SALE_DATE, sale_id=sale.id)

    with pytest.raises(InvalidStateTransitionError):
        await settlement.cancel_sale(customer.owner_id, sale.id, "Too late")

    await db_session.refresh(sale)
    assert sale.status == DocumentStatus.PARTIALLY_PAID


@pytest.mark.asyncio
async def test_sale_from_lines_and_amount_mismatch(db_session, settlement, customer):
    lines = [DocumentLine("Chair", 4, Decimal("250")), DocumentLine("Table", 1, Decimal("1200"))]

    sale = await settlement.create_sale(
        customer.owner_id, customer.id, "S-1", SALE_DATE, lines=lines,
        discount=Decimal("100"), round_off=Decimal("0.50"),
    )
    assert sale.amount == Decimal("2100.50")
    assert len(sale.items) == 2

    with pytest.raises(ValidationFailedError):
        await settlement.create_sale(customer.owner_id, customer.id, "S-2", SALE_DATE, lines=lines, amount=Decimal("5"))


@pytest.mark.asyncio
async def test_duplicate_sale_number(db_session, settlement, customer):
    await settlement.create_sale(customer.owner_id, customer.id, "S-1", SALE_DATE, amount=Decimal("10"))

    with pytest.raises(ConflictError):
        await settlement.create_sale(customer.owner_id, customer.id, "S-1", SALE_DATE, amount=Decimal("20"))


@pytest.mark.asyncio
async def test_sale_for_inactive_customer(db_session, settlement, customer):
    customer.is_active = False
    await db_session.commit()

    with pytest.raises(ValidationFailedError):
        await settlement.create_sale(customer.owner_id, customer.id, "S-1", SALE_DATE, amount=Decimal("10"))


@pytest.mark.asyncio
async def test_non_positive_amount_rejected(db_session, settlement, customer):
    with pytest.raises(ValidationFailedError):
        await settlement.create_sale(customer.owner_id, customer.id, "S-1", SALE_DATE, amount=Decimal("0"))


@pytest.mark.asyncio
async def test_first_payment_reduces_stock(db_session, settlement, publisher, customer, item):
    sale = await settlement.create_sale(
        customer.owner_id, customer.id, "S-1", SALE_DATE,
        lines=[DocumentLine("Widget", 8, Decimal("50"), inventory_item_id=item.id)],
    )
    await db_session.refresh(item)
    assert item.current_stock == 10
    assert not sale.stock_committed
    publisher.clear()

    await settlement.record_sale_receipt(customer.owner_id, customer.id, "R-1", Decimal("100"), SALE_DATE, sale_id=sale.id)

    await db_session.refresh(item)
    assert item.current_stock == 2
    assert sale.stock_committed
    assert publisher.topics()[:2] == [EventTopic.STOCK_REDUCED, EventTopic.STOCK_CRITICAL]

    await settlement.record_sale_receipt(customer.owner_id, customer.id, "R-2", Decimal("300"), SALE_DATE, sale_id=sale.id)
    await db_session.refresh(item)
    assert item.current_stock == 2


@pytest.mark.asyncio
async def test_stock_shortfall_fails_settlement(db_session, settlement, customer, item):
    sale = await settlement.create_sale(
        customer.owner_id, customer.id, "S-1", SALE_DATE,
        lines=[DocumentLine("Widget", 12, Decimal("50"), inventory_item_id=item.id)],
    )

    with pytest.raises(InsufficientStockError):
        await settlement.record_sale_receipt(
            customer.owner_id, customer.id, "R-1", Decimal("100"), SALE_DATE, sale_id=sale.id,
        )

    await db_session.refresh(sale)
    await db_session.refresh(item)
    await db_session.refresh(customer)
    assert sale.paid_amount == Decimal("0.00")
    assert sale.status == DocumentStatus.PENDING
    assert item.current_stock == 10
    assert await _balance(db_session, customer) == Decimal("600.00")


@pytest.mark.asyncio
async def test_on_create_mode_reduces_and_cancel_restores(db_session, publisher, customer, item):
    engine = SettlementEngine(db_session, publisher, sale_stock_reduction="on_create")

    sale = await engine.create_sale(
        customer.owner_id, customer.id, "S-1", SALE_DATE,
        lines=[DocumentLine("Widget", 3, Decimal("50"), inventory_item_id=item.id)],
    )
    await db_session.refresh(item)
    assert item.current_stock == 7
    assert sale.stock_committed

    await engine.cancel_sale(customer.owner_id, sale.id, "Customer changed mind")
    await db_session.refresh(item)
    assert item.current_stock == 10
    assert EventTopic.STOCK_RETURNED in publisher.topics()


@pytest.mark.asyncio
async def test_on_create_sale_of_inactive_item_fails(db_session, publisher, customer, item):
    item.is_active = False
    await db_session.commit()
    engine = SettlementEngine(db_session, publisher, sale_stock_reduction="on_create")

    with pytest.raises(InsufficientStockError) as exc_info:
        await engine.create_sale(
            customer.owner_id, customer.id, "S-1", SALE_DATE,
            lines=[DocumentLine("Widget", 2, Decimal("50"), inventory_item_id=item.id)],
        )
    assert exc_info.value.details["available"] == 0

    await db_session.refresh(item)
    assert item.current_stock == 10
    assert (await db_session.execute(select(func.count(Sale.id)))).scalar_one() == 0
    assert publisher.events == []


@pytest.mark.asyncio
async def test_change_sale_amount(db_session, settlement, customer):
    sale = await settlement.create_sale(customer.owner_id, customer.id, "S-1", SALE_DATE, amount=Decimal("1000"))
    await settlement.record_sale_receipt(customer.owner_id, customer.id, "R-1", Decimal("400"), SALE_DATE, sale_id=sale.id)

    await settlement.change_sale_amount(customer.owner_id, sale.id, Decimal("800"), "Price revised")
    assert sale.amount == Decimal("800.00")
    assert sale.remaining_amount == Decimal("400.00")
    assert sale.status == DocumentStatus.PARTIALLY_PAID
    assert await _balance(db_session, customer) == Decimal("400.00")

    await settlement.change_sale_amount(customer.owner_id, sale.id, Decimal("400"), "Settled at paid amount")
    assert sale.status == DocumentStatus.PAID

    with pytest.raises(InvalidStateTransitionError):
        await settlement.change_sale_amount(customer.owner_id, sale.id, Decimal("500"), "Reopen")


@pytest.mark.asyncio
async def test_reducing_amount_to_paid_publishes_sale_paid(db_session, settlement, publisher, customer):
    sale = await settlement.create_sale(customer.owner_id, customer.id, "S-1", SALE_DATE, amount=Decimal("1000"))
    await settlement.record_sale_receipt(customer.owner_id, customer.id, "R-1", Decimal("400"), SALE_DATE, sale_id=sale.id)
    publisher.clear()

    await settlement.change_sale_amount(customer.owner_id, sale.id, Decimal("400"), "Balance waived")

    assert sale.status == DocumentStatus.PAID
    assert publisher.topics() == [EventTopic.SALE_PAID]
    _, _, payload = publisher.events[0]
    assert payload["previous"]["status"] == DocumentStatus.PARTIALLY_PAID.value
    assert payload["reason"] == "Balance waived"


@pytest.mark.asyncio
async def test_change_sale_amount_below_paid_rejected(db_session, settlement, customer):
    sale = await settlement.create_sale(customer.owner_id, customer.id, "S-1", SALE_DATE, amount=Decimal("1000"))
    await settlement.record_sale_receipt(customer.owner_id, customer.id, "R-1", Decimal("400"), SALE_DATE, sale_id=sale.id)

    with pytest.raises(ValidationFailedError):
        await settlement.change_sale_amount(customer.owner_id, sale.id, Decimal("300"), "Too low")


@pytest.mark.asyncio
async def test_overdue_sales(db_session, settlement, customer):
    overdue = await settlement.create_sale(
        customer.owner_id, customer.id, "S-1", SALE_DATE, amount=Decimal("10"), due_date=date(2024, 4, 10),
    )
    await settlement.create_sale(
        customer.owner_id, customer.id, "S-2", SALE_DATE, amount=Decimal("10"), due_date=date(2024, 5, 10),
    )
    paid = await settlement.create_sale(
        customer.owner_id, customer.id, "S-3", SALE_DATE, amount=Decimal("10"), due_date=date(2024, 4, 10),
    )
    await settlement.record_sale_receipt(customer.owner_id, customer.id, "R-1", Decimal("10"), SALE_DATE, sale_id=paid.id)

    result = await SettlementEngine.overdue_documents(db_session, Sale, customer.owner_id, date(2024, 4, 20))
    assert [s.id for s in result] == [overdue.id]
