"""
Invoice Settlement Tests.
"""

import pytest
from datetime import date
from decimal import Decimal

from accounts_backend.app.core.exceptions import (
    InsufficientBalanceError,
    InsufficientStockError,
    ValidationFailedError,
)
from accounts_backend.app.domain.events import EventTopic
from accounts_backend.app.domain.ledger.account import PartyAccount
from accounts_backend.app.domain.ledger.balance import BalanceCalculator
from accounts_backend.app.domain.settlement.lines import DocumentLine
from accounts_backend.app.models.billing_enums import DocumentStatus, PaymentMethod, PaymentStatus
from accounts_backend.app.models.party import Party

INVOICE_DATE = date(2024, 5, 2)


async def _balance(db, party) -> Decimal:
    return await BalanceCalculator.balance(db, PartyAccount(party.owner_id, party.id))


@pytest.mark.asyncio
async def test_invoice_credits_party_and_payment_settles(db_session, settlement, publisher, party):
    invoice = await settlement.create_invoice(party.owner_id, party.id, "INV-1", INVOICE_DATE, amount=Decimal("5000"))
    assert invoice.status == DocumentStatus.PENDING
    assert await _balance(db_session, party) == Decimal("5000.00")

    payment = await settlement.record_invoice_payment(
        party.owner_id, party.id, "V-1", Decimal("5000"), INVOICE_DATE, invoice_id=invoice.id,
    )
    assert payment.status == PaymentStatus.COMPLETED
    assert invoice.status == DocumentStatus.PAID
    assert invoice.remaining_amount == Decimal("0.00")
    assert await _balance(db_session, party) == Decimal("0.00")
    assert publisher.topics() == [
        EventTopic.INVOICE_CREATED,
        EventTopic.INVOICE_PAID,
        EventTopic.INVOICE_PAYMENT_CREATED,
    ]


@pytest.mark.asyncio
async def test_cheque_invoice_payment_is_completed_immediately(db_session, settlement, party):
    payment = await settlement.record_invoice_payment(
        party.owner_id, party.id, "V-1", Decimal("300"), INVOICE_DATE,
        method=PaymentMethod.CHEQUE, cheque_no="778899",
    )
    assert payment.status == PaymentStatus.COMPLETED
    assert await _balance(db_session, party) == Decimal("-300.00")


@pytest.mark.asyncio
async def test_invoice_overpayment_rejected(db_session, settlement, party):
    invoice = await settlement.create_invoice(party.owner_id, party.id, "INV-1", INVOICE_DATE, amount=Decimal("100"))

    with pytest.raises(InsufficientBalanceError):
        await settlement.record_invoice_payment(
            party.owner_id, party.id, "V-1", Decimal("100.01"), INVOICE_DATE, invoice_id=invoice.id,
        )


@pytest.mark.asyncio
async def test_invoice_lines_receive_stock(db_session, settlement, publisher, party, item):
    invoice = await settlement.create_invoice(
        party.owner_id, party.id, "INV-1", INVOICE_DATE,
        lines=[DocumentLine("Widget", 20, Decimal("35"), inventory_item_id=item.id), DocumentLine("Freight", 1, Decimal("150"))],
    )

    assert invoice.amount == Decimal("850.00")
    assert invoice.stock_received
    await db_session.refresh(item)
    assert item.current_stock == 30
    assert item.last_purchase_price == Decimal("35.00")
    assert item.last_purchase_date == INVOICE_DATE
    assert EventTopic.STOCK_ADDED in publisher.topics()


@pytest.mark.asyncio
async def test_cancel_invoice_issues_stock_back(db_session, settlement, party, item):
    invoice = await settlement.create_invoice(
        party.owner_id, party.id, "INV-1", INVOICE_DATE,
        lines=[DocumentLine("Widget", 5, Decimal("35"), inventory_item_id=item.id)],
    )

    await settlement.cancel_invoice(party.owner_id, invoice.id, "Goods rejected")

    assert invoice.status == DocumentStatus.CANCELLED
    await db_session.refresh(item)
    assert item.current_stock == 10
    assert await _balance(db_session, party) == Decimal("0.00")


@pytest.mark.asyncio
async def test_cancel_invoice_fails_when_stock_already_sold(db_session, settlement, inventory, party, item):
    invoice = await settlement.create_invoice(
        party.owner_id, party.id, "INV-1", INVOICE_DATE,
        lines=[DocumentLine("Widget", 5, Decimal("35"), inventory_item_id=item.id)],
    )
    await inventory.reduce_stock(item.owner_id, item.id, 12, "ISSUE-1")

    with pytest.raises(InsufficientStockError):
        await settlement.cancel_invoice(party.owner_id, invoice.id, "Goods rejected")

    await db_session.refresh(invoice)
    assert invoice.status == DocumentStatus.PENDING
    assert invoice.stock_received


@pytest.mark.asyncio
async def test_invoice_payment_for_other_party_rejected(db_session, settlement, party):
    other = Party(owner_id=party.owner_id, name="Other Supplier")
    db_session.add(other)
    await db_session.commit()
    invoice = await settlement.create_invoice(party.owner_id, party.id, "INV-1", INVOICE_DATE, amount=Decimal("100"))

    with pytest.raises(ValidationFailedError):
        await settlement.record_invoice_payment(
            other.owner_id, other.id, "V-1", Decimal("10"), INVOICE_DATE, invoice_id=invoice.id,
        )


@pytest.mark.asyncio
async def test_change_invoice_amount_upwards(db_session, settlement, party):
    invoice = await settlement.create_invoice(party.owner_id, party.id, "INV-1", INVOICE_DATE, amount=Decimal("100"))

    await settlement.change_invoice_amount(party.owner_id, invoice.id, Decimal("180"), "Missed line")

    assert invoice.amount == Decimal("180.00")
    assert invoice.remaining_amount == Decimal("180.00")
    assert await _balance(db_session, party) == Decimal("180.00")
