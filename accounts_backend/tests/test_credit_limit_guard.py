"""
Credit Limit Tests.

The limit is advisory: a sale past the limit is still created, and the
breach is logged and published.
"""

import logging
import pytest
from datetime import date
from decimal import Decimal
from sqlalchemy import select

from accounts_backend.app.domain.events import EventTopic
from accounts_backend.app.domain.ledger.account import CustomerAccount
from accounts_backend.app.domain.ledger.balance import BalanceCalculator
from accounts_backend.app.domain.settlement.credit_guard import CreditLimitGuard
from accounts_backend.app.models.billing_enums import LedgerEntryType
from accounts_backend.app.models.ledger_entry import LedgerEntry

DAY = date(2024, 7, 1)


@pytest.mark.asyncio
async def test_no_limit_never_exceeds(db_session, customer):
    check = await CreditLimitGuard.evaluate(
        db_session, CustomerAccount(customer.owner_id, customer.id), Decimal("1000000"),
    )
    assert not check.exceeds
    assert check.credit_limit == Decimal("0")


@pytest.mark.asyncio
async def test_sale_past_limit_is_created_and_reported(db_session, settlement, publisher, customer, caplog):
    customer.credit_limit = Decimal("1000")
    await db_session.commit()

    await settlement.create_sale(customer.owner_id, customer.id, "S-1", DAY, amount=Decimal("800"))
    assert publisher.topics() == [EventTopic.SALE_CREATED]
    publisher.clear()

    with caplog.at_level(logging.WARNING, logger="accounts.settlement"):
        sale = await settlement.create_sale(customer.owner_id, customer.id, "S-2", DAY, amount=Decimal("300"))

    assert sale.id is not None
    assert publisher.topics() == [EventTopic.SALE_CREATED, EventTopic.CUSTOMER_CREDIT_LIMIT_EXCEEDED]
    _, _, payload = publisher.events[-1]
    assert payload["projected_balance"] == "1100.00"
    assert payload["credit_limit"] == "1000.00"
    assert "Credit limit exceeded" in caplog.text


@pytest.mark.asyncio
async def test_change_credit_limit_logs_audit_entry(db_session, settlement, publisher, customer):
    await settlement.create_sale(customer.owner_id, customer.id, "S-1", DAY, amount=Decimal("250"))
    publisher.clear()

    updated = await settlement.change_credit_limit(customer.owner_id, customer.id, Decimal("5000"), "Good history")

    assert updated.credit_limit == Decimal("5000.00")
    entry = (await db_session.execute(
        select(LedgerEntry).where(LedgerEntry.entry_type == LedgerEntryType.CREDIT_LIMIT_CHANGE)
    )).scalar_one()
    assert entry.debit == Decimal("0") and entry.credit == Decimal("0")
    assert "5000.00" in entry.description
    assert await BalanceCalculator.balance(db_session, CustomerAccount(customer.owner_id, customer.id)) == Decimal("250.00")
    assert publisher.topics() == [EventTopic.CUSTOMER_CREDIT_LIMIT_CHANGED]


@pytest.mark.asyncio
async def test_unchanged_credit_limit_is_a_no_op(db_session, settlement, publisher, customer):
    await settlement.change_credit_limit(customer.owner_id, customer.id, Decimal("0"))

    entries = (await db_session.execute(select(LedgerEntry))).scalars().all()
    assert entries == []
    assert publisher.events == []
