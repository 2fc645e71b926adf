"""
Inventory Stock Ledger Tests.

Movement logging, non-negative stock, alert thresholds and availability.
"""

import pytest
from decimal import Decimal
from sqlalchemy import select

from accounts_backend.app.core.exceptions import (
    InsufficientStockError,
    InvalidStateTransitionError,
    ValidationFailedError,
)
from accounts_backend.app.domain.events import EventBuffer, EventTopic
from accounts_backend.app.domain.inventory.stock_ledger import (
    InventoryStockLedger,
    StockLine,
    reorder_quantity,
    stock_level,
)
from accounts_backend.app.models.inventory_enums import MovementType, RestockReason, StockAlert, StockLevel
from accounts_backend.app.models.inventory_item import InventoryItem
from accounts_backend.app.models.stock_movement import StockMovement


@pytest.mark.asyncio
async def test_reduce_below_minimum_raises_low_stock(db_session, item):
    events = EventBuffer()

    change = await InventoryStockLedger.reduce_stock(db_session, item.owner_id, item.id, 8, "S-1", events)
    await db_session.commit()

    assert change.item.current_stock == 2
    assert change.alert == StockAlert.LOW_STOCK
    assert change.movement.type == MovementType.OUT
    assert change.movement.previous_stock == 10
    assert change.movement.new_stock == 2
    assert change.movement.quantity == 8
    # 2 is at or below half the minimum of 5
    assert events.topics() == [EventTopic.STOCK_REDUCED, EventTopic.STOCK_CRITICAL]


@pytest.mark.asyncio
async def test_reduce_to_zero_raises_out_of_stock(db_session, item):
    await InventoryStockLedger.reduce_stock(db_session, item.owner_id, item.id, 8, "S-1")
    events = EventBuffer()

    change = await InventoryStockLedger.reduce_stock(db_session, item.owner_id, item.id, 2, "S-2", events)
    await db_session.commit()

    assert change.item.current_stock == 0
    assert change.alert == StockAlert.OUT_OF_STOCK
    assert events.topics() == [EventTopic.STOCK_REDUCED, EventTopic.STOCK_OUT]


@pytest.mark.asyncio
async def test_reduce_above_minimum_has_no_alert(db_session, item):
    events = EventBuffer()
    change = await InventoryStockLedger.reduce_stock(db_session, item.owner_id, item.id, 3, "S-1", events)

    assert change.item.current_stock == 7
    assert change.alert is None
    assert events.topics() == [EventTopic.STOCK_REDUCED]


@pytest.mark.asyncio
async def test_low_but_not_critical_publishes_stock_low(db_session, item):
    events = EventBuffer()
    change = await InventoryStockLedger.reduce_stock(db_session, item.owner_id, item.id, 7, "S-1", events)

    assert change.item.current_stock == 3
    assert events.topics()[-1] == EventTopic.STOCK_LOW
    assert events.events[-1].payload["recommended_order_quantity"] == 7


@pytest.mark.asyncio
async def test_reduce_more_than_available_writes_nothing(db_session, item):
    with pytest.raises(InsufficientStockError) as exc_info:
        await InventoryStockLedger.reduce_stock(db_session, item.owner_id, item.id, 11, "S-1")

    assert exc_info.value.details["requested"] == 11
    assert exc_info.value.details["available"] == 10
    await db_session.rollback()

    await db_session.refresh(item)
    assert item.current_stock == 10
    movements = (await db_session.execute(select(StockMovement))).scalars().all()
    assert movements == []


@pytest.mark.asyncio
async def test_inactive_item_cannot_move_stock(db_session, item):
    item.is_active = False
    await db_session.commit()

    availability = await InventoryStockLedger.check_availability(
        db_session, item.owner_id, [StockLine(inventory_item_id=item.id, quantity=1)],
    )
    assert availability.shortfalls[0].available == 0

    with pytest.raises(InsufficientStockError) as exc_info:
        await InventoryStockLedger.reduce_stock(db_session, item.owner_id, item.id, 1, "S-1")
    assert exc_info.value.details["available"] == availability.shortfalls[0].available

    with pytest.raises(InvalidStateTransitionError):
        await InventoryStockLedger.add_stock(db_session, item.owner_id, item.id, 5, Decimal("40"), "P-1")
    await db_session.rollback()

    await db_session.refresh(item)
    assert item.current_stock == 10
    assert (await db_session.execute(select(StockMovement))).scalars().all() == []


@pytest.mark.asyncio
@pytest.mark.parametrize("quantity", [0, -3])
async def test_non_positive_quantity_rejected(db_session, item, quantity):
    with pytest.raises(ValidationFailedError):
        await InventoryStockLedger.reduce_stock(db_session, item.owner_id, item.id, quantity, "S-1")


@pytest.mark.asyncio
async def test_add_stock_records_purchase_price(db_session, item):
    change = await InventoryStockLedger.add_stock(
        db_session, item.owner_id, item.id, 5, Decimal("38.50"), "PO-7",
    )
    await db_session.commit()

    assert change.item.current_stock == 15
    assert change.item.last_purchase_price == Decimal("38.50")
    assert change.item.last_purchase_date is not None
    assert change.movement.type == MovementType.IN
    assert change.movement.total_value == Decimal("192.50")


@pytest.mark.asyncio
async def test_restore_stock_uses_return_movement(db_session, item):
    returned = await InventoryStockLedger.restore_stock(
        db_session, item.owner_id, item.id, 2, "S-1", RestockReason.RETURNED,
    )
    cancelled = await InventoryStockLedger.restore_stock(
        db_session, item.owner_id, item.id, 1, "S-2", RestockReason.CANCELLED,
    )

    assert returned.movement.type == MovementType.RETURN
    assert returned.movement.reason == "Sale returned"
    assert cancelled.movement.type == MovementType.IN
    assert cancelled.movement.reason == "Sale cancelled"
    assert cancelled.item.current_stock == 13


@pytest.mark.asyncio
async def test_adjust_stock_to_counted_quantity(db_session, item):
    change = await InventoryStockLedger.adjust_stock(db_session, item.owner_id, item.id, 4, "Physical count")

    assert change.movement.type == MovementType.ADJUST
    assert change.movement.quantity == 6
    assert change.item.current_stock == 4
    assert change.alert == StockAlert.LOW_STOCK

    with pytest.raises(ValidationFailedError):
        await InventoryStockLedger.adjust_stock(db_session, item.owner_id, item.id, 4, "Recount")


@pytest.mark.asyncio
async def test_check_availability_sums_repeated_lines(db_session, item):
    ok = await InventoryStockLedger.check_availability(
        db_session, item.owner_id, [StockLine(item.id, 4), StockLine(item.id, 6)],
    )
    assert ok.available

    short = await InventoryStockLedger.check_availability(
        db_session, item.owner_id, [StockLine(item.id, 7), StockLine(item.id, 4), StockLine(9999, 1)],
    )
    assert not short.available
    by_item = {s.inventory_item_id: s for s in short.shortfalls}
    assert by_item[item.id].requested == 11
    assert by_item[item.id].available == 10
    assert by_item[9999].available == 0


@pytest.mark.asyncio
async def test_low_stock_report_and_levels(db_session, item):
    healthy = InventoryItem(owner_id=item.owner_id, name="Bolt", current_stock=100, minimum_stock=10)
    empty = InventoryItem(owner_id=item.owner_id, name="Nut", current_stock=0, minimum_stock=10, maximum_stock=50)
    db_session.add_all([healthy, empty])
    await db_session.commit()

    await InventoryStockLedger.reduce_stock(db_session, item.owner_id, item.id, 6, "S-1")
    await db_session.commit()

    low = await InventoryStockLedger.low_stock_items(db_session, item.owner_id)
    assert [i.name for i in low] == ["Nut", "Widget"]
    assert stock_level(empty) == StockLevel.OUT_OF_STOCK
    assert stock_level(item) == StockLevel.LOW
    assert stock_level(healthy) == StockLevel.OK
    assert reorder_quantity(empty) == 50
    assert reorder_quantity(item) == 6


@pytest.mark.asyncio
async def test_valuation_at_cost(db_session, item):
    db_session.add(InventoryItem(owner_id=item.owner_id, name="Bolt", current_stock=3, cost_price=Decimal("2.50")))
    await db_session.commit()

    assert await InventoryStockLedger.valuation(db_session, item.owner_id) == Decimal("407.50")


@pytest.mark.asyncio
async def test_inventory_service_commits_and_publishes(db_session, inventory, publisher, item):
    change = await inventory.reduce_stock(item.owner_id, item.id, 10, "ISSUE-1")

    assert change.alert == StockAlert.OUT_OF_STOCK
    assert publisher.topics() == [EventTopic.STOCK_REDUCED, EventTopic.STOCK_OUT]

    movements = await InventoryStockLedger.movements_for(db_session, item.owner_id, item.id)
    assert len(movements) == 1


@pytest.mark.asyncio
async def test_inventory_service_rolls_back_and_publishes_nothing(db_session, inventory, publisher, item):
    with pytest.raises(InsufficientStockError):
        await inventory.reduce_stock(item.owner_id, item.id, 50, "ISSUE-1")

    assert publisher.events == []
    await db_session.refresh(item)
    assert item.current_stock == 10


@pytest.mark.asyncio
async def test_create_item_with_opening_stock(db_session, inventory):
    created = await inventory.create_item(
        1, opening_stock=12, opening_unit_price=Decimal("9.99"), name="Gasket", sku="GSK-1", minimum_stock=2,
    )

    assert created.current_stock == 12
    movements = await InventoryStockLedger.movements_for(db_session, 1, created.id)
    assert [m.reason for m in movements] == ["Opening stock"]
