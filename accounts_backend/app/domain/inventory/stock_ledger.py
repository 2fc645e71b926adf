"""
Inventory Stock Ledger (Domain Logic).

Append-only stock movement log plus the derived current stock on each item.
Every mutating call re-reads the item row FOR UPDATE inside the caller's
transaction, appends exactly one StockMovement and evaluates alert
thresholds. Nothing here commits; events go to the caller's EventBuffer.
"""

import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Iterable, List, Optional

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from accounts_backend.app.core.config import settings
from accounts_backend.app.core.exceptions import (
    InsufficientStockError,
    InvalidStateTransitionError,
    ResourceNotFoundError,
    ValidationFailedError,
)
from accounts_backend.app.domain.events import ITEM_FIELDS, EventBuffer, EventTopic, snapshot
from accounts_backend.app.domain.money import ZERO, to_money
from accounts_backend.app.models.inventory_enums import MovementType, RestockReason, StockAlert, StockLevel
from accounts_backend.app.models.inventory_item import InventoryItem
from accounts_backend.app.models.stock_movement import StockMovement

logger = logging.getLogger("accounts.inventory")


@dataclass
class StockChange:
    """Result of one stock mutation."""

    movement: StockMovement
    item: InventoryItem
    alert: Optional[StockAlert] = None


@dataclass
class StockLine:
    inventory_item_id: int
    quantity: int


@dataclass
class StockShortfall:
    inventory_item_id: int
    requested: int
    available: int
    item_name: Optional[str] = None


@dataclass
class AvailabilityResult:
    available: bool
    shortfalls: List[StockShortfall] = field(default_factory=list)


def evaluate_alert(item: InventoryItem) -> Optional[StockAlert]:
    """At most one alert: OUT_OF_STOCK at zero, LOW_STOCK at or below minimum."""
    if item.current_stock == 0:
        return StockAlert.OUT_OF_STOCK
    if item.current_stock <= item.minimum_stock:
        return StockAlert.LOW_STOCK
    return None


def stock_level(item: InventoryItem, critical_ratio: float = None) -> StockLevel:
    """Reporting level; CRITICAL is a LOW item at or below ``minimum * ratio``."""
    ratio = settings.stock_critical_ratio if critical_ratio is None else critical_ratio
    if item.current_stock == 0:
        return StockLevel.OUT_OF_STOCK
    if item.current_stock <= item.minimum_stock * ratio:
        return StockLevel.CRITICAL
    if item.current_stock <= max(item.minimum_stock, item.reorder_level or 0):
        return StockLevel.LOW
    return StockLevel.OK


def reorder_quantity(item: InventoryItem) -> int:
    """Quantity that brings the item back up to its maximum (or twice its minimum)."""
    target = item.maximum_stock or item.minimum_stock * 2
    return max(target - item.current_stock, 0)


def alert_topic(item: InventoryItem, alert: StockAlert) -> EventTopic:
    if alert == StockAlert.OUT_OF_STOCK:
        return EventTopic.STOCK_OUT
    if stock_level(item) == StockLevel.CRITICAL:
        return EventTopic.STOCK_CRITICAL
    return EventTopic.STOCK_LOW


def _require_positive(quantity: int) -> None:
    if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity <= 0:
        raise ValidationFailedError("Quantity must be a positive integer", details={"quantity": quantity})


class InventoryStockLedger:

    @staticmethod
    async def get_item(db: AsyncSession, owner_id: int, item_id: int, for_update: bool = False) -> InventoryItem:
        stmt = select(InventoryItem).where(InventoryItem.id == item_id, InventoryItem.owner_id == owner_id)
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        result = await db.execute(stmt)
        item = result.scalar_one_or_none()
        if not item:
            raise ResourceNotFoundError("Inventory item", item_id)
        return item

    @staticmethod
    async def _apply(
        db: AsyncSession,
        item: InventoryItem,
        movement_type: MovementType,
        new_stock: int,
        reason: str,
        reference: Optional[str],
        events: Optional[EventBuffer],
        topic: EventTopic,
        unit_price: Optional[Decimal] = None,
        check_alert: bool = False,
    ) -> StockChange:
        previous = item.current_stock
        item.current_stock = new_stock

        movement = StockMovement(
            owner_id=item.owner_id,
            inventory_item_id=item.id,
            type=movement_type,
            quantity=abs(new_stock - previous),
            previous_stock=previous,
            new_stock=new_stock,
            reason=reason,
            reference=reference,
            unit_price=to_money(unit_price) if unit_price is not None else None,
            total_value=to_money(unit_price) * abs(new_stock - previous) if unit_price is not None else None,
        )
        db.add(movement)
        await db.flush()

        alert = evaluate_alert(item) if check_alert else None

        logger.info(
            "Stock movement recorded",
            extra={
                "item_id": item.id,
                "movement_type": movement_type.value,
                "quantity": movement.quantity,
                "previous_stock": previous,
                "new_stock": new_stock,
                "reference": reference,
                "alert": alert.value if alert else None,
            },
        )

        if events is not None:
            payload = snapshot(item, *ITEM_FIELDS)
            payload.update(
                movement_id=movement.id,
                movement_type=movement_type.value,
                quantity=movement.quantity,
                previous_stock=previous,
                new_stock=new_stock,
                reason=reason,
                reference=reference,
            )
            events.add(topic, item.id, payload)
            if alert is not None:
                events.add(alert_topic(item, alert), item.id, {
                    **snapshot(item, *ITEM_FIELDS),
                    "alert": alert.value,
                    "level": stock_level(item).value,
                    "reorder_level": item.reorder_level if item.reorder_level is not None else item.minimum_stock,
                    "recommended_order_quantity": reorder_quantity(item),
                    "reference": reference,
                })

        return StockChange(movement=movement, item=item, alert=alert)

    @staticmethod
    async def reduce_stock(
        db: AsyncSession,
        owner_id: int,
        item_id: int,
        quantity: int,
        reference: Optional[str],
        events: Optional[EventBuffer] = None,
        reason: str = "Sale",
    ) -> StockChange:
        """
        Take ``quantity`` out of stock.

        The row is locked and re-checked here, so a stale availability check
        made earlier cannot cause an oversell.

        Raises:
            InsufficientStockError: quantity exceeds current stock or the item is
                inactive; nothing is written
        """
        _require_positive(quantity)
        item = await InventoryStockLedger.get_item(db, owner_id, item_id, for_update=True)

        # Inactive items count as having nothing on hand, as in check_availability
        available = item.current_stock if item.is_active else 0
        if quantity > available:
            raise InsufficientStockError(item.id, quantity, available, item.name)

        return await InventoryStockLedger._apply(
            db, item, MovementType.OUT, item.current_stock - quantity,
            reason, reference, events, EventTopic.STOCK_REDUCED, check_alert=True,
        )

    @staticmethod
    async def add_stock(
        db: AsyncSession,
        owner_id: int,
        item_id: int,
        quantity: int,
        unit_price: Optional[Decimal],
        reference: Optional[str],
        events: Optional[EventBuffer] = None,
        reason: str = "Purchase",
        received_on: Optional[date] = None,
    ) -> StockChange:
        """Receive stock and record last purchase price/date."""
        _require_positive(quantity)
        if unit_price is not None and to_money(unit_price) < 0:
            raise ValidationFailedError("Unit price must not be negative")

        item = await InventoryStockLedger.get_item(db, owner_id, item_id, for_update=True)
        if not item.is_active:
            raise InvalidStateTransitionError(
                f"Inventory item {item.name} is inactive", details={"item_id": item.id},
            )
        if unit_price is not None:
            item.last_purchase_price = to_money(unit_price)
        item.last_purchase_date = received_on or date.today()

        return await InventoryStockLedger._apply(
            db, item, MovementType.IN, item.current_stock + quantity,
            reason, reference, events, EventTopic.STOCK_ADDED, unit_price=unit_price,
        )

    @staticmethod
    async def restore_stock(
        db: AsyncSession,
        owner_id: int,
        item_id: int,
        quantity: int,
        reference: Optional[str],
        reason_kind: RestockReason,
        events: Optional[EventBuffer] = None,
    ) -> StockChange:
        """Put stock back after a sale is cancelled (IN) or returned (RETURN)."""
        _require_positive(quantity)
        item = await InventoryStockLedger.get_item(db, owner_id, item_id, for_update=True)

        if reason_kind == RestockReason.RETURNED:
            movement_type = MovementType.RETURN
        else:
            movement_type = MovementType.IN

        return await InventoryStockLedger._apply(
            db, item, movement_type, item.current_stock + quantity,
            f"Sale {reason_kind.value.lower()}", reference, events, EventTopic.STOCK_RETURNED,
        )

    @staticmethod
    async def adjust_stock(
        db: AsyncSession,
        owner_id: int,
        item_id: int,
        new_quantity: int,
        reason: str,
        reference: Optional[str] = None,
        events: Optional[EventBuffer] = None,
    ) -> StockChange:
        """Set stock to a counted quantity, recording the difference as ADJUST."""
        if not isinstance(new_quantity, int) or isinstance(new_quantity, bool) or new_quantity < 0:
            raise ValidationFailedError("Counted quantity must be a non-negative integer")

        item = await InventoryStockLedger.get_item(db, owner_id, item_id, for_update=True)
        if new_quantity == item.current_stock:
            raise ValidationFailedError(
                "Counted quantity equals current stock",
                details={"current_stock": item.current_stock},
            )

        return await InventoryStockLedger._apply(
            db, item, MovementType.ADJUST, new_quantity,
            reason, reference, events, EventTopic.STOCK_ADJUSTED,
            check_alert=new_quantity < item.current_stock,
        )

    @staticmethod
    async def check_availability(db: AsyncSession, owner_id: int, lines: Iterable[StockLine]) -> AvailabilityResult:
        """
        Read-only pre-check of a set of lines.

        Quantities of repeated items are summed. Unknown or inactive items are
        reported as shortfalls with nothing available.
        """
        requested = {}
        for line in lines:
            requested[line.inventory_item_id] = requested.get(line.inventory_item_id, 0) + line.quantity

        if not requested:
            return AvailabilityResult(available=True)

        result = await db.execute(
            select(InventoryItem).where(
                InventoryItem.owner_id == owner_id,
                InventoryItem.id.in_(requested.keys()),
                InventoryItem.is_active.is_(True),
            )
        )
        items = {item.id: item for item in result.scalars().all()}

        shortfalls = []
        for item_id, quantity in requested.items():
            item = items.get(item_id)
            available = item.current_stock if item else 0
            if quantity > available:
                shortfalls.append(StockShortfall(
                    inventory_item_id=item_id,
                    requested=quantity,
                    available=available,
                    item_name=item.name if item else None,
                ))

        return AvailabilityResult(available=not shortfalls, shortfalls=shortfalls)

    @staticmethod
    async def low_stock_items(db: AsyncSession, owner_id: int) -> List[InventoryItem]:
        """Active items at or below their minimum stock or reorder level, lowest first."""
        result = await db.execute(
            select(InventoryItem)
            .where(
                InventoryItem.owner_id == owner_id,
                InventoryItem.is_active.is_(True),
                or_(
                    InventoryItem.current_stock <= InventoryItem.minimum_stock,
                    InventoryItem.current_stock <= InventoryItem.reorder_level,
                ),
            )
            .order_by(InventoryItem.current_stock, InventoryItem.name)
        )
        return list(result.scalars().all())

    @staticmethod
    async def valuation(db: AsyncSession, owner_id: int) -> Decimal:
        """Stock on hand valued at cost price."""
        result = await db.execute(
            select(InventoryItem.current_stock, InventoryItem.cost_price).where(
                InventoryItem.owner_id == owner_id, InventoryItem.is_active.is_(True)
            )
        )
        total = ZERO
        for quantity, cost in result.all():
            total += to_money(cost) * quantity
        return total

    @staticmethod
    async def movements_for(db: AsyncSession, owner_id: int, item_id: int) -> List[StockMovement]:
        await InventoryStockLedger.get_item(db, owner_id, item_id)
        result = await db.execute(
            select(StockMovement)
            .where(StockMovement.owner_id == owner_id, StockMovement.inventory_item_id == item_id)
            .order_by(StockMovement.id)
        )
        return list(result.scalars().all())
