"""
Inventory Service.

Standalone stock operations (purchases outside an invoice, manual issues,
physical counts, customer returns). Each call is its own unit of work over
the stock ledger and publishes its events after commit.
"""

import logging
from datetime import date
from decimal import Decimal
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from accounts_backend.app.core.exceptions import ConflictError
from accounts_backend.app.db.session import transaction
from accounts_backend.app.domain.events import EventBuffer
from accounts_backend.app.domain.inventory.stock_ledger import InventoryStockLedger, StockChange
from accounts_backend.app.models.inventory_enums import RestockReason
from accounts_backend.app.models.inventory_item import InventoryItem
from accounts_backend.app.services.event_publisher import EventPublisher, publish_events

logger = logging.getLogger("accounts.inventory")


class InventoryService:

    def __init__(self, db: AsyncSession, publisher: EventPublisher):
        self.db = db
        self.publisher = publisher

    async def create_item(self, owner_id: int, opening_stock: int = 0, opening_unit_price: Decimal = None, **fields) -> InventoryItem:
        """Create an item; a nonzero opening stock is booked as an IN movement."""
        events = EventBuffer()
        async with transaction(self.db):
            sku = fields.get("sku")
            if sku:
                existing = await self.db.execute(
                    select(InventoryItem.id).where(InventoryItem.owner_id == owner_id, InventoryItem.sku == sku)
                )
                if existing.first() is not None:
                    raise ConflictError("InventoryItem", "sku", sku)

            item = InventoryItem(owner_id=owner_id, current_stock=0, **fields)
            self.db.add(item)
            try:
                await self.db.flush()
            except IntegrityError:
                raise ConflictError("InventoryItem", "sku", sku)

            if opening_stock:
                await InventoryStockLedger.add_stock(
                    self.db, owner_id, item.id, opening_stock, opening_unit_price,
                    reference="OPENING", events=events, reason="Opening stock",
                )

        logger.info("Inventory item created", extra={"item_id": item.id, "opening_stock": opening_stock})
        await publish_events(self.publisher, events.events)
        return item

    async def add_stock(
        self,
        owner_id: int,
        item_id: int,
        quantity: int,
        unit_price: Optional[Decimal],
        reference: Optional[str] = None,
        reason: str = "Purchase",
        received_on: Optional[date] = None,
    ) -> StockChange:
        events = EventBuffer()
        async with transaction(self.db):
            change = await InventoryStockLedger.add_stock(
                self.db, owner_id, item_id, quantity, unit_price, reference,
                events=events, reason=reason, received_on=received_on,
            )
        await publish_events(self.publisher, events.events)
        return change

    async def reduce_stock(
        self,
        owner_id: int,
        item_id: int,
        quantity: int,
        reference: Optional[str] = None,
        reason: str = "Manual issue",
    ) -> StockChange:
        events = EventBuffer()
        async with transaction(self.db):
            change = await InventoryStockLedger.reduce_stock(
                self.db, owner_id, item_id, quantity, reference, events=events, reason=reason,
            )
        await publish_events(self.publisher, events.events)
        return change

    async def adjust_stock(
        self,
        owner_id: int,
        item_id: int,
        new_quantity: int,
        reason: str,
        reference: Optional[str] = None,
    ) -> StockChange:
        events = EventBuffer()
        async with transaction(self.db):
            change = await InventoryStockLedger.adjust_stock(
                self.db, owner_id, item_id, new_quantity, reason, reference, events=events,
            )
        await publish_events(self.publisher, events.events)
        return change

    async def restore_stock(
        self,
        owner_id: int,
        item_id: int,
        quantity: int,
        reference: Optional[str],
        reason_kind: RestockReason,
    ) -> StockChange:
        events = EventBuffer()
        async with transaction(self.db):
            change = await InventoryStockLedger.restore_stock(
                self.db, owner_id, item_id, quantity, reference, reason_kind, events=events,
            )
        await publish_events(self.publisher, events.events)
        return change
