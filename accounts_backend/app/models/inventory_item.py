"""
Inventory Item database model.
"""

from sqlalchemy import Boolean, CheckConstraint, Column, Date, Integer, String, UniqueConstraint

from accounts_backend.app.db.session import Base
from accounts_backend.app.models.mixins import MONEY, TimestampMixin


class InventoryItem(TimestampMixin, Base):
    """
    Inventory Item model.

    current_stock is only changed through the stock ledger, which appends a
    StockMovement for every change.
    """
    __tablename__ = "inventory_items"
    __table_args__ = (
        UniqueConstraint("owner_id", "sku", name="uq_inventory_items_owner_sku"),
        CheckConstraint("current_stock >= 0", name="ck_inventory_items_stock_non_negative"),
    )

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    owner_id = Column(Integer, nullable=False, index=True)

    name = Column(String(150), nullable=False)
    sku = Column(String(60), nullable=True)
    unit = Column(String(20), nullable=False, default="pcs")
    category = Column(String(80), nullable=True)

    current_stock = Column(Integer, nullable=False, default=0)
    minimum_stock = Column(Integer, nullable=False, default=0)
    reorder_level = Column(Integer, nullable=True)
    maximum_stock = Column(Integer, nullable=True)

    cost_price = Column(MONEY, nullable=False, default=0)
    selling_price = Column(MONEY, nullable=False, default=0)
    last_purchase_price = Column(MONEY, nullable=True)
    last_purchase_date = Column(Date, nullable=True)

    is_active = Column(Boolean, default=True, nullable=False)

    def __repr__(self):
        return f"<InventoryItem(id={self.id}, name='{self.name}', stock={self.current_stock})>"
