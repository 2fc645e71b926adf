"""
Stock Movement database model.

Append-only audit trail of every change to an item's quantity.
"""

from sqlalchemy import CheckConstraint, Column, DateTime, Enum, ForeignKey, Integer, String
from sqlalchemy.sql import func

from accounts_backend.app.db.session import Base
from accounts_backend.app.models.inventory_enums import MovementType
from accounts_backend.app.models.mixins import MONEY, utcnow


class StockMovement(Base):
    """
    Stock Movement model.

    quantity is always positive; direction comes from the movement type and
    from previous_stock -> new_stock.
    """
    __tablename__ = "stock_movements"
    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_stock_movements_quantity_positive"),
    )

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    owner_id = Column(Integer, nullable=False, index=True)
    inventory_item_id = Column(Integer, ForeignKey("inventory_items.id"), nullable=False, index=True)

    type = Column(Enum(MovementType), nullable=False)
    quantity = Column(Integer, nullable=False)
    previous_stock = Column(Integer, nullable=False)
    new_stock = Column(Integer, nullable=False)

    reason = Column(String(255), nullable=True)
    reference = Column(String(100), nullable=True)
    unit_price = Column(MONEY, nullable=True)
    total_value = Column(MONEY, nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)

    def __repr__(self):
        return (
            f"<StockMovement(id={self.id}, type='{self.type.value}', qty={self.quantity}, "
            f"{self.previous_stock}->{self.new_stock})>"
        )
