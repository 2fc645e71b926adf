"""
Sale database model.

A sale is a receivable document raised against a customer.
"""

from sqlalchemy import Boolean, Column, ForeignKey, Integer, String, UniqueConstraint

from accounts_backend.app.db.session import Base
from accounts_backend.app.models.mixins import SettlementDocumentMixin


class Sale(SettlementDocumentMixin, Base):
    """
    Sale model.

    Lifecycle: PENDING -> PARTIALLY_PAID -> PAID, or PENDING -> CANCELLED.
    stock_committed records whether the line items have already been taken
    out of inventory, so cancellation only restores what was actually issued.
    """
    __tablename__ = "sales"
    __table_args__ = (
        UniqueConstraint("owner_id", "customer_id", "sale_no", name="uq_sales_owner_customer_no"),
    )

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    owner_id = Column(Integer, nullable=False, index=True)
    customer_id = Column(Integer, ForeignKey("customers.id"), nullable=False, index=True)

    sale_no = Column(String(50), nullable=False)
    voucher_id = Column(String(50), nullable=True)
    stock_committed = Column(Boolean, nullable=False, default=False)

    @property
    def number(self) -> str:
        return self.sale_no

    def __repr__(self):
        return f"<Sale(id={self.id}, no='{self.sale_no}', status='{self.status.value}', amount={self.amount})>"
