"""
Sale Receipt database model.

Money received from a customer, optionally allocated to one sale.
"""

from decimal import Decimal

from sqlalchemy import Column, Date, ForeignKey, Integer, String, UniqueConstraint

from accounts_backend.app.db.session import Base
from accounts_backend.app.models.mixins import MONEY, SettlementPaymentMixin


class SaleReceipt(SettlementPaymentMixin, Base):
    """
    Sale Receipt model.

    A receipt without sale_id is an advance: it only credits the customer
    account. Cheque receipts get a clearance_date once reconciled with the
    bank, after which they can no longer be reversed.
    """
    __tablename__ = "sale_receipts"
    __table_args__ = (
        UniqueConstraint("owner_id", "customer_id", "receipt_no", name="uq_sale_receipts_owner_customer_no"),
    )

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    owner_id = Column(Integer, nullable=False, index=True)
    customer_id = Column(Integer, ForeignKey("customers.id"), nullable=False, index=True)
    sale_id = Column(Integer, ForeignKey("sales.id"), nullable=True, index=True)

    receipt_no = Column(String(50), nullable=False)
    voucher_id = Column(String(50), nullable=True)

    clearance_date = Column(Date, nullable=True)
    charges = Column(MONEY, nullable=False, default=Decimal("0"))

    @property
    def number(self) -> str:
        return self.receipt_no

    def __repr__(self):
        return f"<SaleReceipt(id={self.id}, no='{self.receipt_no}', amount={self.amount})>"
