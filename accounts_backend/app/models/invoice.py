"""
Invoice database model.

An invoice is a payable document received from a party (supplier).
"""

from sqlalchemy import Boolean, Column, ForeignKey, Integer, String, UniqueConstraint

from accounts_backend.app.db.session import Base
from accounts_backend.app.models.mixins import SettlementDocumentMixin


class Invoice(SettlementDocumentMixin, Base):
    """
    Invoice model.

    stock_received is set when line items were booked into inventory on
    creation; cancelling the invoice issues that stock back out.
    """
    __tablename__ = "invoices"
    __table_args__ = (
        UniqueConstraint("owner_id", "party_id", "invoice_no", name="uq_invoices_owner_party_no"),
    )

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    owner_id = Column(Integer, nullable=False, index=True)
    party_id = Column(Integer, ForeignKey("parties.id"), nullable=False, index=True)

    invoice_no = Column(String(50), nullable=False)
    voucher_id = Column(String(50), nullable=True)
    stock_received = Column(Boolean, nullable=False, default=False)

    @property
    def number(self) -> str:
        return self.invoice_no

    def __repr__(self):
        return f"<Invoice(id={self.id}, no='{self.invoice_no}', status='{self.status.value}', amount={self.amount})>"
