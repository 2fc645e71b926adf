"""
Invoice Payment database model.

Money paid to a party, optionally allocated to one invoice.
"""

from sqlalchemy import Column, ForeignKey, Integer, String, UniqueConstraint

from accounts_backend.app.db.session import Base
from accounts_backend.app.models.mixins import SettlementPaymentMixin


class InvoicePayment(SettlementPaymentMixin, Base):
    __tablename__ = "invoice_payments"
    __table_args__ = (
        UniqueConstraint("owner_id", "party_id", "voucher_no", name="uq_invoice_payments_owner_party_no"),
    )

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    owner_id = Column(Integer, nullable=False, index=True)
    party_id = Column(Integer, ForeignKey("parties.id"), nullable=False, index=True)
    invoice_id = Column(Integer, ForeignKey("invoices.id"), nullable=True, index=True)

    voucher_no = Column(String(50), nullable=False)

    @property
    def number(self) -> str:
        return self.voucher_no

    def __repr__(self):
        return f"<InvoicePayment(id={self.id}, no='{self.voucher_no}', amount={self.amount})>"
