"""
Customer database model.

A customer is the counterparty of a receivable account.
"""

from decimal import Decimal

from sqlalchemy import Boolean, Column, Integer, String, UniqueConstraint

from accounts_backend.app.db.session import Base
from accounts_backend.app.models.mixins import MONEY, TimestampMixin


class Customer(TimestampMixin, Base):
    """
    Customer model.

    The balance is never stored here; it is folded from ledger entries.
    A credit_limit of zero means no limit.
    """
    __tablename__ = "customers"
    __table_args__ = (
        UniqueConstraint("owner_id", "name", name="uq_customers_owner_name"),
    )

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    owner_id = Column(Integer, nullable=False, index=True)

    name = Column(String(150), nullable=False)
    phone = Column(String(30), nullable=True)
    email = Column(String(255), nullable=True)
    address = Column(String(255), nullable=True)

    credit_limit = Column(MONEY, nullable=False, default=Decimal("0"))
    is_active = Column(Boolean, default=True, nullable=False)

    def __repr__(self):
        return f"<Customer(id={self.id}, name='{self.name}')>"
