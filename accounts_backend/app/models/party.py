"""
Party (supplier) database model.

A party is the counterparty of a payable account.
"""

from sqlalchemy import Boolean, Column, Integer, String, UniqueConstraint

from accounts_backend.app.db.session import Base
from accounts_backend.app.models.mixins import TimestampMixin


class Party(TimestampMixin, Base):
    __tablename__ = "parties"
    __table_args__ = (
        UniqueConstraint("owner_id", "name", name="uq_parties_owner_name"),
    )

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    owner_id = Column(Integer, nullable=False, index=True)

    name = Column(String(150), nullable=False)
    phone = Column(String(30), nullable=True)
    email = Column(String(255), nullable=True)
    gst_no = Column(String(30), nullable=True)
    address = Column(String(255), nullable=True)

    is_active = Column(Boolean, default=True, nullable=False)

    def __repr__(self):
        return f"<Party(id={self.id}, name='{self.name}')>"
