"""
Account references.

An account is not a stored row: it is the key ``(owner, kind, counterparty)``
used to select ledger entries. Modelling it as a closed union of two frozen
dataclasses means a reference always names exactly one counterparty.
"""

from dataclasses import dataclass
from typing import ClassVar, Dict, Union

from sqlalchemy import and_

from accounts_backend.app.models.billing_enums import PartyKind
from accounts_backend.app.models.ledger_entry import LedgerEntry


@dataclass(frozen=True)
class CustomerAccount:
    """Receivable account of one customer."""

    owner_id: int
    customer_id: int
    kind: ClassVar[PartyKind] = PartyKind.CUSTOMER

    @property
    def counterparty_id(self) -> int:
        return self.customer_id

    def entry_columns(self) -> Dict[str, int]:
        return {"owner_id": self.owner_id, "customer_id": self.customer_id, "party_id": None}

    def criteria(self):
        return and_(LedgerEntry.owner_id == self.owner_id, LedgerEntry.customer_id == self.customer_id)


@dataclass(frozen=True)
class PartyAccount:
    """Payable account of one party."""

    owner_id: int
    party_id: int
    kind: ClassVar[PartyKind] = PartyKind.PARTY

    @property
    def counterparty_id(self) -> int:
        return self.party_id

    def entry_columns(self) -> Dict[str, int]:
        return {"owner_id": self.owner_id, "customer_id": None, "party_id": self.party_id}

    def criteria(self):
        return and_(LedgerEntry.owner_id == self.owner_id, LedgerEntry.party_id == self.party_id)


AccountRef = Union[CustomerAccount, PartyAccount]


def account_of(entry: LedgerEntry) -> AccountRef:
    """Rebuild the account reference a stored entry belongs to."""
    if entry.customer_id is not None:
        return CustomerAccount(owner_id=entry.owner_id, customer_id=entry.customer_id)
    return PartyAccount(owner_id=entry.owner_id, party_id=entry.party_id)
