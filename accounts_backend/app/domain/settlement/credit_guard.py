"""
Credit Limit Guard.

Soft limit: a sale that would take a customer past their credit limit is
logged and reported, never blocked. A limit of zero means no limit.
Invoices are not checked.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy.ext.asyncio import AsyncSession

from accounts_backend.app.domain.ledger.account import AccountRef, CustomerAccount
from accounts_backend.app.domain.ledger.balance import BalanceCalculator
from accounts_backend.app.domain.money import ZERO, to_money
from accounts_backend.app.models.customer import Customer

logger = logging.getLogger("accounts.settlement")


@dataclass
class CreditCheck:
    exceeds: bool
    projected_balance: Decimal
    current_balance: Decimal
    credit_limit: Decimal


class CreditLimitGuard:

    @staticmethod
    async def evaluate(db: AsyncSession, account: AccountRef, proposed_amount: Decimal) -> CreditCheck:
        """
        Project the balance after ``proposed_amount`` and compare to the limit.

        Args:
            db: Session (read only)
            account: Account the new receivable would be booked to
            proposed_amount: Amount of the new receivable

        Returns:
            CreditCheck; ``exceeds`` is False whenever no limit is configured
        """
        limit = ZERO
        if isinstance(account, CustomerAccount):
            customer = await db.get(Customer, account.customer_id)
            if customer is not None:
                limit = to_money(customer.credit_limit)

        current = await BalanceCalculator.balance(db, account)
        projected = current + to_money(proposed_amount)
        exceeds = limit > 0 and projected > limit

        if exceeds:
            logger.warning(
                "Credit limit exceeded",
                extra={
                    "owner_id": account.owner_id,
                    "customer_id": account.counterparty_id,
                    "credit_limit": str(limit),
                    "current_balance": str(current),
                    "projected_balance": str(projected),
                },
            )

        return CreditCheck(
            exceeds=exceeds,
            projected_balance=projected,
            current_balance=current,
            credit_limit=limit,
        )
