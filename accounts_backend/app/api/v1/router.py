"""
API v1 Router.

Aggregates all v1 API endpoints.
"""

from fastapi import APIRouter
from accounts_backend.app.api.v1.endpoints import (
    customers, parties, sales, invoices,
    sale_receipts, invoice_payments,
    inventory, ledger,
)

router = APIRouter()

# Accounts
router.include_router(customers.router)
router.include_router(parties.router)

# Documents
router.include_router(sales.router)
router.include_router(invoices.router)

# Payments
router.include_router(sale_receipts.router)
router.include_router(invoice_payments.router)

# Stock
router.include_router(inventory.router)

# Ledger views
router.include_router(ledger.router)
