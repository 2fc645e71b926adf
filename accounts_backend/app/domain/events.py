"""
Domain events.

Every mutation produces typed events that are buffered during the unit of
work and handed to the publisher only after the transaction commits.
"""

import enum
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List


class EventTopic(str, enum.Enum):
    """Closed set of topics the accounts core publishes."""
    SALE_CREATED = "sale:created"
    SALE_UPDATED = "sale:updated"
    SALE_PARTIALLY_PAID = "sale:partially-paid"
    SALE_PAID = "sale:paid"
    SALE_CANCELLED = "sale:cancelled"

    INVOICE_CREATED = "invoice:created"
    INVOICE_UPDATED = "invoice:updated"
    INVOICE_PARTIALLY_PAID = "invoice:partially-paid"
    INVOICE_PAID = "invoice:paid"
    INVOICE_CANCELLED = "invoice:cancelled"

    SALE_RECEIPT_CREATED = "sale-receipt:created"
    SALE_RECEIPT_UPDATED = "sale-receipt:updated"
    SALE_RECEIPT_DELETED = "sale-receipt:deleted"
    SALE_RECEIPT_CLEARED = "sale-receipt:cleared"

    INVOICE_PAYMENT_CREATED = "invoice-payment:created"
    INVOICE_PAYMENT_UPDATED = "invoice-payment:updated"
    INVOICE_PAYMENT_DELETED = "invoice-payment:deleted"

    STOCK_ADDED = "stock:added"
    STOCK_REDUCED = "stock:reduced"
    STOCK_RETURNED = "stock:returned"
    STOCK_ADJUSTED = "stock:adjusted"
    STOCK_LOW = "stock:low"
    STOCK_CRITICAL = "stock:critical"
    STOCK_OUT = "stock:out"

    CUSTOMER_CREDIT_LIMIT_CHANGED = "customer:credit-limit-changed"
    CUSTOMER_CREDIT_LIMIT_EXCEEDED = "customer:credit-limit-exceeded"


@dataclass(frozen=True)
class DomainEvent:
    topic: EventTopic
    key: str
    payload: Dict[str, Any]


@dataclass
class EventBuffer:
    """Events collected during one unit of work, in emission order."""

    events: List[DomainEvent] = field(default_factory=list)

    def add(self, topic: EventTopic, key: Any, payload: Dict[str, Any]) -> None:
        self.events.append(DomainEvent(topic=topic, key=str(key), payload=payload))

    def topics(self) -> List[EventTopic]:
        return [event.topic for event in self.events]

    def clear(self) -> None:
        self.events.clear()

    def __len__(self) -> int:
        return len(self.events)


def _plain(value: Any) -> Any:
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    if isinstance(value, enum.Enum):
        return value.value
    return value


def snapshot(entity: Any, *fields: str) -> Dict[str, Any]:
    """JSON-friendly dict of the named attributes of ``entity``."""
    return {name: _plain(getattr(entity, name)) for name in fields}


DOCUMENT_FIELDS = ("id", "owner_id", "date", "due_date", "amount", "paid_amount", "remaining_amount", "status")
SALE_FIELDS = DOCUMENT_FIELDS + ("customer_id", "sale_no", "stock_committed")
INVOICE_FIELDS = DOCUMENT_FIELDS + ("party_id", "invoice_no", "stock_received")
PAYMENT_FIELDS = ("id", "owner_id", "date", "amount", "method", "status", "cheque_no")
SALE_RECEIPT_FIELDS = PAYMENT_FIELDS + ("customer_id", "sale_id", "receipt_no", "clearance_date", "charges")
INVOICE_PAYMENT_FIELDS = PAYMENT_FIELDS + ("party_id", "invoice_id", "voucher_no")
ITEM_FIELDS = ("id", "owner_id", "name", "sku", "current_stock", "minimum_stock", "reorder_level", "maximum_stock")
