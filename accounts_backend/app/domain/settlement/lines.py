"""
Document line items.

Lines are stored on the document as JSON and drive both the document amount
and the stock movements a settlement makes.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Sequence

from accounts_backend.app.core.exceptions import ValidationFailedError
from accounts_backend.app.domain.inventory.stock_ledger import StockLine
from accounts_backend.app.domain.money import ZERO, to_money


@dataclass
class DocumentLine:
    description: str
    quantity: int
    unit_price: Decimal
    inventory_item_id: Optional[int] = None

    @property
    def amount(self) -> Decimal:
        return to_money(self.unit_price) * self.quantity


def document_total(
    lines: Sequence[DocumentLine],
    discount: Decimal = ZERO,
    round_off: Decimal = ZERO,
) -> Decimal:
    """Sum of line amounts less discount plus round-off."""
    for line in lines:
        if line.quantity <= 0:
            raise ValidationFailedError("Line quantity must be positive", details={"description": line.description})
        if to_money(line.unit_price) < 0:
            raise ValidationFailedError("Line unit price must not be negative", details={"description": line.description})

    subtotal = sum((line.amount for line in lines), ZERO)
    return to_money(subtotal - to_money(discount) + to_money(round_off))


def serialize_lines(lines: Iterable[DocumentLine]) -> List[Dict[str, Any]]:
    return [
        {
            "description": line.description,
            "quantity": line.quantity,
            "unit_price": str(to_money(line.unit_price)),
            "amount": str(line.amount),
            "inventory_item_id": line.inventory_item_id,
        }
        for line in lines
    ]


def stored_lines(items: Optional[List[Dict[str, Any]]]) -> List[DocumentLine]:
    return [
        DocumentLine(
            description=item.get("description", ""),
            quantity=int(item["quantity"]),
            unit_price=to_money(item.get("unit_price")),
            inventory_item_id=item.get("inventory_item_id"),
        )
        for item in items or []
    ]


def stock_lines(lines: Iterable[DocumentLine]) -> List[StockLine]:
    """Lines that are tied to an inventory item."""
    return [
        StockLine(inventory_item_id=line.inventory_item_id, quantity=line.quantity)
        for line in lines
        if line.inventory_item_id is not None
    ]
