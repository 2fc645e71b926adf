"""
Inventory enumerations.
"""

import enum


class MovementType(str, enum.Enum):
    """Stock movement type enumeration."""
    IN = "IN"
    OUT = "OUT"
    ADJUST = "ADJUST"
    RETURN = "RETURN"


class StockAlert(str, enum.Enum):
    """Alert raised by a stock change, at most one per change."""
    LOW_STOCK = "LOW_STOCK"
    OUT_OF_STOCK = "OUT_OF_STOCK"


class StockLevel(str, enum.Enum):
    """Reporting classification of an item's current stock."""
    OK = "OK"
    LOW = "LOW"
    CRITICAL = "CRITICAL"
    OUT_OF_STOCK = "OUT_OF_STOCK"


class RestockReason(str, enum.Enum):
    """Why stock is coming back from a sale."""
    CANCELLED = "CANCELLED"
    RETURNED = "RETURNED"
