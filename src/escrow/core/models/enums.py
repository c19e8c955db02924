from __future__ import annotations
from enum import Enum

class OrderSide(str, Enum):
    BUY = "BUY"
    SELL = "SELL"

    @property
    def book_side(self) -> "BookSide":
        return BookSide.BIDS if self is OrderSide.BUY else BookSide.ASKS

class BookSide(str, Enum):
    BIDS = "BIDS"
    ASKS = "ASKS"

class OrderStatus(str, Enum):
    OPEN = "OPEN"
    PARTIALLY_FILLED = "PARTIALLY_FILLED"
    FILLED = "FILLED"
    CANCELLED = "CANCELLED"

class CancelResult(str, Enum):
    SUCCESS = "SUCCESS"
    NO_MATCH = "NO_MATCH"
