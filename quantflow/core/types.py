"""
Core data types for bars, orders, positions, trades and session logs.
"""

from __future__ import annotations
from dataclasses import dataclass
from enum import Enum
from typing import Optional


class OrderSide(str, Enum):
    BUY = "BUY"
    SELL = "SELL"

    @property
    def sign(self) -> int:
        return 1 if self is OrderSide.BUY else -1

    @property
    def opposite(self) -> "OrderSide":
        return OrderSide.SELL if self is OrderSide.BUY else OrderSide.BUY


class FillPolicy(str, Enum):
    """When an order returned on bar N is filled."""
    NEXT_OPEN = "next_open"
    CURRENT_CLOSE = "current_close"


class LogLevel(str, Enum):
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


@dataclass(frozen=True)
class Bar:
    """OHLCV candle. time is a Unix timestamp in seconds."""
    time: int
    open: float
    high: float
    low: float
    close: float
    volume: float = 0.0


@dataclass(frozen=True)
class OrderIntent:
    """What a strategy asks for; becomes an Order once the ledger accepts it."""
    side: OrderSide
    qty: float
    stop_loss: Optional[float] = None
    take_profit: Optional[float] = None

    @classmethod
    def buy(cls, qty: float, stop_loss: Optional[float] = None, take_profit: Optional[float] = None) -> "OrderIntent":
        return cls(OrderSide.BUY, qty, stop_loss, take_profit)

    @classmethod
    def sell(cls, qty: float, stop_loss: Optional[float] = None, take_profit: Optional[float] = None) -> "OrderIntent":
        return cls(OrderSide.SELL, qty, stop_loss, take_profit)


@dataclass(frozen=True)
class Order:
    """Pending order recorded by the ledger."""
    id: str
    symbol: str
    side: OrderSide
    qty: float
    requested_at: int
    stop_loss: Optional[float] = None
    take_profit: Optional[float] = None


@dataclass
class Position:
    """Open position state. Only the ledger mutates it; everyone else gets copies."""
    symbol: str
    side: OrderSide
    qty: float
    entry_price: float
    current_price: float
    opened_at: int = 0
    stop_loss: Optional[float] = None
    take_profit: Optional[float] = None

    @property
    def unrealized_pnl(self) -> float:
        return (self.current_price - self.entry_price) * self.qty * self.side.sign


@dataclass(frozen=True)
class Fill:
    """An order converted into a position change at a price."""
    order_id: str
    symbol: str
    side: OrderSide
    qty: float
    price: float
    time: int


@dataclass(frozen=True)
class Trade:
    """Closed (fully or partially) position. side is the side of the position closed."""
    id: str
    symbol: str
    side: OrderSide
    price: float
    qty: float
    timestamp: int
    realized_pnl: float
    reason: str  # "signal" | "stop_loss" | "take_profit" | "end of data" | "kill switch"
    entry_price: float = 0.0
    fees: float = 0.0


@dataclass(frozen=True)
class EquityPoint:
    time: int
    equity: float


@dataclass(frozen=True)
class LogEntry:
    id: str
    timestamp: float
    message: str
    level: LogLevel = LogLevel.INFO
