"""Order execution port: where live-mode fills are sent."""

from __future__ import annotations
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from quantflow.core.types import Order


@dataclass
class ExecutionReport:
    """Result of placing an order."""
    success: bool
    order_id: Optional[str] = None
    exchange_order_id: Optional[str] = None
    avg_price: Optional[float] = None
    quantity: Optional[float] = None
    message: str = ""


class OrderExecutionPort(ABC):
    """Exchange-side order placement. Calls may block; the session runs them off the event loop."""

    @abstractmethod
    def place(self, order: Order) -> ExecutionReport:
        """Send a market order for order.qty on order.side."""
        pass

    @abstractmethod
    def cancel_all(self, symbol: Optional[str] = None) -> None:
        """Cancel every open order (for symbol, if given). Raise if the venue can't be reached."""
        pass
