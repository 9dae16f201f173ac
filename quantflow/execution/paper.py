"""Paper execution: acknowledges orders locally, never touches an exchange."""

from __future__ import annotations
import logging
from typing import List, Optional

from quantflow.core.types import Order
from quantflow.execution.base import ExecutionReport, OrderExecutionPort

logger = logging.getLogger("quantflow.execution.paper")


class PaperExecutionClient(OrderExecutionPort):
    def __init__(self):
        self.placed: List[Order] = []
        self.cancel_calls = 0
        self._counter = 0

    def place(self, order: Order) -> ExecutionReport:
        self._counter += 1
        self.placed.append(order)
        return ExecutionReport(
            success=True,
            order_id=order.id,
            exchange_order_id=f"paper-{self._counter}",
            quantity=order.qty,
        )

    def cancel_all(self, symbol: Optional[str] = None) -> None:
        self.cancel_calls += 1
        logger.debug("Paper cancel_all (%s)", symbol or "all symbols")
