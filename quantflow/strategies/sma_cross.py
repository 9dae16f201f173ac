"""
Simple moving average crossover. Flat -> long on a golden cross, long -> short
on a death cross (one order of 2x size flips the net position).
"""

from __future__ import annotations
from typing import Optional

import numpy as np

from quantflow.core.types import OrderIntent, OrderSide
from quantflow.strategies.base import Strategy, StrategyContext
from quantflow.strategies.registry import register_strategy


@register_strategy("sma_cross")
class SmaCrossStrategy(Strategy):
    """
    Long when SMA(fast) crosses above SMA(slow), short when it crosses below.
    Optional stop_loss_pct / take_profit_pct are placed around the signal bar's close.
    """

    def __init__(
        self,
        fast: int = 10,
        slow: int = 30,
        size: float = 0.1,
        allow_short: bool = True,
        stop_loss_pct: float = 0.0,
        take_profit_pct: float = 0.0,
    ):
        if fast <= 0 or slow <= fast:
            raise ValueError(f"need 0 < fast < slow, got fast={fast} slow={slow}")
        self.fast = fast
        self.slow = slow
        self.size = size
        self.allow_short = allow_short
        self.stop_loss_pct = stop_loss_pct
        self.take_profit_pct = take_profit_pct

    def _levels(self, side: OrderSide, close: float) -> tuple:
        sl = tp = None
        if self.stop_loss_pct > 0:
            sl = close * (1 - side.sign * self.stop_loss_pct / 100.0)
        if self.take_profit_pct > 0:
            tp = close * (1 + side.sign * self.take_profit_pct / 100.0)
        return sl, tp

    def on_bar(self, context: StrategyContext) -> Optional[OrderIntent]:
        if len(context.history) < self.slow + 1:
            return None
        closes = context.history.close.values[-(self.slow + 1):]
        fast_now = np.mean(closes[-self.fast:])
        slow_now = np.mean(closes[-self.slow:])
        fast_prev = np.mean(closes[-self.fast - 1:-1])
        slow_prev = np.mean(closes[:-1])

        pos = context.position
        close = context.history.close[-1]
        if fast_prev <= slow_prev and fast_now > slow_now:
            if pos is not None and pos.side is OrderSide.BUY:
                return None
            qty = self.size + (pos.qty if pos is not None else 0.0)
            sl, tp = self._levels(OrderSide.BUY, close)
            return OrderIntent.buy(qty, sl, tp)
        if fast_prev >= slow_prev and fast_now < slow_now:
            if pos is None and not self.allow_short:
                return None
            if pos is not None and pos.side is OrderSide.SELL:
                return None
            qty = (pos.qty if pos is not None else 0.0) + (self.size if self.allow_short else 0.0)
            sl, tp = self._levels(OrderSide.SELL, close)
            return OrderIntent.sell(qty, sl, tp)
        return None
