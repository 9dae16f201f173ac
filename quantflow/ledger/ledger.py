"""
Order & position ledger: pending orders, netted positions, realized trades, cash.
Single source of truth for account state within one run.
"""

from __future__ import annotations
import logging
import math
from dataclasses import replace
from typing import Dict, List, Optional, Tuple

from quantflow.core.errors import InvalidQuantity
from quantflow.core.types import Bar, Fill, Order, OrderIntent, OrderSide, Position, Trade

logger = logging.getLogger("quantflow.ledger")

# Position quantities below this are treated as flat
QTY_EPSILON = 1e-12


class Ledger:
    """
    Netting ledger (one position per symbol, never opposing exposure).
    cash_balance moves only when a trade is realized.
    Fees (fee_bps of notional, both legs) are charged when a position is closed.
    """

    def __init__(
        self,
        symbol: str,
        starting_cash: float,
        fee_bps: float = 0.0,
        slippage_bps: float = 0.0,
    ):
        self.symbol = symbol
        self.starting_cash = float(starting_cash)
        self.cash_balance = float(starting_cash)
        self.fee_bps = fee_bps
        self.slippage_bps = slippage_bps
        self._pending: List[Order] = []
        self._positions: Dict[str, Position] = {}
        self._trades: List[Trade] = []
        self._order_seq = 0
        self._trade_seq = 0

    # ----- queries -----

    @property
    def pending_orders(self) -> Tuple[Order, ...]:
        return tuple(self._pending)

    @property
    def trades(self) -> Tuple[Trade, ...]:
        return tuple(self._trades)

    def position(self, symbol: Optional[str] = None) -> Optional[Position]:
        pos = self._positions.get(symbol or self.symbol)
        return replace(pos) if pos is not None else None

    def positions(self) -> List[Position]:
        return [replace(p) for p in self._positions.values()]

    def unrealized_pnl(self) -> float:
        return sum(p.unrealized_pnl for p in self._positions.values())

    def equity(self) -> float:
        return self.cash_balance + self.unrealized_pnl()

    # ----- orders -----

    def submit(self, intent: OrderIntent, at_bar: Bar, symbol: Optional[str] = None) -> str:
        """Record a pending order. Raises InvalidQuantity for qty <= 0 or non-finite."""
        qty = intent.qty
        if not isinstance(qty, (int, float)) or not math.isfinite(qty) or qty <= 0:
            raise InvalidQuantity(f"order quantity must be positive, got {qty!r}")
        for level in (intent.stop_loss, intent.take_profit):
            if level is not None and (not math.isfinite(level) or level <= 0):
                raise InvalidQuantity(f"invalid stop/target level {level!r}")
        self._order_seq += 1
        order = Order(
            id=f"ord-{self._order_seq}",
            symbol=symbol or self.symbol,
            side=OrderSide(intent.side),
            qty=float(qty),
            requested_at=at_bar.time,
            stop_loss=intent.stop_loss,
            take_profit=intent.take_profit,
        )
        self._pending.append(order)
        logger.debug("Order %s %s %.8g submitted at %s", order.id, order.side.value, order.qty, at_bar.time)
        return order.id

    def take_pending(self) -> List[Order]:
        """Remove and return all pending orders in submission order."""
        orders, self._pending = self._pending, []
        return orders

    def cancel_pending(self) -> int:
        n = len(self._pending)
        self._pending = []
        return n

    def _slipped(self, side: OrderSide, price: float) -> float:
        # Fills are worse for us by slippage_bps
        return price * (1 + side.sign * self.slippage_bps / 10000.0)

    def try_fill(self, order: Order, fill_bar: Bar, price: Optional[float] = None) -> Tuple[Fill, List[Trade]]:
        """
        Fill order at fill_bar.open (or the given price). An opposing order first
        reduces/closes the open position, realizing PnL; any remainder opens a new
        position on the order's side.
        """
        fill_price = self._slipped(order.side, fill_bar.open if price is None else price)
        fill = Fill(order.id, order.symbol, order.side, order.qty, fill_price, fill_bar.time)
        trades: List[Trade] = []
        remaining = order.qty
        pos = self._positions.get(order.symbol)

        if pos is not None and pos.side is not order.side:
            closing = min(pos.qty, remaining)
            trades.append(self._close(pos, closing, fill_price, fill_bar.time, "signal"))
            remaining -= closing

        if remaining > QTY_EPSILON:
            pos = self._positions.get(order.symbol)
            if pos is None:
                self._positions[order.symbol] = Position(
                    symbol=order.symbol,
                    side=order.side,
                    qty=remaining,
                    entry_price=fill_price,
                    current_price=fill_bar.close,
                    opened_at=fill_bar.time,
                    stop_loss=order.stop_loss,
                    take_profit=order.take_profit,
                )
            else:
                total = pos.qty + remaining
                pos.entry_price = (pos.entry_price * pos.qty + fill_price * remaining) / total
                pos.qty = total
                pos.current_price = fill_bar.close
                if order.stop_loss is not None:
                    pos.stop_loss = order.stop_loss
                if order.take_profit is not None:
                    pos.take_profit = order.take_profit
        return fill, trades

    # ----- marking and exits -----

    def mark_to_market(self, bar: Bar) -> None:
        for pos in self._positions.values():
            pos.current_price = bar.close

    def check_exits(self, bar: Bar) -> List[Trade]:
        """
        Close positions whose stop-loss or take-profit lies inside the bar's range.
        Both inside: stop-loss wins. A bar opening beyond the level fills at the open.
        """
        trades: List[Trade] = []
        for pos in list(self._positions.values()):
            exit_price = None
            reason = ""
            if pos.side is OrderSide.BUY:
                if pos.stop_loss is not None and bar.low <= pos.stop_loss:
                    exit_price, reason = min(bar.open, pos.stop_loss), "stop_loss"
                elif pos.take_profit is not None and bar.high >= pos.take_profit:
                    exit_price, reason = max(bar.open, pos.take_profit), "take_profit"
            else:
                if pos.stop_loss is not None and bar.high >= pos.stop_loss:
                    exit_price, reason = max(bar.open, pos.stop_loss), "stop_loss"
                elif pos.take_profit is not None and bar.low <= pos.take_profit:
                    exit_price, reason = min(bar.open, pos.take_profit), "take_profit"
            if exit_price is not None:
                trades.append(self._close(pos, pos.qty, exit_price, bar.time, reason))
        return trades

    def close_all(self, reason: str, time: int) -> List[Trade]:
        """Close every open position at its last known price. No positions: no-op."""
        return [
            self._close(pos, pos.qty, pos.current_price, time, reason)
            for pos in list(self._positions.values())
        ]

    def _close(self, pos: Position, qty: float, price: float, time: int, reason: str) -> Trade:
        gross = (price - pos.entry_price) * qty * pos.side.sign
        fees = (qty * pos.entry_price + qty * price) * (self.fee_bps / 10000.0)
        pnl = gross - fees
        self.cash_balance += pnl
        self._trade_seq += 1
        trade = Trade(
            id=f"tr-{self._trade_seq}",
            symbol=pos.symbol,
            side=pos.side,
            price=price,
            qty=qty,
            timestamp=time,
            realized_pnl=pnl,
            reason=reason,
            entry_price=pos.entry_price,
            fees=fees,
        )
        self._trades.append(trade)
        pos.qty -= qty
        pos.current_price = price
        if pos.qty <= QTY_EPSILON:
            del self._positions[pos.symbol]
        logger.debug("Trade %s %s %.8g @ %.8g pnl=%.8g (%s)", trade.id, pos.side.value, qty, price, pnl, reason)
        return trade
