"""
Execution engine: drives one strategy one bar at a time against a ledger.
Same code path for backtests and live sessions; only the bar source and clock differ.
"""

from __future__ import annotations
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Tuple

from quantflow.core.clock import Clock, SimulatedClock
from quantflow.core.errors import StrategyError, ValidationError
from quantflow.core.types import Bar, EquityPoint, Fill, FillPolicy, Order, OrderIntent, Trade
from quantflow.ledger.ledger import Ledger
from quantflow.strategies.base import HistoryView, Strategy, StrategyContext, normalize_intents

logger = logging.getLogger("quantflow.engine")


class RunStatus(str, Enum):
    PENDING = "PENDING"
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"

    @property
    def terminal(self) -> bool:
        return self in (RunStatus.COMPLETED, RunStatus.FAILED, RunStatus.CANCELLED)


@dataclass
class BarReport:
    """What processing one bar changed: the deltas a live session turns into logs."""
    bar: Bar
    exits: List[Trade] = field(default_factory=list)
    fills: List[Tuple[Order, Fill]] = field(default_factory=list)
    trades: List[Trade] = field(default_factory=list)
    submitted: List[Order] = field(default_factory=list)
    rejected: List[Tuple[OrderIntent, str]] = field(default_factory=list)
    equity: float = 0.0
    equity_delta: float = 0.0

    @property
    def all_trades(self) -> List[Trade]:
        return self.exits + self.trades


class ExecutionEngine:
    """
    Per-bar algorithm:
      1. mark open positions to the bar close
      2. stop-loss / take-profit against the bar's high/low (stop first)
      3. fill orders pending from the previous bar at this bar's open
      4. strategy.on_bar
      5. submit returned intents (filled next bar, or now at the close under CURRENT_CLOSE)
      6. append an equity sample
    """

    def __init__(
        self,
        strategy: Strategy,
        symbol: str,
        starting_equity: float,
        timeframe: str = "1h",
        fill_policy: FillPolicy = FillPolicy.NEXT_OPEN,
        fee_bps: float = 0.0,
        slippage_bps: float = 0.0,
        clock: Optional[Clock] = None,
        ledger: Optional[Ledger] = None,
    ):
        self.strategy = strategy
        self.symbol = symbol
        self.timeframe = timeframe
        self.fill_policy = FillPolicy(fill_policy)
        self.clock = clock or SimulatedClock()
        # A live session hands in its own ledger so positions survive stop/start
        self.ledger = ledger or Ledger(symbol, starting_equity, fee_bps=fee_bps, slippage_bps=slippage_bps)
        self.status = RunStatus.PENDING
        self.error: Optional[BaseException] = None
        self.equity_curve: List[EquityPoint] = []
        self.rejected_intents = 0
        self._columns: Dict[str, List[float]] = {
            name: [] for name in ("time", "open", "high", "low", "close", "volume")
        }
        self._last_bar: Optional[Bar] = None

    @property
    def starting_equity(self) -> float:
        return self.ledger.starting_cash

    @property
    def trades(self) -> Tuple[Trade, ...]:
        return self.ledger.trades

    @property
    def bars_processed(self) -> int:
        return len(self._columns["time"])

    def _context(self) -> StrategyContext:
        return StrategyContext(
            history=HistoryView(self._columns, self.bars_processed),
            position=self.ledger.position(),
            equity=self.ledger.equity(),
            cash=self.ledger.cash_balance,
            symbol=self.symbol,
            timeframe=self.timeframe,
        )

    def _require(self, *states: RunStatus) -> None:
        if self.status not in states:
            raise RuntimeError(f"engine is {self.status.value}, expected one of {[s.value for s in states]}")

    def start(self) -> None:
        """PENDING -> RUNNING. A failing strategy.init fails the run and raises StrategyError."""
        self._require(RunStatus.PENDING)
        self.status = RunStatus.RUNNING
        try:
            self.strategy.init(self._context())
        except Exception as e:
            err = StrategyError(f"{type(e).__name__} in init: {e}")
            err.__cause__ = e
            self.fail(err)
            raise err
        logger.debug("Run started: %s %s %s", self.strategy.name, self.symbol, self.timeframe)

    def process_bar(self, bar: Bar) -> BarReport:
        """Run the per-bar algorithm. A strategy exception fails the run and raises StrategyError."""
        self._require(RunStatus.RUNNING)
        if self._last_bar is not None and bar.time <= self._last_bar.time:
            raise ValidationError(f"bar time {bar.time} not after {self._last_bar.time}")
        self.clock.observe(bar.time)
        prev_equity = self.equity_curve[-1].equity if self.equity_curve else self.ledger.equity()
        report = BarReport(bar=bar)
        for name in self._columns:
            self._columns[name].append(getattr(bar, name))
        self._last_bar = bar

        self.ledger.mark_to_market(bar)
        report.exits = self.ledger.check_exits(bar)
        for order in self.ledger.take_pending():
            fill, trades = self.ledger.try_fill(order, bar)
            report.fills.append((order, fill))
            report.trades.extend(trades)

        try:
            intents = normalize_intents(self.strategy.on_bar(self._context()))
        except Exception as e:
            err = StrategyError(f"{type(e).__name__} in on_bar at {bar.time}: {e}", bar_time=bar.time)
            err.__cause__ = e
            self.fail(err)
            raise err

        for intent in intents:
            try:
                order_id = self.ledger.submit(intent, bar)
            except ValidationError as e:
                self.rejected_intents += 1
                report.rejected.append((intent, str(e)))
                logger.warning("Rejected order intent at %s: %s", bar.time, e)
                continue
            report.submitted.append(self.ledger.pending_orders[-1])
            logger.debug("Submitted %s", order_id)

        if self.fill_policy is FillPolicy.CURRENT_CLOSE:
            for order in self.ledger.take_pending():
                fill, trades = self.ledger.try_fill(order, bar, price=bar.close)
                report.fills.append((order, fill))
                report.trades.extend(trades)

        report.equity = self.ledger.equity()
        report.equity_delta = report.equity - prev_equity
        self.equity_curve.append(EquityPoint(bar.time, report.equity))
        return report

    def close_positions(self, reason: str) -> List[Trade]:
        """Force-close everything at the last known price and drop unfilled orders."""
        time = self._last_bar.time if self._last_bar is not None else 0
        dropped = self.ledger.cancel_pending()
        if dropped:
            logger.info("Dropped %d unfilled order(s): %s", dropped, reason)
        return self.ledger.close_all(reason, time)

    def finish(self, reason: str = "end of data") -> List[Trade]:
        """End of a finite source: close all, then COMPLETED."""
        self._require(RunStatus.RUNNING)
        trades = self.close_positions(reason)
        if trades and self.equity_curve:
            # fees on the forced closes move the last sample
            last = self.equity_curve[-1]
            self.equity_curve[-1] = EquityPoint(last.time, self.ledger.equity())
        self.status = RunStatus.COMPLETED
        return trades

    def fail(self, error: BaseException) -> None:
        if self.status.terminal:
            return
        self.error = error
        self.status = RunStatus.FAILED
        logger.error("Run failed after %d bars: %s", self.bars_processed, error)

    def cancel(self, reason: str = "cancelled") -> None:
        if self.status.terminal:
            return
        self.status = RunStatus.CANCELLED
        logger.info("Run cancelled after %d bars: %s", self.bars_processed, reason)
