"""
Live / paper session controller.

IDLE --start--> RUNNING --stop--> IDLE, RUNNING --kill--> IDLE.
One consumer task per running session reads bars from a live source and feeds
the execution engine. stop/kill set an event that the consumer checks at the
top of every bar iteration and races against the wait for the next bar, so a
bar already being processed always completes.
"""

from __future__ import annotations
import asyncio
import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Iterable, Optional, Tuple

from quantflow.core.clock import Clock, WallClock
from quantflow.core.errors import CredentialError, EndOfStream, StrategyError, StreamInterrupted
from quantflow.core.types import FillPolicy, LogEntry, LogLevel, Order, Position, Trade
from quantflow.data.sources import BarSourcePort, LiveBarSource
from quantflow.engine.engine import BarReport, ExecutionEngine
from quantflow.execution.base import OrderExecutionPort
from quantflow.execution.paper import PaperExecutionClient
from quantflow.ledger.ledger import Ledger
from quantflow.live.log_ring import LogRing, LogSink
from quantflow.strategies.base import Strategy

logger = logging.getLogger("quantflow.live")


class SessionMode(str, Enum):
    PAPER = "paper"
    LIVE = "live"


@dataclass(frozen=True)
class Credentials:
    api_key: str = ""
    api_secret: str = ""

    @property
    def complete(self) -> bool:
        return bool(self.api_key and self.api_key.strip()) and bool(self.api_secret and self.api_secret.strip())

    def __repr__(self) -> str:
        return f"Credentials(api_key={'***' if self.api_key else ''!r}, api_secret=***)"


@dataclass(frozen=True)
class SessionSnapshot:
    """Consistent, immutable view of a session for display."""
    is_running: bool
    mode: SessionMode
    symbol: str
    timeframe: str
    equity: float
    cash: float
    positions: Tuple[Position, ...]
    recent_logs: Tuple[LogEntry, ...]
    bars_processed: int
    last_update: float
    pending_orders: int = 0


ExecutionFactory = Callable[[Credentials], OrderExecutionPort]


def _report_sink_failure(future: "asyncio.Future") -> None:
    if future.cancelled():
        return
    exc = future.exception()
    if exc is not None:
        logger.error("Log sink failed: %s", exc, exc_info=exc)


class LiveSessionController:
    """
    Owns the session record (ledger, log ring, running flag). External readers
    only ever see SessionSnapshot objects published after each change.
    """

    def __init__(
        self,
        strategy: Strategy,
        bar_port: BarSourcePort,
        symbol: str,
        timeframe: str = "1h",
        starting_equity: float = 10000.0,
        execution_factory: Optional[ExecutionFactory] = None,
        fill_policy: FillPolicy = FillPolicy.NEXT_OPEN,
        fee_bps: float = 0.0,
        slippage_bps: float = 0.0,
        clock: Optional[Clock] = None,
        log_capacity: int = 100,
        sinks: Iterable[LogSink] = (),
        venue_timeout: float = 10.0,
    ):
        self.strategy = strategy
        self.bar_port = bar_port
        self.symbol = symbol
        self.timeframe = timeframe
        self.execution_factory = execution_factory
        self.fill_policy = FillPolicy(fill_policy)
        self.clock = clock or WallClock()
        # upper bound on any single call into the execution port
        self.venue_timeout = venue_timeout
        self.ledger = Ledger(symbol, starting_equity, fee_bps=fee_bps, slippage_bps=slippage_bps)
        self.logs = LogRing(log_capacity, sinks)
        self.mode = SessionMode.PAPER
        self._running = False
        self._engine: Optional[ExecutionEngine] = None
        self._source: Optional[LiveBarSource] = None
        self._execution: Optional[OrderExecutionPort] = None
        self._task: Optional[asyncio.Task] = None
        self._stop_requested: Optional[asyncio.Event] = None
        self._lock = threading.Lock()
        self._snapshot = self._build_snapshot()

    # ----- read side -----

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def engine(self) -> Optional[ExecutionEngine]:
        return self._engine

    def snapshot(self) -> SessionSnapshot:
        with self._lock:
            return self._snapshot

    def _build_snapshot(self) -> SessionSnapshot:
        return SessionSnapshot(
            is_running=self._running,
            mode=self.mode,
            symbol=self.symbol,
            timeframe=self.timeframe,
            equity=self.ledger.equity(),
            cash=self.ledger.cash_balance,
            positions=tuple(self.ledger.positions()),
            recent_logs=self.logs.entries(),
            bars_processed=self._engine.bars_processed if self._engine is not None else 0,
            last_update=self.clock.now(),
            pending_orders=len(self.ledger.pending_orders),
        )

    def _publish(self) -> None:
        snap = self._build_snapshot()
        with self._lock:
            self._snapshot = snap

    def _log(self, message: str, level: LogLevel = LogLevel.INFO) -> LogEntry:
        entry = self.logs.append(message, level, self.clock.now())
        if self.logs.sinks:
            loop = asyncio.get_running_loop()
            for sink in self.logs.sinks:
                loop.run_in_executor(None, sink, entry).add_done_callback(_report_sink_failure)
        return entry

    # ----- commands -----

    async def start(self, mode: SessionMode = SessionMode.PAPER, credentials: Optional[Credentials] = None) -> None:
        """Open a live bar source and start consuming. No-op while already running."""
        if self._running:
            logger.debug("start ignored: session already running")
            return
        mode = SessionMode(mode)
        if mode is SessionMode.LIVE:
            if credentials is None or not credentials.complete:
                self._log("Live trading requires an API key and secret.", LogLevel.ERROR)
                self._publish()
                raise CredentialError("LIVE mode requires a non-empty API key and secret")
            if self.execution_factory is None:
                raise ValueError("LIVE mode needs an execution_factory")
            execution = self.execution_factory(credentials)
        else:
            execution = PaperExecutionClient()

        self.mode = mode
        self._execution = execution
        self._log("Initializing strategy engine...")
        engine = ExecutionEngine(
            self.strategy,
            symbol=self.symbol,
            starting_equity=self.ledger.starting_cash,
            timeframe=self.timeframe,
            fill_policy=self.fill_policy,
            clock=self.clock,
            ledger=self.ledger,
        )
        try:
            engine.start()
        except StrategyError as e:
            self._log(f"Strategy failed to initialize: {e}", LogLevel.ERROR)
            self._publish()
            raise
        source = self.bar_port.open(self.symbol, self.timeframe, live=True)
        self._log(f"Connected to {self.symbol} {self.timeframe} feed", LogLevel.SUCCESS)

        self._engine = engine
        self._source = source
        self._stop_requested = asyncio.Event()
        self._running = True
        self._task = asyncio.get_running_loop().create_task(self._consume(engine, source, self._stop_requested))
        self._log(f"Starting {mode.value.upper()} trading session...")
        self._publish()

    async def stop(self) -> None:
        """Halt the consumer after the bar in flight; positions stay open."""
        if not self._running:
            return
        await self._halt()
        self._finish_run("stopped by user")
        self._log("Session stopped by user.", LogLevel.WARNING)
        self._publish()

    async def kill(self) -> None:
        """
        Emergency stop: halt, close every position locally, then cancel orders at
        the venue. The session is IDLE with no positions before any venue call is
        made; venue failures and timeouts become warnings. No-op while IDLE.
        """
        if not self._running:
            return
        execution = self._execution
        await self._halt(cancel=True)
        closed = self._engine.close_positions("kill switch")
        for trade in closed:
            self._log_trade(trade)
        self._finish_run("kill switch")
        self._publish()

        await self._flatten_at_venue(execution, closed)
        try:
            await self._venue_call(execution.cancel_all, self.symbol)
        except asyncio.TimeoutError:
            self._log(f"Could not confirm order cancellation: no answer within {self.venue_timeout:g}s", LogLevel.WARNING)
        except Exception as e:
            self._log(f"Could not confirm order cancellation: {e}", LogLevel.WARNING)
        self._log("KILL SWITCH ACTIVATED. All positions closed, orders cancelled.", LogLevel.ERROR)
        self._publish()

    async def wait_closed(self) -> None:
        """Wait until the consumer ends on its own (feed end, interruption or failure)."""
        task = self._task
        if task is not None:
            await asyncio.wait({task})

    # ----- internals -----

    async def _halt(self, cancel: bool = False) -> None:
        """Stop the consumer. cancel=True abandons venue forwarding still in flight."""
        self._stop_requested.set()
        task = self._task
        if task is None or task is asyncio.current_task():
            return
        if cancel:
            task.cancel()
        await asyncio.wait({task})
        if not task.cancelled() and task.exception() is not None:
            logger.error("Session consumer ended with an error", exc_info=task.exception())

    async def _venue_call(self, fn, *args):
        """Run a blocking execution-port call off the loop, bounded by venue_timeout."""
        return await asyncio.wait_for(asyncio.to_thread(fn, *args), self.venue_timeout)

    def _finish_run(self, reason: str) -> None:
        """Common exit path for stop, kill, feed loss and strategy failure."""
        if self._engine is not None:
            self._engine.cancel(reason)
        dropped = self.ledger.cancel_pending()
        if dropped:
            logger.info("Dropped %d pending order(s) (%s)", dropped, reason)
        if self._source is not None:
            self._source.close()
        self.bar_port.close()
        self._source = None
        self._task = None
        self._running = False

    async def _next_bar(self, source: LiveBarSource, stop: asyncio.Event):
        """Next bar, or None once stop is requested. Feed errors propagate."""
        next_task = asyncio.ensure_future(source.next())
        stop_task = asyncio.ensure_future(stop.wait())
        try:
            done, _ = await asyncio.wait({next_task, stop_task}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for t in (next_task, stop_task):
                if not t.done():
                    t.cancel()
        if stop_task in done:
            return None
        return next_task.result()

    async def _consume(self, engine: ExecutionEngine, source: LiveBarSource, stop: asyncio.Event) -> None:
        try:
            await self._consume_bars(engine, source, stop)
        except Exception as e:
            logger.exception("Session loop crashed")
            self._end_from_loop(f"Session error: {e}", LogLevel.ERROR, "session error")

    async def _consume_bars(self, engine: ExecutionEngine, source: LiveBarSource, stop: asyncio.Event) -> None:
        while not stop.is_set():
            try:
                bar = await self._next_bar(source, stop)
            except StreamInterrupted as e:
                self._end_from_loop(f"Stream interrupted: {e}. Session halted.", LogLevel.WARNING, "stream interrupted")
                return
            except EndOfStream:
                self._end_from_loop("Market data feed ended. Session halted.", LogLevel.WARNING, "end of feed")
                return
            if bar is None:
                return
            try:
                report = engine.process_bar(bar)
            except StrategyError as e:
                self._end_from_loop(f"Strategy error: {e}", LogLevel.ERROR, "strategy error")
                return
            self._log_report(report)
            await self._forward(report)
            self._publish()

    def _end_from_loop(self, message: str, level: LogLevel, reason: str) -> None:
        self._log(message, level)
        self._finish_run(reason)
        self._publish()

    def _log_trade(self, trade: Trade) -> None:
        level = LogLevel.SUCCESS if trade.realized_pnl >= 0 else LogLevel.WARNING
        self._log(
            f"Closed {trade.side.value} {trade.qty:g} {trade.symbol} @ {trade.price:.2f} "
            f"({trade.reason}) PnL {trade.realized_pnl:+.2f}",
            level,
        )

    def _log_report(self, report: BarReport) -> None:
        for trade in report.exits:
            self._log_trade(trade)
        for order, fill in report.fills:
            self._log(f"Filled {fill.side.value} {fill.qty:g} {fill.symbol} @ {fill.price:.2f} ({order.id})", LogLevel.SUCCESS)
        for trade in report.trades:
            self._log_trade(trade)
        for order in report.submitted:
            self._log(f"Signal: {order.side.value} {order.qty:g} {order.symbol} queued ({order.id})")
        for intent, reason in report.rejected:
            self._log(f"Rejected {intent.side.value} {intent.qty!r}: {reason}", LogLevel.WARNING)
        self._log(f"Bar {report.bar.time} close {report.bar.close:.2f} | equity {report.equity:.2f} ({report.equity_delta:+.2f})")

    async def _forward(self, report: BarReport) -> None:
        """Send this bar's fills to the execution port. Failures are logged, never raised."""
        for order, _ in report.fills:
            await self._place(self._execution, order)

    async def _flatten_at_venue(self, execution: OrderExecutionPort, closed: Iterable[Trade]) -> None:
        if self.mode is not SessionMode.LIVE:
            return
        for trade in closed:
            await self._place(execution, Order(
                id=f"kill-{trade.id}",
                symbol=trade.symbol,
                side=trade.side.opposite,
                qty=trade.qty,
                requested_at=trade.timestamp,
            ), level=LogLevel.WARNING)

    async def _place(self, execution: OrderExecutionPort, order: Order, level: LogLevel = LogLevel.ERROR) -> None:
        try:
            result = await self._venue_call(execution.place, order)
        except asyncio.TimeoutError:
            self._log(f"Order {order.id} not confirmed: no answer within {self.venue_timeout:g}s", LogLevel.WARNING)
            return
        except Exception as e:
            logger.exception("Execution port failed for %s", order.id)
            self._log(f"Order {order.id} not sent: {e}", level)
            return
        if not result.success:
            self._log(f"Order {order.id} rejected by venue: {result.message}", level)
