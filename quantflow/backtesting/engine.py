"""
Backtest runner: replays a finite BarSeries through the execution engine.
No lookahead: orders fill on the bar after the signal unless the run uses CURRENT_CLOSE.
"""

from __future__ import annotations
import logging
import os
import uuid
from concurrent.futures import ProcessPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, List, Optional, TYPE_CHECKING

from quantflow.analytics.metrics import PerformanceMetrics, compute_metrics
from quantflow.core.errors import StrategyError
from quantflow.core.types import EquityPoint, FillPolicy, Trade
from quantflow.data.bars import BarSeries
from quantflow.engine.engine import ExecutionEngine
from quantflow.strategies.base import Strategy

if TYPE_CHECKING:
    from quantflow.persistence.store import PersistencePort

logger = logging.getLogger("quantflow.backtest")


class BacktestStatus(str, Enum):
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


@dataclass
class BacktestResult:
    """Backtest output. status moves RUNNING -> COMPLETED | FAILED once."""
    id: str
    strategy_id: str
    symbol: str
    timeframe: str
    starting_equity: float
    fill_policy: FillPolicy = FillPolicy.NEXT_OPEN
    trades: List[Trade] = field(default_factory=list)
    equity_curve: List[EquityPoint] = field(default_factory=list)
    metrics: Optional[PerformanceMetrics] = None
    status: BacktestStatus = BacktestStatus.RUNNING
    error: Optional[str] = None
    bars_processed: int = 0
    rejected_intents: int = 0

    def _finalize(self, status: BacktestStatus, error: Optional[str] = None) -> None:
        if self.status is not BacktestStatus.RUNNING:
            raise RuntimeError(f"result {self.id} already {self.status.value}")
        self.status = status
        self.error = error

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "strategy_id": self.strategy_id,
            "symbol": self.symbol,
            "timeframe": self.timeframe,
            "starting_equity": self.starting_equity,
            "fill_policy": self.fill_policy.value,
            "status": self.status.value,
            "error": self.error,
            "bars_processed": self.bars_processed,
            "rejected_intents": self.rejected_intents,
            "trades": [
                {**t.__dict__, "side": t.side.value} for t in self.trades
            ],
            "equity_curve": [{"time": p.time, "equity": p.equity} for p in self.equity_curve],
            "metrics": self.metrics.to_dict() if self.metrics else None,
        }


def run_backtest(
    strategy: Strategy,
    bar_series: BarSeries,
    starting_equity: float = 10000.0,
    strategy_id: Optional[str] = None,
    fill_policy: FillPolicy = FillPolicy.NEXT_OPEN,
    fee_bps: float = 0.0,
    slippage_bps: float = 0.0,
    persistence: Optional["PersistencePort"] = None,
) -> BacktestResult:
    """
    Run strategy over every bar of bar_series. Never raises for strategy faults:
    those produce a FAILED result keeping the trades and equity produced so far.
    """
    engine = ExecutionEngine(
        strategy,
        symbol=bar_series.symbol,
        starting_equity=starting_equity,
        timeframe=bar_series.timeframe,
        fill_policy=fill_policy,
        fee_bps=fee_bps,
        slippage_bps=slippage_bps,
    )
    result = BacktestResult(
        id=f"bt_{uuid.uuid4().hex[:12]}",
        strategy_id=strategy_id or strategy.name,
        symbol=bar_series.symbol,
        timeframe=bar_series.timeframe,
        starting_equity=starting_equity,
        fill_policy=engine.fill_policy,
    )
    logger.info(
        "Backtest %s: %s on %s %s, %d bars, equity %.2f",
        result.id, result.strategy_id, result.symbol, result.timeframe, len(bar_series), starting_equity,
    )
    try:
        engine.start()
        for bar in bar_series:
            engine.process_bar(bar)
        engine.finish("end of data")
    except StrategyError as e:
        result._finalize(BacktestStatus.FAILED, str(e))
    except Exception as e:
        # Anything else is still this run's failure, not the host's
        logger.exception("Backtest %s crashed", result.id)
        engine.fail(e)
        result._finalize(BacktestStatus.FAILED, f"{type(e).__name__}: {e}")
    else:
        result._finalize(BacktestStatus.COMPLETED)

    result.trades = list(engine.trades)
    result.equity_curve = list(engine.equity_curve)
    result.bars_processed = engine.bars_processed
    result.rejected_intents = engine.rejected_intents
    result.metrics = compute_metrics(result.trades, result.equity_curve, starting_equity, bar_series.timeframe)
    logger.info(
        "Backtest %s %s: %d trades, return %.2f%%",
        result.id, result.status.value, len(result.trades), result.metrics.total_return,
    )
    if persistence is not None:
        persistence.save_result(result)
    return result


@dataclass
class BacktestJob:
    """One independent run for run_backtests. Must be picklable."""
    strategy: Strategy
    bar_series: BarSeries
    starting_equity: float = 10000.0
    strategy_id: Optional[str] = None
    fill_policy: FillPolicy = FillPolicy.NEXT_OPEN
    fee_bps: float = 0.0
    slippage_bps: float = 0.0


def _run_job(job: BacktestJob) -> BacktestResult:
    return run_backtest(
        job.strategy,
        job.bar_series,
        job.starting_equity,
        strategy_id=job.strategy_id,
        fill_policy=job.fill_policy,
        fee_bps=job.fee_bps,
        slippage_bps=job.slippage_bps,
    )


def run_backtests(jobs: Iterable[BacktestJob], max_workers: Optional[int] = None) -> List[BacktestResult]:
    """Run independent backtests, in worker processes when more than one worker is available.
    Results come back in job order."""
    jobs = list(jobs)
    if not jobs:
        return []
    cpu = os.cpu_count() or 1
    workers = min(cpu, len(jobs)) if max_workers is None else max(1, min(max_workers, len(jobs)))
    if workers == 1:
        return [_run_job(job) for job in jobs]
    logger.info("Running %d backtests on %d workers", len(jobs), workers)
    with ProcessPoolExecutor(max_workers=workers) as pool:
        return list(pool.map(_run_job, jobs))
