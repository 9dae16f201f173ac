"""
Performance metrics over a finished run: return, Sharpe, Sortino, max drawdown,
win rate, profit factor, expectancy.

Conventions:
- win_rate and returns are percentages.
- Sharpe/Sortino use per-bar simple returns of the equity curve, annualized by
  sqrt(periods_per_year), with periods_per_year = 365-day year / timeframe.
- profit_factor is +inf with wins and no losses, 0.0 with neither.
- Nothing here returns NaN.
"""

from __future__ import annotations
import math
from dataclasses import asdict, dataclass
from typing import List, Sequence

import numpy as np

from quantflow.core.types import EquityPoint, Trade
from quantflow.utils.timeframes import periods_per_year as _periods_per_year


@dataclass(frozen=True)
class PerformanceMetrics:
    """Aggregate performance metrics."""
    total_return: float
    sharpe_ratio: float
    sortino_ratio: float
    max_drawdown: float
    win_rate: float
    profit_factor: float
    expectancy: float
    total_trades: int
    winning_trades: int
    losing_trades: int
    avg_win: float
    avg_loss: float
    final_equity: float
    periods_per_year: float

    def to_dict(self) -> dict:
        return asdict(self)


def _finite(x: float) -> float:
    return float(x) if math.isfinite(x) else 0.0


def sharpe_ratio(returns: Sequence[float], risk_free_rate: float = 0.0, periods_per_year: float = 252.0) -> float:
    """Annualized Sharpe. returns = list of period returns."""
    if len(returns) < 2:
        return 0.0
    arr = np.asarray(returns, dtype=float)
    excess = arr - risk_free_rate / periods_per_year
    if excess.std() <= 1e-12:
        return 0.0
    return _finite(np.sqrt(periods_per_year) * excess.mean() / excess.std())


def sortino_ratio(returns: Sequence[float], risk_free_rate: float = 0.0, periods_per_year: float = 252.0) -> float:
    """Annualized Sortino (downside deviation)."""
    if len(returns) < 2:
        return 0.0
    arr = np.asarray(returns, dtype=float)
    excess = arr - risk_free_rate / periods_per_year
    downside = arr[arr < 0]
    if len(downside) == 0 or downside.std() <= 1e-12:
        return sharpe_ratio(returns, risk_free_rate, periods_per_year)
    return _finite(np.sqrt(periods_per_year) * excess.mean() / downside.std())


def equity_returns(equity: Sequence[float], starting_equity: float) -> List[float]:
    """Per-sample simple returns, the first measured against the starting equity."""
    values = [starting_equity] + list(equity)
    out = []
    for prev, cur in zip(values[:-1], values[1:]):
        out.append((cur - prev) / prev if prev > 0 else 0.0)
    return out


def max_drawdown(equity: Sequence[float]) -> float:
    """Largest peak-to-trough decline, as a negative percent (0.0 when none)."""
    if len(equity) == 0:
        return 0.0
    arr = np.asarray(equity, dtype=float)
    peak = np.maximum.accumulate(arr)
    dd = (arr - peak) / np.where(peak > 0, peak, 1)
    return _finite(float(np.min(dd)) * 100.0)


def win_rate(pnls: Sequence[float]) -> float:
    """Percent of trades with positive PnL; 0 with no trades."""
    if not pnls:
        return 0.0
    return sum(1 for p in pnls if p > 0) / len(pnls) * 100.0


def profit_factor(pnls: Sequence[float]) -> float:
    """Gross profit / gross loss. inf if only wins, 0 if no wins."""
    wins = sum(p for p in pnls if p > 0)
    losses = sum(-p for p in pnls if p < 0)
    if losses <= 0:
        return math.inf if wins > 0 else 0.0
    return wins / losses


def expectancy(pnls: Sequence[float]) -> float:
    """Average PnL per trade."""
    if not pnls:
        return 0.0
    return sum(pnls) / len(pnls)


def compute_metrics(
    trades: Sequence[Trade],
    equity_curve: Sequence[EquityPoint],
    starting_equity: float,
    timeframe: str = "1h",
    risk_free_rate: float = 0.0,
) -> PerformanceMetrics:
    """Summary statistics of a run; a pure function of its inputs."""
    pnls = [t.realized_pnl for t in trades]
    wins = [p for p in pnls if p > 0]
    losses = [p for p in pnls if p < 0]
    equity = [p.equity for p in equity_curve]
    final_equity = equity[-1] if equity else starting_equity
    ppy = _periods_per_year(timeframe)
    if starting_equity > 0:
        total_return = (final_equity - starting_equity) / starting_equity * 100.0
    else:
        total_return = 0.0
    rets = equity_returns(equity, starting_equity)
    return PerformanceMetrics(
        total_return=_finite(total_return),
        sharpe_ratio=sharpe_ratio(rets, risk_free_rate, ppy),
        sortino_ratio=sortino_ratio(rets, risk_free_rate, ppy),
        max_drawdown=max_drawdown([starting_equity] + equity),
        win_rate=win_rate(pnls),
        profit_factor=profit_factor(pnls),
        expectancy=expectancy(pnls),
        total_trades=len(pnls),
        winning_trades=len(wins),
        losing_trades=len(losses),
        avg_win=sum(wins) / len(wins) if wins else 0.0,
        avg_loss=sum(losses) / len(losses) if losses else 0.0,
        final_equity=final_equity,
        periods_per_year=ppy,
    )
