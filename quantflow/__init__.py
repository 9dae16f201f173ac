"""QuantFlow: strategy execution engine for backtests and live/paper sessions."""

from quantflow.backtesting import run_backtest, run_backtests, BacktestResult
from quantflow.data import BarSeries
from quantflow.live import LiveSessionController, SessionMode, Credentials
from quantflow.strategies import Strategy, StrategyContext

__version__ = "0.1.0"

__all__ = [
    "run_backtest",
    "run_backtests",
    "BacktestResult",
    "BarSeries",
    "LiveSessionController",
    "SessionMode",
    "Credentials",
    "Strategy",
    "StrategyContext",
]
