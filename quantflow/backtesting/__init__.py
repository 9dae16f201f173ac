"""Backtesting: finite bar replay through the execution engine."""

from quantflow.backtesting.engine import (
    BacktestJob,
    BacktestResult,
    BacktestStatus,
    run_backtest,
    run_backtests,
)

__all__ = ["BacktestJob", "BacktestResult", "BacktestStatus", "run_backtest", "run_backtests"]
