"""Execution engine shared by backtest and live sessions."""

from quantflow.engine.engine import ExecutionEngine, RunStatus, BarReport

__all__ = ["ExecutionEngine", "RunStatus", "BarReport"]
