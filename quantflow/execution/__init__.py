"""Execution: order execution port, paper client and Binance Futures adapter."""

from quantflow.execution.base import ExecutionReport, OrderExecutionPort
from quantflow.execution.paper import PaperExecutionClient
from quantflow.execution.binance_futures import BinanceFuturesClient

__all__ = ["ExecutionReport", "OrderExecutionPort", "PaperExecutionClient", "BinanceFuturesClient"]
