"""Strategies: contract, registry and bundled implementations."""

from quantflow.strategies.base import Strategy, StrategyContext, HistoryView, Column, normalize_intents
from quantflow.strategies.registry import register_strategy, build_strategy, available_strategies
from quantflow.strategies.sma_cross import SmaCrossStrategy
from quantflow.strategies.random_signal import RandomSignalStrategy

__all__ = [
    "Strategy",
    "StrategyContext",
    "HistoryView",
    "Column",
    "normalize_intents",
    "register_strategy",
    "build_strategy",
    "available_strategies",
    "SmaCrossStrategy",
    "RandomSignalStrategy",
]
