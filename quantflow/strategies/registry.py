"""Name -> Strategy class lookup, used by config and the CLI."""

from __future__ import annotations
from typing import Any, Dict, Type

from quantflow.strategies.base import Strategy

_STRATEGY_REGISTRY: Dict[str, Type[Strategy]] = {}


def register_strategy(name: str):
    def _wrap(cls: Type[Strategy]):
        _STRATEGY_REGISTRY[name] = cls
        cls.name = name
        return cls
    return _wrap


def available_strategies() -> list:
    return sorted(_STRATEGY_REGISTRY)


def build_strategy(name: str, params: Dict[str, Any] | None = None) -> Strategy:
    try:
        cls = _STRATEGY_REGISTRY[name]
    except KeyError:
        raise ValueError(f"Unknown strategy {name!r}; available: {available_strategies()}") from None
    return cls(**(params or {}))
