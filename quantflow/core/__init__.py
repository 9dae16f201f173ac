"""Core: config, types, errors, clocks, logging."""

from quantflow.core.config import load_config, Config
from quantflow.core.types import (
    Bar,
    EquityPoint,
    Fill,
    FillPolicy,
    LogEntry,
    LogLevel,
    Order,
    OrderIntent,
    OrderSide,
    Position,
    Trade,
)
from quantflow.core.errors import (
    QuantflowError,
    ValidationError,
    MalformedBar,
    InvalidQuantity,
    StrategyError,
    CredentialError,
    MissingCredentials,
    StreamInterrupted,
    EndOfStream,
)
from quantflow.core.clock import Clock, SimulatedClock, WallClock
from quantflow.core.logger import setup_logging

__all__ = [
    "load_config",
    "Config",
    "Bar",
    "EquityPoint",
    "Fill",
    "FillPolicy",
    "LogEntry",
    "LogLevel",
    "Order",
    "OrderIntent",
    "OrderSide",
    "Position",
    "Trade",
    "QuantflowError",
    "ValidationError",
    "MalformedBar",
    "InvalidQuantity",
    "StrategyError",
    "CredentialError",
    "MissingCredentials",
    "StreamInterrupted",
    "EndOfStream",
    "Clock",
    "SimulatedClock",
    "WallClock",
    "setup_logging",
]
