"""
Strategy contract: init/on_bar over a read-only market and account view.
"""

from __future__ import annotations
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence, Union

import numpy as np
import pandas as pd

from quantflow.core.types import OrderIntent, Position

StrategyOutput = Union[None, OrderIntent, Iterable[OrderIntent]]


class Column(Sequence[float]):
    """
    Immutable window over one OHLCV column, indexable from the end
    (column[-1] is the current bar). Holds no copy; the engine only ever appends.
    """

    __slots__ = ("_data", "_n")

    def __init__(self, data: List[float], n: int):
        self._data = data
        self._n = n

    def __len__(self) -> int:
        return self._n

    def __getitem__(self, index):
        if isinstance(index, slice):
            return tuple(self._data[: self._n][index])
        if index < 0:
            index += self._n
        if not 0 <= index < self._n:
            raise IndexError("history index out of range")
        return self._data[index]

    @property
    def values(self) -> np.ndarray:
        """Read-only numpy copy of the visible window."""
        arr = np.array(self._data[: self._n], dtype=float)
        arr.flags.writeable = False
        return arr

    def __repr__(self) -> str:
        tail = ", ".join(f"{v:g}" for v in self[-3:])
        return f"Column(len={self._n}, tail=[{tail}])"


class HistoryView:
    """Bars up to and including the current one, column-wise."""

    def __init__(self, columns: dict, n: int):
        self._columns = columns
        self._n = n

    def __len__(self) -> int:
        return self._n

    def _col(self, name: str) -> Column:
        return Column(self._columns[name], self._n)

    @property
    def time(self) -> Column:
        return self._col("time")

    @property
    def open(self) -> Column:
        return self._col("open")

    @property
    def high(self) -> Column:
        return self._col("high")

    @property
    def low(self) -> Column:
        return self._col("low")

    @property
    def close(self) -> Column:
        return self._col("close")

    @property
    def volume(self) -> Column:
        return self._col("volume")

    def to_frame(self) -> pd.DataFrame:
        """OHLCV DataFrame copy, for indicator work with pandas."""
        return pd.DataFrame({name: list(col[: self._n]) for name, col in self._columns.items()})


@dataclass(frozen=True)
class StrategyContext:
    """What a strategy sees on each call. position is a copy; mutating it changes nothing."""
    history: HistoryView
    position: Optional[Position]
    equity: float
    cash: float
    symbol: str
    timeframe: str

    @property
    def bar_index(self) -> int:
        return len(self.history) - 1


class Strategy(ABC):
    """Implement on_bar; override init for one-off setup before the first bar."""

    name: str = "strategy"

    def init(self, context: StrategyContext) -> None:
        pass

    @abstractmethod
    def on_bar(self, context: StrategyContext) -> StrategyOutput:
        """Return None, one OrderIntent, or several. Orders fill per the run's fill policy."""


def normalize_intents(output: StrategyOutput) -> List[OrderIntent]:
    if output is None:
        return []
    if isinstance(output, OrderIntent):
        return [output]
    intents = list(output)
    for intent in intents:
        if not isinstance(intent, OrderIntent):
            raise TypeError(f"on_bar returned {type(intent).__name__}, expected OrderIntent")
    return intents
