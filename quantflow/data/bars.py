"""
Bar ingestion: validation and the finite, re-iterable BarSeries used by backtests.
"""

from __future__ import annotations
import math
import numbers
from typing import Any, Iterable, Iterator, List, Mapping, Optional, Sequence, Union

import pandas as pd

from quantflow.core.errors import MalformedBar
from quantflow.core.types import Bar

OHLCV_COLUMNS = ["time", "open", "high", "low", "close", "volume"]


def validate_bar(bar: Bar) -> Bar:
    """Raise MalformedBar unless prices are finite, non-negative and consistent with high/low."""
    prices = (bar.open, bar.high, bar.low, bar.close)
    if not all(isinstance(v, numbers.Real) for v in prices + (bar.volume,)):
        raise MalformedBar(f"non-numeric value in bar at {bar.time}")
    if not all(math.isfinite(p) for p in prices):
        raise MalformedBar(f"non-finite price in bar at {bar.time}")
    if any(p < 0 for p in prices):
        raise MalformedBar(f"negative price in bar at {bar.time}")
    if not math.isfinite(bar.volume) or bar.volume < 0:
        raise MalformedBar(f"invalid volume {bar.volume} in bar at {bar.time}")
    if bar.high < max(bar.open, bar.close) or bar.low > min(bar.open, bar.close) or bar.high < bar.low:
        raise MalformedBar(
            f"inconsistent range in bar at {bar.time}: "
            f"o={bar.open} h={bar.high} l={bar.low} c={bar.close}"
        )
    return bar


def _to_epoch_seconds(value: Any) -> int:
    if isinstance(value, pd.Timestamp):
        return int(value.timestamp())
    if hasattr(value, "timestamp"):
        return int(value.timestamp())
    return int(value)


def bar_from_mapping(row: Mapping[str, Any]) -> Bar:
    try:
        return Bar(
            time=_to_epoch_seconds(row["time"]),
            open=float(row["open"]),
            high=float(row["high"]),
            low=float(row["low"]),
            close=float(row["close"]),
            volume=float(row.get("volume", 0.0)),
        )
    except (KeyError, TypeError, ValueError) as e:
        raise MalformedBar(f"cannot read bar from {dict(row)!r}: {e}") from e


BarLike = Union[Bar, Mapping[str, Any]]


class BarSeries(Sequence[Bar]):
    """
    Ordered OHLCV bars for one symbol/timeframe. Validated once at construction;
    time must be strictly increasing (gaps between bars are fine).
    Iterating twice replays from the first bar.
    """

    def __init__(self, bars: Iterable[BarLike], symbol: str = "", timeframe: str = "1h"):
        self.symbol = symbol
        self.timeframe = timeframe
        checked: List[Bar] = []
        for raw in bars:
            bar = raw if isinstance(raw, Bar) else bar_from_mapping(raw)
            validate_bar(bar)
            if checked and bar.time <= checked[-1].time:
                raise MalformedBar(
                    f"bar time {bar.time} not after previous {checked[-1].time} ({symbol})"
                )
            checked.append(bar)
        self._bars = tuple(checked)

    @classmethod
    def from_frame(cls, df: pd.DataFrame, symbol: str = "", timeframe: str = "1h") -> "BarSeries":
        """Build from an OHLCV DataFrame (columns: time, open, high, low, close[, volume])."""
        missing = [c for c in OHLCV_COLUMNS[:5] if c not in df.columns]
        if missing:
            raise MalformedBar(f"missing columns: {missing}")
        return cls(df.to_dict("records"), symbol=symbol, timeframe=timeframe)

    @classmethod
    def from_csv(cls, path, symbol: str = "", timeframe: str = "1h") -> "BarSeries":
        df = pd.read_csv(path)
        if df["time"].dtype == object:
            df["time"] = pd.to_datetime(df["time"], utc=True)
        return cls.from_frame(df, symbol=symbol, timeframe=timeframe)

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame([b.__dict__ for b in self._bars], columns=OHLCV_COLUMNS)

    def slice_time(self, start: Optional[int] = None, end: Optional[int] = None) -> "BarSeries":
        """Bars with start <= time <= end (bounds optional)."""
        picked = [
            b for b in self._bars
            if (start is None or b.time >= start) and (end is None or b.time <= end)
        ]
        return BarSeries(picked, symbol=self.symbol, timeframe=self.timeframe)

    def __getitem__(self, index):
        return self._bars[index]

    def __len__(self) -> int:
        return len(self._bars)

    def __iter__(self) -> Iterator[Bar]:
        return iter(self._bars)

    def __repr__(self) -> str:
        return f"BarSeries(symbol={self.symbol!r}, timeframe={self.timeframe!r}, bars={len(self._bars)})"
