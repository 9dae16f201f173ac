"""
Synthetic OHLCV generator: seeded random walk with alternating trend sections.
The only place randomness is allowed; the engine never draws random numbers.
"""

from __future__ import annotations
import asyncio
import logging
from typing import List, Optional

import numpy as np

from quantflow.core.types import Bar
from quantflow.data.bars import BarSeries
from quantflow.data.sources import BarSourcePort, LiveBarSource
from quantflow.utils.timeframes import timeframe_seconds

logger = logging.getLogger("quantflow.data.synthetic")

DEFAULT_START_TIME = 1_700_000_000


def generate_bars(
    count: int,
    start_price: float = 50000.0,
    timeframe: str = "1h",
    start_time: int = DEFAULT_START_TIME,
    seed: Optional[int] = None,
    volatility: float = 0.005,
) -> List[Bar]:
    """Random walk: 0.5% volatility per bar, up-trend for 50 bars then down-trend for 50."""
    rng = np.random.default_rng(seed)
    step = timeframe_seconds(timeframe)
    price = float(start_price)
    bars: List[Bar] = []
    for i in range(count):
        vol = price * volatility
        change = (rng.random() - 0.5) * vol * 2
        open_ = price
        close = max(0.01, price + change)
        high = max(open_, close) + rng.random() * vol
        low = max(0.0, min(open_, close) - rng.random() * vol)
        volume = float(rng.random() * 100 + 50)
        bars.append(Bar(time=start_time + i * step, open=open_, high=high, low=low, close=close, volume=volume))
        trend = vol * 0.1 if i % 100 < 50 else -vol * 0.1
        price = max(0.01, close + trend)
    return bars


class SyntheticBarFeed(BarSourcePort):
    """
    Bar Source backed by generate_bars. Historical opens are a pure function of
    (seed, count, start); live opens publish one bar every interval_seconds.
    """

    def __init__(
        self,
        count: int = 500,
        start_price: float = 50000.0,
        seed: Optional[int] = 42,
        interval_seconds: float = 1.0,
    ):
        self.count = count
        self.start_price = start_price
        self.seed = seed
        self.interval_seconds = interval_seconds
        self._task: Optional[asyncio.Task] = None
        self._live: Optional[LiveBarSource] = None

    def open(self, symbol, timeframe, start=None, end=None, live=False):
        start_time = start if start is not None else DEFAULT_START_TIME
        count = self.count
        if end is not None:
            count = min(count, (end - start_time) // timeframe_seconds(timeframe) + 1)
        bars = generate_bars(max(count, 0), self.start_price, timeframe, start_time, self.seed)
        if not live:
            return BarSeries(bars, symbol=symbol, timeframe=timeframe)
        self._live = LiveBarSource(symbol, timeframe)
        self._task = asyncio.get_running_loop().create_task(self._pump(self._live, bars))
        return self._live

    async def _pump(self, source: LiveBarSource, bars: List[Bar]) -> None:
        for bar in bars:
            await asyncio.sleep(self.interval_seconds)
            if source.closed:
                return
            source.publish(bar)
        source.end()

    def close(self) -> None:
        if self._task is not None:
            self._task.cancel()
            self._task = None
        if self._live is not None:
            self._live.close()
            self._live = None
