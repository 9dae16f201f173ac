"""
Bar sources: the port the engine reads bars through, and the live queue source.
"""

from __future__ import annotations
import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Optional, Union

from quantflow.core.errors import EndOfStream, MalformedBar, StreamInterrupted
from quantflow.core.types import Bar
from quantflow.data.bars import BarSeries, validate_bar

logger = logging.getLogger("quantflow.data")


class _Interrupt:
    def __init__(self, reason: str):
        self.reason = reason


_END = object()


class LiveBarSource:
    """
    Infinite, single-use stream of closed bars. Producers publish(); the session's
    consumer task awaits next(), which suspends on the queue and is cancellable.
    """

    def __init__(self, symbol: str = "", timeframe: str = "1h", maxsize: int = 0):
        self.symbol = symbol
        self.timeframe = timeframe
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self._last_time: Optional[int] = None
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def publish(self, bar: Bar) -> None:
        """Validate and enqueue a closed bar. Out-of-order bars raise MalformedBar."""
        if self._closed:
            logger.debug("Dropping bar %s: source closed", bar.time)
            return
        validate_bar(bar)
        if self._last_time is not None and bar.time <= self._last_time:
            raise MalformedBar(f"bar time {bar.time} not after previous {self._last_time}")
        self._last_time = bar.time
        self._queue.put_nowait(bar)

    def interrupt(self, reason: str = "feed dropped") -> None:
        """Make the consumer's next read raise StreamInterrupted."""
        self._queue.put_nowait(_Interrupt(reason))

    def end(self) -> None:
        self._queue.put_nowait(_END)

    async def next(self) -> Bar:
        if self._closed:
            raise EndOfStream("source closed")
        item = await self._queue.get()
        if item is _END:
            raise EndOfStream(f"{self.symbol} feed ended")
        if isinstance(item, _Interrupt):
            raise StreamInterrupted(item.reason)
        return item

    def close(self) -> None:
        self._closed = True

    def __aiter__(self):
        return self

    async def __anext__(self) -> Bar:
        try:
            return await self.next()
        except EndOfStream:
            raise StopAsyncIteration


BarSource = Union[BarSeries, LiveBarSource]


class BarSourcePort(ABC):
    """Market data collaborator: historical ranges or a live subscription."""

    @abstractmethod
    def open(
        self,
        symbol: str,
        timeframe: str,
        start: Optional[int] = None,
        end: Optional[int] = None,
        live: bool = False,
    ) -> BarSource:
        """BarSeries for a historical range, LiveBarSource when live=True."""

    def close(self) -> None:
        """Release any live subscription. Default: nothing to release."""


class StaticBarSource(BarSourcePort):
    """Serves one in-memory BarSeries; live mode replays it through a LiveBarSource then ends."""

    def __init__(self, series: BarSeries):
        self.series = series
        self._live: Optional[LiveBarSource] = None

    def open(self, symbol, timeframe, start=None, end=None, live=False):
        series = self.series.slice_time(start, end) if (start or end) else self.series
        if not live:
            return series
        self._live = LiveBarSource(symbol, timeframe)
        for bar in series:
            self._live.publish(bar)
        self._live.end()
        return self._live

    def close(self) -> None:
        if self._live is not None:
            self._live.close()
            self._live = None
