"""Shared fixtures: hand-built bars, scripted strategies, a controllable live feed."""

import asyncio

import pytest

from quantflow.core.types import Bar, OrderIntent
from quantflow.data.bars import BarSeries
from quantflow.data.sources import BarSourcePort, LiveBarSource
from quantflow.strategies.base import Strategy

HOUR = 3600
T0 = 1_700_000_000


def make_bars(ohlc, start=T0, step=HOUR):
    return [
        Bar(time=start + i * step, open=o, high=h, low=l, close=c, volume=1.0)
        for i, (o, h, l, c) in enumerate(ohlc)
    ]


SCENARIO_OHLC = [
    (100, 105, 98, 103),
    (103, 106, 102, 104),
    (104, 104, 99, 100),
    (100, 102, 98, 99),
    (99, 101, 97, 100),
]


class ScriptedStrategy(Strategy):
    """Returns script[bar_index] on each bar; records every context it sees."""

    name = "scripted"

    def __init__(self, script=None, fail_at=None):
        self.script = dict(script or {})
        self.fail_at = fail_at
        self.contexts = []

    def on_bar(self, context):
        self.contexts.append(context)
        if self.fail_at is not None and context.bar_index == self.fail_at:
            raise ZeroDivisionError("division by zero")
        return self.script.get(context.bar_index)


class ManualBarPort(BarSourcePort):
    """Live port whose source the test publishes into directly."""

    def __init__(self):
        self.opened = 0
        self.closed = 0
        self.source = None

    def open(self, symbol, timeframe, start=None, end=None, live=False):
        self.opened += 1
        self.source = LiveBarSource(symbol, timeframe)
        return self.source

    def close(self):
        self.closed += 1


async def wait_until(predicate, timeout=2.0):
    async def _poll():
        while not predicate():
            await asyncio.sleep(0.001)
    await asyncio.wait_for(_poll(), timeout)


@pytest.fixture
def scenario_series():
    return BarSeries(make_bars(SCENARIO_OHLC), symbol="BTCUSDT", timeframe="1h")


@pytest.fixture
def buy_then_close():
    # Buy 0.1 on bar 1 (index 0), close on bar 4 (index 3)
    return ScriptedStrategy({0: OrderIntent.buy(0.1), 3: OrderIntent.sell(0.1)})
