"""Bar validation and BarSeries behaviour."""

import math

import numpy as np
import pandas as pd
import pytest

from conftest import make_bars
from quantflow.core.errors import MalformedBar, ValidationError
from quantflow.core.types import Bar
from quantflow.data.bars import BarSeries, validate_bar
from quantflow.data.synthetic import SyntheticBarFeed, generate_bars


@pytest.mark.parametrize("bar", [
    Bar(1, math.nan, 10, 9, 9.5),
    Bar(1, 10, math.inf, 9, 9.5),
    Bar(1, 10, 9.9, 9, 9.5),     # high below open
    Bar(1, 10, 11, 10.2, 10.5),  # low above open
    Bar(1, -1, 1, -2, 0),
    Bar(1, 10, 11, 9, 10, volume=-5),
])
def test_malformed_bars_rejected(bar):
    with pytest.raises(MalformedBar):
        validate_bar(bar)


def test_malformed_bar_is_validation_error():
    assert issubclass(MalformedBar, ValidationError)


def test_series_requires_strictly_increasing_time():
    bars = make_bars([(1, 2, 0.5, 1.5), (1.5, 2, 1, 1.8)], step=0)
    with pytest.raises(MalformedBar):
        BarSeries(bars)


def test_series_tolerates_gaps_and_replays():
    bars = make_bars([(1, 2, 0.5, 1.5), (1.5, 2, 1, 1.8), (1.8, 2.2, 1.7, 2.0)], step=60)
    gappy = [bars[0], Bar(bars[2].time + 600, 2, 3, 1.5, 2.5)]
    series = BarSeries(gappy, symbol="X", timeframe="1m")
    assert [b.time for b in series] == [b.time for b in series]
    assert len(series) == 2
    assert series[-1].close == 2.5


def test_from_frame_and_back():
    df = pd.DataFrame({
        "time": pd.to_datetime([0, 3600], unit="s"),
        "open": [1.0, 1.5], "high": [2.0, 2.0], "low": [0.5, 1.0], "close": [1.5, 1.8], "volume": [3, 4],
    })
    series = BarSeries.from_frame(df, symbol="X", timeframe="1h")
    assert [b.time for b in series] == [0, 3600]
    out = series.to_frame()
    assert list(out.columns) == ["time", "open", "high", "low", "close", "volume"]
    assert out["close"].tolist() == [1.5, 1.8]


def test_from_frame_missing_column():
    with pytest.raises(MalformedBar):
        BarSeries.from_frame(pd.DataFrame({"time": [1], "open": [1.0]}))


def test_slice_time():
    series = BarSeries(make_bars([(1, 2, 0.5, 1.5)] * 4, start=0, step=10))
    assert [b.time for b in series.slice_time(10, 20)] == [10, 20]


def test_synthetic_bars_are_seeded_and_valid():
    a = generate_bars(300, seed=3)
    b = generate_bars(300, seed=3)
    assert a == b
    assert generate_bars(300, seed=4) != a
    BarSeries(a)  # validates


def test_synthetic_feed_historical_open():
    feed = SyntheticBarFeed(count=50, seed=1)
    series = feed.open("BTCUSDT", "5m")
    assert len(series) == 50
    assert series[1].time - series[0].time == 300
    assert series.symbol == "BTCUSDT"


def test_non_numeric_volume_is_malformed():
    with pytest.raises(MalformedBar):
        validate_bar(Bar(1, 10, 11, 9, 10, volume="lots"))


def test_numpy_integer_prices_accepted():
    bar = Bar(1, np.int64(10), np.int64(11), np.int64(9), np.int64(10), volume=np.float64(2.0))
    assert validate_bar(bar) is bar
