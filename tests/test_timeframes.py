"""Unit tests for utils.timeframes."""

import pytest
from quantflow.utils.timeframes import timeframe_minutes, timeframe_seconds, periods_per_year


def test_timeframe_minutes():
    assert timeframe_minutes("5m") == 5
    assert timeframe_minutes("1h") == 60
    assert timeframe_minutes("1d") == 1440


def test_timeframe_seconds_week():
    assert timeframe_seconds("1w") == 7 * 86400


def test_periods_per_year():
    assert periods_per_year("1d") == pytest.approx(365.0)
    assert periods_per_year("1h") == pytest.approx(365.0 * 24)


@pytest.mark.parametrize("tf", ["1x", "h", "0m", ""])
def test_timeframe_invalid(tf):
    with pytest.raises(ValueError):
        timeframe_seconds(tf)
