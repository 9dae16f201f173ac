"""Unit tests for analytics.metrics."""

import math

import pytest
from quantflow.analytics.metrics import (
    sharpe_ratio,
    sortino_ratio,
    max_drawdown,
    win_rate,
    profit_factor,
    expectancy,
    equity_returns,
    compute_metrics,
)
from quantflow.core.types import EquityPoint, OrderSide, Trade


def _trade(pnl, i=0):
    return Trade(id=f"tr-{i}", symbol="BTCUSDT", side=OrderSide.BUY, price=100.0, qty=1.0,
                 timestamp=i, realized_pnl=pnl, reason="signal")


def _curve(values):
    return [EquityPoint(i, v) for i, v in enumerate(values)]


def _all_finite_or_sentinel(m):
    for name, value in m.to_dict().items():
        if name == "profit_factor":
            assert value == math.inf or math.isfinite(value)
        elif isinstance(value, float):
            assert math.isfinite(value), name


def test_sharpe_ratio_empty():
    assert sharpe_ratio([]) == 0.0


def test_sharpe_ratio_constant():
    assert sharpe_ratio([0.01] * 10) == 0.0  # zero std


def test_sortino_without_losses_falls_back_to_sharpe():
    rets = [0.01, 0.02, 0.015]
    assert sortino_ratio(rets) == sharpe_ratio(rets)


def test_win_rate_is_percent():
    assert win_rate([1, -1, 1, 1]) == 75.0
    assert win_rate([]) == 0.0


def test_profit_factor():
    assert profit_factor([10, -5, 10, -5]) == 2.0
    assert profit_factor([10, 10]) == math.inf
    assert profit_factor([-5, -5]) == 0.0
    assert profit_factor([]) == 0.0


def test_expectancy():
    assert expectancy([10, -5, 5]) == pytest.approx(10 / 3)
    assert expectancy([]) == 0.0


def test_max_drawdown():
    # equity 1 -> 1.2 -> 1.0 -> 1.1  =>  peak 1.2, dd (1.0-1.2)/1.2 = -16.67%
    assert max_drawdown([1.0, 1.2, 1.0, 1.1]) == pytest.approx(-16.666, rel=0.01)
    assert max_drawdown([1.0, 1.1, 1.2]) == 0.0
    assert max_drawdown([]) == 0.0


def test_equity_returns_start_from_starting_equity():
    assert equity_returns([110.0, 99.0], 100.0) == pytest.approx([0.1, -0.1])


def test_compute_metrics_no_trades():
    m = compute_metrics([], _curve([100.0, 100.0, 100.0]), 100.0, "1h")
    assert m.total_trades == 0
    assert m.win_rate == 0.0
    assert m.profit_factor == 0.0
    assert m.total_return == 0.0
    assert m.sharpe_ratio == 0.0
    _all_finite_or_sentinel(m)


def test_compute_metrics_single_winner():
    m = compute_metrics([_trade(5.0)], _curve([100.0, 105.0]), 100.0, "1d")
    assert m.win_rate == 100.0
    assert m.profit_factor == math.inf
    assert m.total_return == pytest.approx(5.0)
    _all_finite_or_sentinel(m)


def test_compute_metrics_many_trades():
    trades = [_trade(p, i) for i, p in enumerate([10.0, -5.0, 15.0, -3.0])]
    m = compute_metrics(trades, _curve([1010.0, 1005.0, 1020.0, 1017.0]), 1000.0, "1h")
    assert m.total_trades == 4
    assert m.winning_trades == 2
    assert m.losing_trades == 2
    assert m.expectancy == pytest.approx(4.25)
    assert m.win_rate == 50.0
    assert m.profit_factor == pytest.approx(25.0 / 8.0)
    assert m.total_return == pytest.approx(1.7)
    assert m.max_drawdown == pytest.approx((1005.0 - 1010.0) / 1010.0 * 100)
    assert m.periods_per_year == pytest.approx(8760.0)
    _all_finite_or_sentinel(m)


def test_compute_metrics_zero_starting_equity_has_no_nan():
    m = compute_metrics([], [], 0.0, "1h")
    assert m.total_return == 0.0
    _all_finite_or_sentinel(m)
