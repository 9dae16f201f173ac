"""Telegram sink and Binance adapter helpers (no network)."""

import pandas as pd
import pytest
import requests

from quantflow.core.types import LogEntry, LogLevel
from quantflow.execution.binance_futures import klines_to_frame, lot_filters, round_quantity
from quantflow.utils import telegram


class FakeResponse:
    def __init__(self, status_code=200, text="ok"):
        self.status_code = status_code
        self.text = text


def test_send_telegram_not_configured(monkeypatch):
    def boom(*args, **kwargs):
        raise AssertionError("should not post")

    monkeypatch.setattr(telegram.requests, "post", boom)
    assert telegram.send_telegram("hi") is False


def test_send_telegram_handles_errors(monkeypatch):
    def fail(*args, **kwargs):
        raise requests.ConnectionError("down")

    monkeypatch.setattr(telegram.requests, "post", fail)
    assert telegram.send_telegram("hi", "token", "chat") is False
    monkeypatch.setattr(telegram.requests, "post", lambda *a, **k: FakeResponse(500, "err"))
    assert telegram.send_telegram("hi", "token", "chat") is False


def test_notifier_filters_by_level(monkeypatch):
    sent = []
    monkeypatch.setattr(telegram.requests, "post", lambda url, json, timeout: sent.append(json) or FakeResponse())
    notifier = telegram.TelegramNotifier("token", "chat")
    notifier(LogEntry("log-1", 0.0, "bar processed", LogLevel.INFO))
    notifier(LogEntry("log-2", 0.0, "feed dropped", LogLevel.WARNING))
    assert sent == [{"chat_id": "chat", "text": "[WARNING] feed dropped"}]
    assert not telegram.TelegramNotifier().enabled


@pytest.mark.parametrize("qty,expected", [(0.12345, 0.123), (0.0004, 0.0), (-1, 0.0)])
def test_round_quantity(qty, expected):
    assert round_quantity(qty, 0.001, 0.001) == pytest.approx(expected)


def test_lot_filters():
    info = {"filters": [{"filterType": "PRICE_FILTER"}, {"filterType": "LOT_SIZE", "minQty": "0.01", "stepSize": "0.01"}]}
    assert lot_filters(info) == (0.01, 0.01)
    assert lot_filters(None) == (0.001, 0.0001)


def test_klines_to_frame():
    raw = [
        [1_700_000_000_000, "100.0", "101.0", "99.0", "100.5", "12.0", 1_700_003_599_999, "0", 10, "0", "0", "0"],
        [1_700_003_600_000, "100.5", "102.0", "100.0", "101.5", "8.0", 1_700_007_199_999, "0", 7, "0", "0", "0"],
    ]
    df = klines_to_frame(raw)
    assert list(df["time"]) == [1_700_000_000, 1_700_003_600]
    assert df["close"].tolist() == [100.5, 101.5]
    assert pd.api.types.is_float_dtype(df["volume"])
