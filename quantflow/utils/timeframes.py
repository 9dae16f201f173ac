"""Timeframe string conversions and annualization."""

SECONDS_PER_YEAR = 365 * 24 * 60 * 60

_UNIT_SECONDS = {"m": 60, "h": 60 * 60, "d": 24 * 60 * 60, "w": 7 * 24 * 60 * 60}


def timeframe_seconds(tf: str) -> int:
    """Convert Binance-style timeframe (e.g. '5m', '1h', '1d', '1w') to seconds."""
    tf = tf.strip().lower()
    unit = tf[-1:]
    if unit not in _UNIT_SECONDS or not tf[:-1].isdigit() or int(tf[:-1]) <= 0:
        raise ValueError(f"Unsupported timeframe: {tf}")
    return int(tf[:-1]) * _UNIT_SECONDS[unit]


def timeframe_minutes(tf: str) -> int:
    return timeframe_seconds(tf) // 60


def periods_per_year(tf: str) -> float:
    """Bars per 365-day year; markets traded here never close."""
    return SECONDS_PER_YEAR / timeframe_seconds(tf)
