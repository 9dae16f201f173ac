"""Market data: bar validation, bar series, bar source port and feeds."""

from quantflow.data.bars import BarSeries, validate_bar, bar_from_mapping
from quantflow.data.sources import BarSource, BarSourcePort, LiveBarSource, StaticBarSource
from quantflow.data.synthetic import SyntheticBarFeed, generate_bars

__all__ = [
    "BarSeries",
    "validate_bar",
    "bar_from_mapping",
    "BarSource",
    "BarSourcePort",
    "LiveBarSource",
    "StaticBarSource",
    "SyntheticBarFeed",
    "generate_bars",
]
