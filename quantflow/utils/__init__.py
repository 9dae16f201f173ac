"""Utils: timeframes, Telegram."""

from quantflow.utils.telegram import send_telegram, TelegramNotifier
from quantflow.utils.timeframes import timeframe_seconds, timeframe_minutes, periods_per_year

__all__ = ["send_telegram", "TelegramNotifier", "timeframe_seconds", "timeframe_minutes", "periods_per_year"]
