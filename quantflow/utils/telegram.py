"""Telegram notifications for session logs. Never log token or chat_id."""

from __future__ import annotations
import logging

import requests

from quantflow.core.types import LogEntry, LogLevel

logger = logging.getLogger("quantflow.utils.telegram")


def send_telegram(text: str, bot_token: str = "", chat_id: str = "") -> bool:
    """Send message to Telegram. Returns True on success, False when not configured or on failure."""
    if not bot_token or not chat_id:
        logger.debug("Telegram not configured, skipping message (len=%d)", len(text))
        return False
    try:
        url = f"https://api.telegram.org/bot{bot_token}/sendMessage"
        r = requests.post(url, json={"chat_id": chat_id, "text": text}, timeout=10)
    except requests.RequestException as e:
        logger.warning("Telegram error: %s", e)
        return False
    if r.status_code != 200:
        logger.warning("Telegram send failed: %s %s", r.status_code, r.text[:200])
        return False
    return True


class TelegramNotifier:
    """Session log sink: forwards entries at or above min_level."""

    _ORDER = [LogLevel.INFO, LogLevel.SUCCESS, LogLevel.WARNING, LogLevel.ERROR]

    def __init__(self, bot_token: str = "", chat_id: str = "", min_level: LogLevel = LogLevel.WARNING):
        self.bot_token = bot_token
        self.chat_id = chat_id
        self.min_level = min_level

    @property
    def enabled(self) -> bool:
        return bool(self.bot_token and self.chat_id)

    def __call__(self, entry: LogEntry) -> None:
        if not self.enabled:
            return
        if self._ORDER.index(entry.level) < self._ORDER.index(self.min_level):
            return
        send_telegram(f"[{entry.level.value.upper()}] {entry.message}", self.bot_token, self.chat_id)
