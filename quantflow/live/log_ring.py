"""Fixed-capacity session log: oldest entries evicted first."""

from __future__ import annotations
import logging
from collections import deque
from typing import Callable, Deque, Iterable, List, Tuple

from quantflow.core.logger import stdlib_level
from quantflow.core.types import LogEntry, LogLevel

logger = logging.getLogger("quantflow.live")

LogSink = Callable[[LogEntry], None]


class LogRing:
    def __init__(self, capacity: int = 100, sinks: Iterable[LogSink] = ()):
        if capacity <= 0:
            raise ValueError("log capacity must be positive")
        self._entries: Deque[LogEntry] = deque(maxlen=capacity)
        self._seq = 0
        self.sinks: List[LogSink] = list(sinks)

    @property
    def capacity(self) -> int:
        return self._entries.maxlen

    def append(self, message: str, level: LogLevel, timestamp: float) -> LogEntry:
        self._seq += 1
        entry = LogEntry(id=f"log-{self._seq}", timestamp=timestamp, message=message, level=level)
        self._entries.append(entry)
        logger.log(stdlib_level(level), message, extra={"session_level": level.value})
        return entry

    def entries(self) -> Tuple[LogEntry, ...]:
        return tuple(self._entries)

    def __len__(self) -> int:
        return len(self._entries)
