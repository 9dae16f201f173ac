"""Persistence port and a JSON-on-disk implementation."""

from __future__ import annotations
import json
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from quantflow.backtesting.engine import BacktestResult

logger = logging.getLogger("quantflow.persistence")


class PersistencePort(ABC):
    @abstractmethod
    def save_result(self, result: "BacktestResult") -> None:
        pass

    @abstractmethod
    def load_strategy(self, strategy_id: str) -> str:
        """Return the stored strategy source. KeyError if unknown."""
        pass


class FileResultStore(PersistencePort):
    """
    results/<result id>.json and strategies/<strategy id>.py under one root.
    profit_factor may be +inf; it is written as the JSON token Infinity.
    """

    def __init__(self, root: Path):
        self.root = Path(root)
        self.results_dir = self.root / "results"
        self.strategies_dir = self.root / "strategies"

    def save_result(self, result: "BacktestResult") -> None:
        self.results_dir.mkdir(parents=True, exist_ok=True)
        path = self.results_dir / f"{result.id}.json"
        with open(path, "w", encoding="utf-8") as f:
            json.dump(result.to_dict(), f, indent=2)
        logger.info("Saved backtest %s to %s", result.id, path)

    def load_result(self, result_id: str) -> dict:
        path = self.results_dir / f"{result_id}.json"
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)

    def save_strategy(self, strategy_id: str, code: str) -> Path:
        self.strategies_dir.mkdir(parents=True, exist_ok=True)
        path = self.strategies_dir / f"{strategy_id}.py"
        path.write_text(code, encoding="utf-8")
        return path

    def load_strategy(self, strategy_id: str) -> str:
        path = self.strategies_dir / f"{strategy_id}.py"
        if not path.exists():
            raise KeyError(strategy_id)
        return path.read_text(encoding="utf-8")

    def list_results(self, strategy_id: Optional[str] = None) -> list:
        if not self.results_dir.exists():
            return []
        ids = sorted(p.stem for p in self.results_dir.glob("*.json"))
        if strategy_id is None:
            return ids
        return [i for i in ids if self.load_result(i).get("strategy_id") == strategy_id]
