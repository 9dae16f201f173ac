"""Mock strategy: random buys/closes from a seeded RNG, reproducible run to run."""

from __future__ import annotations
import random
from typing import Optional

from quantflow.core.types import OrderIntent
from quantflow.strategies.base import Strategy, StrategyContext
from quantflow.strategies.registry import register_strategy


@register_strategy("random")
class RandomSignalStrategy(Strategy):
    def __init__(self, seed: int = 7, size: float = 0.1, entry_prob: float = 0.1, exit_prob: float = 0.2):
        self.seed = seed
        self.size = size
        self.entry_prob = entry_prob
        self.exit_prob = exit_prob
        self._rng = random.Random(seed)

    def init(self, context: StrategyContext) -> None:
        # Reseed so re-running the same instance replays the same decisions
        self._rng = random.Random(self.seed)

    def on_bar(self, context: StrategyContext) -> Optional[OrderIntent]:
        draw = self._rng.random()
        pos = context.position
        if pos is None:
            if draw < self.entry_prob:
                return OrderIntent.buy(self.size)
            return None
        if draw < self.exit_prob:
            return OrderIntent(pos.side.opposite, pos.qty)
        return None
