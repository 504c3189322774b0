"""
Strategy controller: keeps the dataframe of one pair and drives a strategy.

Indicators are computed once the warm-up period is filled; ``on_bar`` of the
strategy only runs after ``start()``, so history can be preloaded first.
"""

from __future__ import annotations

import logging

from execution.models import Bar
from strategy.base import Broker, Dataframe, HighFrequencyStrategy, Strategy

logger = logging.getLogger("tradesim.strategy")


class StrategyController:
    def __init__(self, pair: str, strategy: Strategy, broker: Broker) -> None:
        self.dataframe = Dataframe(pair=pair)
        self.strategy = strategy
        self.broker = broker
        self.started = False

    def start(self) -> None:
        self.started = True

    def on_partial_bar(self, bar: Bar) -> None:
        if bar.complete or len(self.dataframe) < self.strategy.warmup_period():
            return
        if not isinstance(self.strategy, HighFrequencyStrategy):
            return
        self.dataframe.update(bar)
        self.strategy.indicators(self.dataframe)
        self.strategy.on_partial_bar(self.dataframe, self.broker)

    def on_bar(self, bar: Bar) -> None:
        if self.dataframe.time and bar.time < self.dataframe.time[-1]:
            logger.error("late bar received for %s at %s", bar.pair, bar.time.isoformat())
            return

        self.dataframe.update(bar)
        if len(self.dataframe) >= self.strategy.warmup_period():
            self.strategy.indicators(self.dataframe)
            if self.started:
                self.strategy.on_bar(self.dataframe, self.broker)
