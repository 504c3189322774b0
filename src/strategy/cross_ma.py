"""
Moving-average crossover: buy with all quote when the fast EMA crosses above
the slow SMA, sell the whole position when it crosses back below.
"""

from __future__ import annotations

import logging

from execution.errors import TradingError
from execution.models import OrderSide, amount_to_lot_size
from strategy.base import Broker, Dataframe
from strategy.indicators import crossover, crossunder, ema, sma

logger = logging.getLogger("tradesim.strategy.cross_ma")

MIN_QUOTE = 10.0


class CrossMA:
    def __init__(self, fast: int = 8, slow: int = 21, timeframe: str = "4h") -> None:
        if fast >= slow:
            raise ValueError("fast period must be shorter than slow period")
        self.fast = fast
        self.slow = slow
        self._timeframe = timeframe

    def timeframe(self) -> str:
        return self._timeframe

    def warmup_period(self) -> int:
        return self.slow

    def indicators(self, df: Dataframe) -> None:
        df.metadata["ema_fast"] = ema(df.close, self.fast)
        df.metadata["sma_slow"] = sma(df.close, self.slow)

    def on_bar(self, df: Dataframe, broker: Broker) -> None:
        close = df.close[-1]
        try:
            asset, quote = broker.position(df.pair)
            if quote >= MIN_QUOTE and crossover(df.metadata["ema_fast"], df.metadata["sma_slow"]):
                amount = amount_to_lot_size(1e-8, 8, quote / close)
                broker.create_order_market(OrderSide.BUY, df.pair, amount)
                return
            if asset > 0 and crossunder(df.metadata["ema_fast"], df.metadata["sma_slow"]):
                broker.create_order_market(OrderSide.SELL, df.pair, asset)
        except TradingError as e:
            logger.error("%s: %s", df.pair, e)
