"""
Strategy helpers: a trailing stop and a conditional order scheduler.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable

from execution.errors import TradingError
from execution.models import OrderSide
from strategy.base import Broker, Dataframe

logger = logging.getLogger("tradesim.strategy.tools")


class TrailingStop:
    """Stop level that follows the price up by the same distance and never moves down."""

    def __init__(self) -> None:
        self.current = 0.0
        self.stop = 0.0
        self.active = False

    def start(self, current: float, stop: float) -> None:
        self.current = current
        self.stop = stop
        self.active = True

    def cancel(self) -> None:
        self.active = False

    def update(self, current: float) -> bool:
        """Feed the latest price; True when the stop is hit."""
        if not self.active:
            return False
        if current > self.current:
            self.stop += current - self.current
            self.current = current
            return False
        self.current = current
        return current <= self.stop


Condition = Callable[[Dataframe], bool]


@dataclass(frozen=True)
class OrderCondition:
    condition: Condition
    quantity: float
    side: OrderSide


class OrderScheduler:
    """Market orders that fire once when their condition becomes true.

    A condition whose order is rejected stays scheduled and is retried on the
    next update.
    """

    def __init__(self, pair: str) -> None:
        self.pair = pair
        self.conditions: list[OrderCondition] = []

    def buy_when(self, quantity: float, condition: Condition) -> None:
        self.conditions.append(OrderCondition(condition, quantity, OrderSide.BUY))

    def sell_when(self, quantity: float, condition: Condition) -> None:
        self.conditions.append(OrderCondition(condition, quantity, OrderSide.SELL))

    def update(self, df: Dataframe, broker: Broker) -> None:
        remaining = []
        for oc in self.conditions:
            if not oc.condition(df):
                remaining.append(oc)
                continue
            try:
                broker.create_order_market(oc.side, self.pair, oc.quantity)
            except TradingError as e:
                logger.error("scheduled %s order for %s failed: %s", oc.side.value, self.pair, e)
                remaining.append(oc)
        self.conditions = remaining
