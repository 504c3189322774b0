"""
Capabilities consumed by the order controller and the strategy layer.

Venue is implemented by the simulated MatchingEngine (and would be by a live
exchange client). Feeder is the market-data subset; Notifier receives
human-readable messages and errors.
"""

from __future__ import annotations

import threading
from datetime import datetime
from typing import Iterator, Protocol, runtime_checkable

from execution.models import Account, Bar, Order, OrderSide


@runtime_checkable
class Feeder(Protocol):
    def last_quote(self, pair: str) -> float: ...

    def candles_by_limit(self, pair: str, timeframe: str, limit: int) -> list[Bar]: ...

    def candles_by_period(self, pair: str, timeframe: str, start: datetime, end: datetime) -> list[Bar]: ...

    def candles_subscription(
        self, pair: str, timeframe: str, stop_event: threading.Event | None = None
    ) -> Iterator[Bar]: ...


@runtime_checkable
class Venue(Feeder, Protocol):
    def create_order_market(self, side: OrderSide, pair: str, quantity: float) -> Order: ...

    def create_order_market_quote(self, side: OrderSide, pair: str, quote_quantity: float) -> Order: ...

    def create_order_limit(self, side: OrderSide, pair: str, quantity: float, limit: float) -> Order: ...

    def create_order_stop(
        self, pair: str, quantity: float, limit: float, *, side: OrderSide = OrderSide.SELL
    ) -> Order: ...

    def create_order_oco(
        self, side: OrderSide, pair: str, quantity: float, price: float, stop: float, stop_limit: float
    ) -> list[Order]: ...

    def cancel(self, order: Order) -> None: ...

    def order(self, pair: str, exchange_id: int) -> Order: ...

    def account(self) -> Account: ...

    def position(self, pair: str) -> tuple[float, float]: ...


@runtime_checkable
class Notifier(Protocol):
    def notify(self, message: str) -> None: ...

    def on_error(self, err: Exception) -> None: ...
