"""
Strategy contracts and the per-pair dataframe handed to strategies.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Protocol, runtime_checkable

from execution.models import Bar, Order, OrderSide


@dataclass
class Dataframe:
    """Column-wise bar history for one pair, plus indicator columns in ``metadata``."""

    pair: str
    time: list[datetime] = field(default_factory=list)
    open: list[float] = field(default_factory=list)
    high: list[float] = field(default_factory=list)
    low: list[float] = field(default_factory=list)
    close: list[float] = field(default_factory=list)
    volume: list[float] = field(default_factory=list)
    metadata: dict[str, list[float]] = field(default_factory=dict)
    last_update: datetime | None = None

    def __len__(self) -> int:
        return len(self.close)

    def update(self, bar: Bar) -> None:
        """Append *bar*, or overwrite the last row when it carries the same timestamp."""
        if self.time and bar.time == self.time[-1]:
            self.open[-1] = bar.open
            self.high[-1] = bar.high
            self.low[-1] = bar.low
            self.close[-1] = bar.close
            self.volume[-1] = bar.volume
            for key, value in bar.metadata.items():
                self.metadata.setdefault(key, [])
                if self.metadata[key]:
                    self.metadata[key][-1] = value
                else:
                    self.metadata[key].append(value)
            return
        self.time.append(bar.time)
        self.open.append(bar.open)
        self.high.append(bar.high)
        self.low.append(bar.low)
        self.close.append(bar.close)
        self.volume.append(bar.volume)
        self.last_update = bar.time
        for key, value in bar.metadata.items():
            self.metadata.setdefault(key, []).append(value)


class Broker(Protocol):
    """What a strategy may do: the order controller's placement surface."""

    def position(self, pair: str) -> tuple[float, float]: ...

    def create_order_market(self, side: OrderSide, pair: str, quantity: float) -> Order: ...

    def create_order_market_quote(self, side: OrderSide, pair: str, quote_quantity: float) -> Order: ...

    def create_order_limit(self, side: OrderSide, pair: str, quantity: float, limit: float) -> Order: ...

    def create_order_oco(
        self, side: OrderSide, pair: str, quantity: float, price: float, stop: float, stop_limit: float
    ) -> list[Order]: ...

    def cancel(self, order: Order) -> None: ...


@runtime_checkable
class Strategy(Protocol):
    def timeframe(self) -> str: ...

    def warmup_period(self) -> int: ...

    def indicators(self, df: Dataframe) -> None: ...

    def on_bar(self, df: Dataframe, broker: Broker) -> None: ...


@runtime_checkable
class HighFrequencyStrategy(Strategy, Protocol):
    """Strategy that also reacts to intra-bar (partial) updates."""

    def on_partial_bar(self, df: Dataframe, broker: Broker) -> None: ...
