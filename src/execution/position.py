"""
Average price and realized profit for one pair.

A PositionBook keeps the signed net quantity plus two weighted averages:
avg_long (cost basis of a net-long quantity) and avg_short (entry basis of a
net-short quantity). Only the one matching the sign of the quantity is
meaningful; the other keeps its last value until a new opposite position opens.

The matching engine keeps one book per pair and applies every fill as it
happens. The order controller builds a fresh book and replays the stored
fills. Both go through ``PositionBook.apply`` so the two profit figures
cannot drift apart.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from execution.models import Order, OrderSide


@dataclass(frozen=True)
class Realization:
    """Profit realized by a fill that reduced or closed a position.

    ``position_side`` is the side of the position that was closed:
    SELL fills close longs ("BUY" position), BUY fills close shorts.
    """

    value: float
    percent: float
    quantity: float
    position_side: OrderSide


class PositionBook:
    """Signed position with long/short weighted average prices."""

    def __init__(self, quantity: float = 0.0, avg_long: float = 0.0, avg_short: float = 0.0) -> None:
        self.quantity = quantity
        self.avg_long = avg_long
        self.avg_short = avg_short

    def __repr__(self) -> str:
        return f"PositionBook(quantity={self.quantity:g}, avg_long={self.avg_long:g}, avg_short={self.avg_short:g})"

    @property
    def avg_price(self) -> float:
        """Average price of the open position (0.0 when flat)."""
        if self.quantity > 0:
            return self.avg_long
        if self.quantity < 0:
            return self.avg_short
        return 0.0

    def apply(self, side: OrderSide, quantity: float, price: float) -> Realization | None:
        """Apply one fill; return the realization when it reduces the position."""
        held = self.quantity
        realization: Realization | None = None

        if held == 0:
            if side == OrderSide.BUY:
                self.avg_long = price
            else:
                self.avg_short = price

        elif held > 0 and side == OrderSide.BUY:
            self.avg_long = (self.avg_long * held + quantity * price) / (held + quantity)

        elif held > 0 and side == OrderSide.SELL:
            closed = min(quantity, held)
            value = closed * (price - self.avg_long)
            realization = Realization(
                value=value,
                percent=_percent(value, closed, self.avg_long),
                quantity=closed,
                position_side=OrderSide.BUY,
            )
            if quantity > held:
                self.avg_short = price

        elif held < 0 and side == OrderSide.SELL:
            short = -held
            self.avg_short = (self.avg_short * short + quantity * price) / (short + quantity)

        else:  # held < 0, buy
            short = -held
            closed = min(quantity, short)
            value = closed * (self.avg_short - price)
            realization = Realization(
                value=value,
                percent=_percent(value, closed, self.avg_short),
                quantity=closed,
                position_side=OrderSide.SELL,
            )
            if quantity > short:
                self.avg_long = price

        self.quantity = held + quantity if side == OrderSide.BUY else held - quantity
        if abs(self.quantity) < 1e-12:
            self.quantity = 0.0
        return realization


def _percent(value: float, quantity: float, reference: float) -> float:
    if quantity == 0 or reference == 0:
        return 0.0
    return value / (quantity * reference)


def replay(orders: Iterable[Order], opening: float = 0.0) -> PositionBook:
    """Rebuild a position out of filled orders, oldest first.

    *opening* units held before the first order enter at zero cost.
    """
    book = PositionBook(quantity=opening)
    for order in orders:
        book.apply(order.side, order.quantity, order.execution_price)
    return book
