"""
Error hierarchy for the venue, ledger, controller and storage.

Order validation errors are raised before any balance mutation.
StaleBarError is raised and handled inside the matching engine only.
"""

from __future__ import annotations

from datetime import datetime


class TradingError(Exception):
    """Base class for all errors raised by the trading core."""


class OrderError(TradingError):
    """Raised when an order request is rejected by the venue."""


class InsufficientFundsError(OrderError):
    """Not enough free balance (or liquidation value) to place the order."""

    def __init__(self, pair: str, quantity: float) -> None:
        super().__init__(f"insufficient funds: pair={pair} quantity={quantity:g}")
        self.pair = pair
        self.quantity = quantity


class InvalidQuantityError(OrderError):
    """Order size is zero, negative or not a number."""

    def __init__(self, quantity: float) -> None:
        super().__init__(f"invalid quantity: {quantity!r}")
        self.quantity = quantity


class OrderNotFoundError(OrderError):
    def __init__(self, order_id: int) -> None:
        super().__init__(f"order not found: {order_id}")
        self.order_id = order_id


class StaleBarError(TradingError):
    """Bar timestamp is earlier than the last bar seen for the same pair."""

    def __init__(self, pair: str, time: datetime, last_time: datetime) -> None:
        super().__init__(f"stale bar for {pair}: {time.isoformat()} < {last_time.isoformat()}")
        self.pair = pair
        self.time = time
        self.last_time = last_time


class VenueError(TradingError):
    """Wraps any failure of a Venue implementation."""


class StorageError(TradingError):
    """Wraps any failure of an order store."""


class TransientFeedError(VenueError):
    """Recoverable market-data failure; subscriptions retry with backoff."""
