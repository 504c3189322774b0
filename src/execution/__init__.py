"""
Simulated execution: balance ledger, position books and the bar-driven
matching engine that implements the Venue capability.
"""

from execution.errors import (
    InsufficientFundsError,
    InvalidQuantityError,
    OrderError,
    OrderNotFoundError,
    StaleBarError,
    StorageError,
    TradingError,
    TransientFeedError,
    VenueError,
)
from execution.ledger import BalanceLedger, Reservation
from execution.matching_engine import Holding, MatchingEngine, WalletSummary
from execution.models import (
    Account,
    AssetValue,
    Balance,
    Bar,
    Order,
    OrderSide,
    OrderStatus,
    OrderType,
    amount_to_lot_size,
    split_asset_quote,
)
from execution.position import PositionBook, Realization, replay
from execution.venue import Feeder, Notifier, Venue

__all__ = [
    "Account",
    "AssetValue",
    "Balance",
    "BalanceLedger",
    "Bar",
    "Feeder",
    "Holding",
    "InsufficientFundsError",
    "InvalidQuantityError",
    "MatchingEngine",
    "Notifier",
    "Order",
    "OrderError",
    "OrderNotFoundError",
    "OrderSide",
    "OrderStatus",
    "OrderType",
    "PositionBook",
    "Realization",
    "Reservation",
    "StaleBarError",
    "StorageError",
    "TradingError",
    "TransientFeedError",
    "Venue",
    "VenueError",
    "WalletSummary",
    "amount_to_lot_size",
    "replay",
    "split_asset_quote",
]
