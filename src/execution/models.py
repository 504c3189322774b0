"""Bar, Order, Balance, Account for the simulated venue.

Plain dataclasses; no I/O. Timestamps are UTC-aware datetimes.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

# Quote assets recognised when a pair has no separator ("BTCUSDT").
KNOWN_QUOTES = ("USDT", "BUSD", "USDC", "TUSD", "FDUSD", "BTC", "ETH", "BNB", "USD", "EUR", "BRL")


class OrderSide(str, Enum):
    BUY = "BUY"
    SELL = "SELL"


class OrderType(str, Enum):
    MARKET = "MARKET"
    LIMIT = "LIMIT"
    LIMIT_MAKER = "LIMIT_MAKER"
    STOP_LOSS = "STOP_LOSS"
    STOP_LOSS_LIMIT = "STOP_LOSS_LIMIT"
    TAKE_PROFIT = "TAKE_PROFIT"
    TAKE_PROFIT_LIMIT = "TAKE_PROFIT_LIMIT"

    @property
    def is_stop(self) -> bool:
        return self in (OrderType.STOP_LOSS, OrderType.STOP_LOSS_LIMIT)


class OrderStatus(str, Enum):
    NEW = "NEW"
    PARTIALLY_FILLED = "PARTIALLY_FILLED"
    FILLED = "FILLED"
    CANCELED = "CANCELED"
    PENDING_CANCEL = "PENDING_CANCEL"
    REJECTED = "REJECTED"
    EXPIRED = "EXPIRED"

    @property
    def is_pending(self) -> bool:
        return self in PENDING_STATUSES

    @property
    def is_final(self) -> bool:
        return self in (
            OrderStatus.FILLED,
            OrderStatus.CANCELED,
            OrderStatus.REJECTED,
            OrderStatus.EXPIRED,
        )


PENDING_STATUSES = (
    OrderStatus.NEW,
    OrderStatus.PARTIALLY_FILLED,
    OrderStatus.PENDING_CANCEL,
)


@dataclass
class Bar:
    """OHLCV bar for one pair. ``complete`` is False for intra-bar updates."""

    pair: str
    time: datetime
    open: float
    high: float
    low: float
    close: float
    volume: float
    complete: bool = True
    metadata: dict[str, float] = field(default_factory=dict)


@dataclass
class Order:
    pair: str
    side: OrderSide
    type: OrderType
    status: OrderStatus
    quantity: float
    price: float
    created_at: datetime
    updated_at: datetime
    exchange_id: int = 0
    id: int | None = None
    stop: float | None = None
    group_id: int | None = None
    ref_price: float = 0.0
    profit: float = 0.0

    @property
    def execution_price(self) -> float:
        """Price the order fills at: the trigger for stop orders, else ``price``."""
        if self.type.is_stop and self.stop is not None:
            return self.stop
        return self.price

    def __str__(self) -> str:
        return (
            f"[{self.status.value}] {self.side.value} {self.type.value} {self.pair} "
            f"| ID: {self.exchange_id}, Group: {self.group_id}, "
            f"{self.quantity:g} x ${self.execution_price:g} (~${self.quantity * self.execution_price:.0f})"
        )


@dataclass
class Balance:
    asset: str
    free: float
    locked: float
    short: float = 0.0

    @property
    def total(self) -> float:
        return self.free + self.locked

    @property
    def net(self) -> float:
        """Signed position: negative when the asset is held short."""
        return self.free + self.locked - self.short


@dataclass
class Account:
    balances: list[Balance] = field(default_factory=list)

    def balance(self, asset: str) -> Balance:
        for b in self.balances:
            if b.asset == asset:
                return b
        return Balance(asset=asset, free=0.0, locked=0.0)


@dataclass(frozen=True)
class AssetValue:
    """One (time, value) sample of an asset or of total equity."""

    time: datetime
    value: float


def split_asset_quote(pair: str) -> tuple[str, str]:
    """Split a pair symbol into (asset, quote).

    Accepts "BTC/USDT", "BTC-USDT" and "BTCUSDT" (quote taken from the known
    quote suffixes, longest first).
    """
    symbol = pair.strip().upper()
    for sep in ("/", "-", "_"):
        if sep in symbol:
            asset, quote = symbol.split(sep, 1)
            return asset, quote
    for quote in sorted(KNOWN_QUOTES, key=len, reverse=True):
        if symbol.endswith(quote) and len(symbol) > len(quote):
            return symbol[: -len(quote)], quote
    raise ValueError(f"Cannot split pair {pair!r} into asset and quote")


def amount_to_lot_size(step: float, precision: int, amount: float) -> float:
    """Floor *amount* to a multiple of *step*, rounded to *precision* digits."""
    if step <= 0:
        return round(amount, precision)
    lots = math.floor(round(amount / step, 9))
    return round(lots * step, precision)
