"""
Simulated venue: fills pending orders against incoming bars and keeps the
balance ledger, per-pair position books and the equity history.

Fills are approximated from bar OHLC bounds (no order book, no partial fills).
All state is guarded by one lock held for each bar ingestion or order mutation.
"""

from __future__ import annotations

import logging
import math
import threading
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Iterator

from execution.errors import (
    InsufficientFundsError,
    InvalidQuantityError,
    OrderNotFoundError,
    StaleBarError,
    VenueError,
)
from execution.ledger import BalanceLedger, Reservation
from execution.models import (
    Account,
    AssetValue,
    Bar,
    Order,
    OrderSide,
    OrderStatus,
    OrderType,
    amount_to_lot_size,
    split_asset_quote,
)
from execution.position import PositionBook, Realization
from execution.venue import Feeder
from metrics.drawdown import Drawdown, max_drawdown

logger = logging.getLogger("tradesim.engine")

LOT_STEP = 1e-8
LOT_PRECISION = 8


@dataclass(frozen=True)
class Holding:
    asset: str
    quantity: float
    value: float


@dataclass(frozen=True)
class WalletSummary:
    """Final state of a simulated wallet, valued in the base coin."""

    base_coin: str
    start_value: float
    base_value: float
    final_value: float
    market_change: float
    max_drawdown: Drawdown
    holdings: list[Holding] = field(default_factory=list)
    volume: dict[str, float] = field(default_factory=dict)

    @property
    def gross_profit(self) -> float:
        return self.final_value - self.start_value

    @property
    def gross_profit_pct(self) -> float:
        if self.start_value == 0:
            return 0.0
        return self.gross_profit / self.start_value * 100

    @property
    def total_volume(self) -> float:
        return sum(self.volume.values())


def _valid_quantity(quantity: float) -> bool:
    return quantity > 0 and not math.isinf(quantity)


class MatchingEngine:
    """
    Paper-trading venue driven by bars.

    Parameters
    ----------
    base_coin : str
        Asset used to value the wallet (equity samples, summary).
    balances : dict[str, float] | None
        Initial free balance per asset.
    maker_fee, taker_fee : float
        Fee rates charged in the quote asset on pending / market fills.
    feeder : Feeder | None
        Market-data source for the candle passthrough methods.
    """

    def __init__(
        self,
        base_coin: str,
        *,
        balances: dict[str, float] | None = None,
        maker_fee: float = 0.0,
        taker_fee: float = 0.0,
        feeder: Feeder | None = None,
    ) -> None:
        self.base_coin = base_coin.upper()
        self.maker_fee = maker_fee
        self.taker_fee = taker_fee
        self._feeder = feeder
        self._lock = threading.Lock()
        self._ledger = BalanceLedger()
        self._opening = {asset.upper(): amount for asset, amount in (balances or {}).items()}
        for asset, amount in self._opening.items():
            self._ledger.deposit(asset, amount)
        self._ledger.deposit(self.base_coin, 0.0)
        self._initial_value = self._ledger.balance(self.base_coin).free

        self._counter = 0
        self._orders: list[Order] = []
        self._reservations: dict[int, Reservation] = {}
        self._books: dict[str, PositionBook] = {}
        self._realized: dict[int, Realization] = {}
        self._volume: dict[str, float] = {}
        self._first_bar: dict[str, Bar] = {}
        self._last_bar: dict[str, Bar] = {}
        self._asset_values: dict[str, list[AssetValue]] = {}
        self._equity_values: list[AssetValue] = []

        logger.info("Using paper wallet; initial portfolio = %f %s", self._initial_value, self.base_coin)

    # ------------------------------------------------------------------
    # Internals (caller holds the lock)
    # ------------------------------------------------------------------

    def _next_id(self) -> int:
        self._counter += 1
        return self._counter

    def _book(self, pair: str) -> PositionBook:
        if pair not in self._books:
            # assets deposited up front enter the book at zero cost
            self._books[pair] = PositionBook(quantity=self.opening_position(pair))
        return self._books[pair]

    def _now(self, pair: str) -> datetime:
        bar = self._last_bar.get(pair)
        return bar.time if bar is not None else datetime.now(timezone.utc)

    def _find(self, exchange_id: int) -> Order:
        for order in self._orders:
            if order.exchange_id == exchange_id:
                return order
        raise OrderNotFoundError(exchange_id)

    def _record_fill(self, order: Order, fill_price: float) -> None:
        realization = self._book(order.pair).apply(order.side, order.quantity, fill_price)
        if realization is not None:
            self._realized[order.exchange_id] = realization
            order.profit = realization.percent
        self._volume[order.pair] = self._volume.get(order.pair, 0.0) + order.quantity * fill_price

    def _place_market(self, side: OrderSide, pair: str, quantity: float) -> Order:
        if not _valid_quantity(quantity):
            raise InvalidQuantityError(quantity)
        bar = self._last_bar.get(pair)
        if bar is None:
            raise VenueError(f"no price for {pair}: market orders need at least one bar")

        self._ledger.reserve(pair, side, quantity, bar.close, fee_rate=self.taker_fee, fill=True)
        order = Order(
            pair=pair,
            side=side,
            type=OrderType.MARKET,
            status=OrderStatus.FILLED,
            quantity=quantity,
            price=bar.close,
            created_at=bar.time,
            updated_at=bar.time,
            exchange_id=self._next_id(),
            ref_price=bar.close,
        )
        self._record_fill(order, bar.close)
        self._orders.append(order)
        logger.debug("market fill %s", order)
        return replace(order)

    def _place_pending(self, pair: str, quantity: float, price: float, legs: list[dict]) -> list[Order]:
        """Reserve once for *legs* (one order, or the two legs of an OCO group)."""
        if not _valid_quantity(quantity):
            raise InvalidQuantityError(quantity)
        side = legs[0]["side"]
        # an OCO group is reserved at its highest trigger so either leg can settle
        worst = max([price] + [leg["stop"] for leg in legs if leg.get("stop") is not None])
        reservation = self._ledger.reserve(pair, side, quantity, worst, fee_rate=self.maker_fee)
        now = self._now(pair)
        last = self._last_bar.get(pair)
        group_id = self._next_id() if len(legs) > 1 else None
        orders = []
        for leg in legs:
            order = Order(
                pair=pair,
                quantity=quantity,
                status=OrderStatus.NEW,
                created_at=now,
                updated_at=now,
                exchange_id=self._next_id(),
                group_id=group_id,
                ref_price=last.close if last is not None else 0.0,
                **leg,
            )
            self._orders.append(order)
            orders.append(order)
        key = group_id if group_id is not None else orders[0].exchange_id
        self._reservations[key] = reservation
        return [replace(o) for o in orders]

    @staticmethod
    def _trigger_price(order: Order, bar: Bar) -> float | None:
        if order.side == OrderSide.BUY:
            if order.type.is_stop:
                return order.stop if order.stop is not None and bar.high >= order.stop else None
            return order.price if bar.close <= order.price else None
        if order.type.is_stop:
            return order.stop if order.stop is not None and bar.low <= order.stop else None
        return order.price if bar.high >= order.price else None

    def _close_group(self, order: Order, time: datetime) -> None:
        for sibling in self._orders:
            if (
                sibling.group_id == order.group_id
                and sibling.exchange_id != order.exchange_id
                and sibling.status == OrderStatus.NEW
            ):
                sibling.status = OrderStatus.CANCELED
                sibling.updated_at = time

    def _fill_pending(self, order: Order, fill_price: float, time: datetime) -> None:
        key = order.group_id if order.group_id is not None else order.exchange_id
        reservation = self._reservations.pop(key)
        try:
            self._ledger.settle(reservation, fill_price, fee_rate=self.maker_fee)
        except InsufficientFundsError:
            # balances moved since placement; the order cannot be honoured
            self._ledger.release(reservation)
            order.status = OrderStatus.REJECTED
            order.updated_at = time
            if order.group_id is not None:
                self._close_group(order, time)
            logger.warning("rejected at fill time (insufficient funds): %s", order)
            return
        if order.group_id is not None:
            self._close_group(order, time)
        order.status = OrderStatus.FILLED
        order.updated_at = time
        self._record_fill(order, fill_price)
        logger.debug("pending fill %s at %f", order, fill_price)

    def _check_bar(self, bar: Bar) -> None:
        last = self._last_bar.get(bar.pair)
        if last is not None and bar.time < last.time:
            raise StaleBarError(bar.pair, bar.time, last.time)

    def _pair_for(self, asset: str) -> str | None:
        fallback = None
        for pair in self._last_bar:
            pair_asset, quote = split_asset_quote(pair)
            if pair_asset != asset:
                continue
            if quote == self.base_coin:
                return pair
            fallback = fallback or pair
        return fallback

    def _sample(self, time: datetime) -> None:
        total = 0.0
        for asset in self._ledger.assets():
            if asset == self.base_coin:
                continue
            pair = self._pair_for(asset)
            if pair is None:
                continue
            value = self._ledger.value(asset, self._last_bar[pair].close)
            self._asset_values.setdefault(asset, []).append(AssetValue(time=time, value=value))
            total += value
        base = self._ledger.balance(self.base_coin)
        self._equity_values.append(AssetValue(time=time, value=total + base.total))

    # ------------------------------------------------------------------
    # Bars
    # ------------------------------------------------------------------

    def on_bar(self, bar: Bar) -> bool:
        """Ingest one bar. Returns False when the bar is stale and was dropped."""
        with self._lock:
            try:
                self._check_bar(bar)
            except StaleBarError as err:
                logger.warning("dropping bar: %s", err)
                return False

            self._last_bar[bar.pair] = bar
            self._first_bar.setdefault(bar.pair, bar)

            for order in self._orders:
                if order.pair != bar.pair or order.status != OrderStatus.NEW:
                    continue
                fill_price = self._trigger_price(order, bar)
                if fill_price is None:
                    continue
                self._fill_pending(order, fill_price, bar.time)

            if bar.complete:
                self._sample(bar.time)
            return True

    # ------------------------------------------------------------------
    # Order placement
    # ------------------------------------------------------------------

    def create_order_market(self, side: OrderSide, pair: str, quantity: float) -> Order:
        with self._lock:
            return self._place_market(side, pair, quantity)

    def create_order_market_quote(self, side: OrderSide, pair: str, quote_quantity: float) -> Order:
        """Market order sized by quote amount at the last close, floored to the lot step."""
        with self._lock:
            if not _valid_quantity(quote_quantity):
                raise InvalidQuantityError(quote_quantity)
            bar = self._last_bar.get(pair)
            if bar is None:
                raise VenueError(f"no price for {pair}: market orders need at least one bar")
            quantity = amount_to_lot_size(LOT_STEP, LOT_PRECISION, quote_quantity / bar.close)
            return self._place_market(side, pair, quantity)

    def create_order_limit(self, side: OrderSide, pair: str, quantity: float, limit: float) -> Order:
        with self._lock:
            (order,) = self._place_pending(
                pair, quantity, limit, [{"side": side, "type": OrderType.LIMIT, "price": limit}]
            )
            return order

    def create_order_stop(
        self, pair: str, quantity: float, limit: float, *, side: OrderSide = OrderSide.SELL
    ) -> Order:
        with self._lock:
            (order,) = self._place_pending(
                pair,
                quantity,
                limit,
                [{"side": side, "type": OrderType.STOP_LOSS_LIMIT, "price": limit, "stop": limit}],
            )
            return order

    def create_order_oco(
        self, side: OrderSide, pair: str, quantity: float, price: float, stop: float, stop_limit: float
    ) -> list[Order]:
        """Limit-maker leg at *price* plus stop-loss leg at *stop*, sharing one reservation."""
        with self._lock:
            return self._place_pending(
                pair,
                quantity,
                price,
                [
                    {"side": side, "type": OrderType.LIMIT_MAKER, "price": price},
                    {"side": side, "type": OrderType.STOP_LOSS, "price": stop_limit, "stop": stop},
                ],
            )

    def cancel(self, order: Order) -> None:
        """Cancel a pending order and release its locks. Final orders are left as they are."""
        with self._lock:
            stored = self._find(order.exchange_id)
            if stored.status.is_final:
                return
            stored.status = OrderStatus.CANCELED
            stored.updated_at = self._now(stored.pair)

            key = stored.exchange_id
            if stored.group_id is not None:
                key = stored.group_id
                active = any(
                    o.group_id == stored.group_id and o.status == OrderStatus.NEW for o in self._orders
                )
                if active:
                    return
            reservation = self._reservations.pop(key, None)
            if reservation is not None:
                self._ledger.release(reservation)
            logger.debug("canceled %s", stored)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def order(self, pair: str, exchange_id: int) -> Order:
        with self._lock:
            return replace(self._find(exchange_id))

    def orders(self) -> list[Order]:
        with self._lock:
            return [replace(o) for o in self._orders]

    def account(self) -> Account:
        with self._lock:
            return Account(balances=self._ledger.balances())

    def position(self, pair: str) -> tuple[float, float]:
        """(asset, quote) holdings for *pair*; asset is negative when short."""
        asset, quote = split_asset_quote(pair)
        with self._lock:
            return self._ledger.net(asset), self._ledger.balance(quote).total

    def opening_position(self, pair: str) -> float:
        """Units of the pair's asset deposited before trading started."""
        asset, _ = split_asset_quote(pair)
        return self._opening.get(asset, 0.0)

    def avg_price(self, pair: str) -> float:
        with self._lock:
            return self._book(pair).avg_price

    def realized(self, exchange_id: int) -> Realization | None:
        with self._lock:
            return self._realized.get(exchange_id)

    def volume(self, pair: str) -> float:
        with self._lock:
            return self._volume.get(pair, 0.0)

    def pairs(self) -> list[str]:
        with self._lock:
            return list(self._last_bar)

    def asset_values(self, asset: str) -> list[AssetValue]:
        with self._lock:
            return list(self._asset_values.get(asset.upper(), []))

    def equity_values(self) -> list[AssetValue]:
        with self._lock:
            return list(self._equity_values)

    def max_drawdown(self) -> Drawdown:
        with self._lock:
            return max_drawdown(self._equity_values)

    def summary(self) -> WalletSummary:
        with self._lock:
            holdings = []
            total = 0.0
            market_change = 0.0
            for pair, bar in self._last_bar.items():
                asset, _ = split_asset_quote(pair)
                if asset == self.base_coin:
                    continue
                value = self._ledger.value(asset, bar.close)
                holdings.append(Holding(asset=asset, quantity=self._ledger.net(asset), value=value))
                total += value
                first = self._first_bar[pair].close
                if first:
                    market_change += (bar.close - first) / first
            avg_change = market_change / len(self._last_bar) if self._last_bar else 0.0
            base_value = self._ledger.balance(self.base_coin).total
            return WalletSummary(
                base_coin=self.base_coin,
                start_value=self._initial_value,
                base_value=base_value,
                final_value=total + base_value,
                market_change=avg_change * 100,
                max_drawdown=max_drawdown(self._equity_values),
                holdings=holdings,
                volume=dict(self._volume),
            )

    # ------------------------------------------------------------------
    # Market data passthrough
    # ------------------------------------------------------------------

    def _require_feeder(self) -> Feeder:
        if self._feeder is None:
            raise VenueError("no market data feeder configured")
        return self._feeder

    def last_quote(self, pair: str) -> float:
        with self._lock:
            bar = self._last_bar.get(pair)
        if bar is not None:
            return bar.close
        return self._require_feeder().last_quote(pair)

    def candles_by_limit(self, pair: str, timeframe: str, limit: int) -> list[Bar]:
        return self._require_feeder().candles_by_limit(pair, timeframe, limit)

    def candles_by_period(self, pair: str, timeframe: str, start: datetime, end: datetime) -> list[Bar]:
        return self._require_feeder().candles_by_period(pair, timeframe, start, end)

    def candles_subscription(
        self, pair: str, timeframe: str, stop_event: threading.Event | None = None
    ) -> Iterator[Bar]:
        return self._require_feeder().candles_subscription(pair, timeframe, stop_event)
