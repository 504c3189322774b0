"""
Order controller: single writer of order status.

Every placement goes Venue -> profit attribution -> Storage -> OrderFeed.
A background reconciliation loop re-reads pending orders from the Venue and
records status changes found there (fills and cancellations of the simulated
engine, or out-of-band changes on a live exchange).

Profit is attributed by replaying the stored fills of the pair through a fresh
PositionBook, the same accounting the matching engine applies incrementally.
"""

from __future__ import annotations

import logging
import threading
from enum import Enum
from typing import Mapping

from execution.errors import StorageError
from execution.models import PENDING_STATUSES, Account, Bar, Order, OrderSide, OrderStatus, split_asset_quote
from execution.position import Realization, replay
from execution.venue import Notifier, Venue
from metrics.trade_summary import TradeSummary
from orders.feed import OrderFeed
from storage.order_store import (
    OrderStore,
    with_pair,
    with_status,
    with_status_in,
    with_updated_before_or_equal,
)

logger = logging.getLogger("tradesim.orders")


class ControllerStatus(str, Enum):
    RUNNING = "running"
    STOPPED = "stopped"


class OrderController:
    """
    Place, persist and reconcile orders against a Venue.

    Parameters
    ----------
    venue : Venue
        Simulated matching engine or live exchange client.
    storage : OrderStore
        Durable order log.
    feed : OrderFeed
        Receives one event per creation and per detected status change.
    notifier : Notifier | None
        Optional sink for human-readable messages and errors.
    interval : float
        Seconds between background reconciliation ticks.
    opening_positions : Mapping[str, float] | None
        Units per asset held before the first stored order; replayed at
        zero cost, as the matching engine books deposited balances.
    """

    def __init__(
        self,
        venue: Venue,
        storage: OrderStore,
        feed: OrderFeed,
        *,
        notifier: Notifier | None = None,
        interval: float = 1.0,
        opening_positions: Mapping[str, float] | None = None,
    ) -> None:
        self._venue = venue
        self._storage = storage
        self._feed = feed
        self._notifier = notifier
        self._interval = interval
        self._opening = {asset.upper(): amount for asset, amount in (opening_positions or {}).items()}
        self._lock = threading.RLock()
        self._last_price: dict[str, float] = {}
        self._status = ControllerStatus.STOPPED
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self.results: dict[str, TradeSummary] = {}

    # ------------------------------------------------------------------
    # Notifications
    # ------------------------------------------------------------------

    def _notify(self, message: str) -> None:
        logger.info(message)
        if self._notifier is not None:
            self._notifier.notify(message)

    def _notify_error(self, err: Exception) -> None:
        logger.error("%s", err)
        if self._notifier is not None:
            self._notifier.on_error(err)

    # ------------------------------------------------------------------
    # Profit
    # ------------------------------------------------------------------

    def calculate_profit(self, order: Order) -> tuple[float, float]:
        """Realized (value, fraction) of *order* against the stored fills before it."""
        realization = self._realization(order)
        if realization is None:
            return 0.0, 0.0
        return realization.value, realization.percent

    def _realization(self, order: Order) -> Realization | None:
        history = self._storage.orders(
            with_updated_before_or_equal(order.updated_at),
            with_status(OrderStatus.FILLED),
            with_pair(order.pair),
        )
        if order.id is not None:
            # same-timestamp fills count only when stored before this one
            history = [o for o in history if (o.updated_at, o.id or 0) < (order.updated_at, order.id)]
        history.sort(key=lambda o: (o.updated_at, o.id or 0))
        asset, _ = split_asset_quote(order.pair)
        book = replay(history, opening=self._opening.get(asset, 0.0))
        if book.quantity == 0:
            return None
        closes_long = order.side == OrderSide.SELL and book.quantity > 0
        closes_short = order.side == OrderSide.BUY and book.quantity < 0
        if not (closes_long or closes_short):
            return None
        return book.apply(order.side, order.quantity, order.execution_price)

    def _attribute(self, order: Order) -> Realization | None:
        """Set ``order.profit`` for a filled order; returns the realization, if any."""
        if order.status != OrderStatus.FILLED:
            return None
        realization = self._realization(order)
        if realization is not None:
            order.profit = realization.percent
        return realization

    def _record_result(self, order: Order, realization: Realization | None) -> None:
        if order.status != OrderStatus.FILLED:
            return
        summary = self.results.setdefault(order.pair, TradeSummary(pair=order.pair))
        summary.volume += order.execution_price * order.quantity
        if realization is None or realization.value == 0:
            return
        summary.record(realization.position_side, realization.value)
        _, quote = split_asset_quote(order.pair)
        self._notify(f"[PROFIT] {realization.value:f} {quote} ({realization.percent * 100:f} %)")

    # ------------------------------------------------------------------
    # Placement
    # ------------------------------------------------------------------

    def _persist_new(self, order: Order) -> None:
        try:
            self._storage.create_order(order)
        except StorageError as err:
            self._notify_error(err)
            raise
        except Exception as err:
            wrapped = StorageError(f"create order failed: {err}")
            self._notify_error(wrapped)
            raise wrapped from err

    def _register(self, orders: list[Order]) -> None:
        """Attribute, persist and publish freshly placed orders (lock held)."""
        realizations = []
        for order in orders:
            try:
                realizations.append(self._attribute(order))
            except Exception as err:
                self._notify_error(err)
                realizations.append(None)
        for order in orders:
            self._persist_new(order)
        for order, realization in zip(orders, realizations):
            self._record_result(order, realization)
            self._feed.publish(order, True)
            logger.info("[ORDER CREATED] %s", order)

    def _place(self, description: str, pair: str, place) -> list[Order]:
        with self._lock:
            logger.info("[ORDER] Creating %s order for %s", description, pair)
            try:
                placed = place()
            except Exception as err:
                self._notify_error(err)
                raise
            orders = placed if isinstance(placed, list) else [placed]
            self._register(orders)
            return orders

    def create_order_market(self, side: OrderSide, pair: str, quantity: float) -> Order:
        (order,) = self._place(
            f"MARKET {side.value}", pair, lambda: self._venue.create_order_market(side, pair, quantity)
        )
        return order

    def create_order_market_quote(self, side: OrderSide, pair: str, quote_quantity: float) -> Order:
        (order,) = self._place(
            f"MARKET {side.value}", pair, lambda: self._venue.create_order_market_quote(side, pair, quote_quantity)
        )
        return order

    def create_order_limit(self, side: OrderSide, pair: str, quantity: float, limit: float) -> Order:
        (order,) = self._place(
            f"LIMIT {side.value}", pair, lambda: self._venue.create_order_limit(side, pair, quantity, limit)
        )
        return order

    def create_order_stop(
        self, pair: str, quantity: float, limit: float, *, side: OrderSide = OrderSide.SELL
    ) -> Order:
        (order,) = self._place(
            "STOP", pair, lambda: self._venue.create_order_stop(pair, quantity, limit, side=side)
        )
        return order

    def create_order_oco(
        self, side: OrderSide, pair: str, quantity: float, price: float, stop: float, stop_limit: float
    ) -> list[Order]:
        return self._place(
            "OCO", pair, lambda: self._venue.create_order_oco(side, pair, quantity, price, stop, stop_limit)
        )

    def cancel(self, order: Order) -> None:
        """Cancel at the venue and record the outcome.

        The stored order becomes PENDING_CANCEL and the final CANCELED status
        is picked up by the next reconciliation tick. An order the venue had
        already filled (or rejected, or expired) is stored with that status
        instead, with its profit attributed.
        """
        with self._lock:
            logger.info("[ORDER] Cancelling order for %s", order.pair)
            try:
                self._venue.cancel(order)
                current = self._venue.order(order.pair, order.exchange_id)
                stored = self._stored(order)
            except Exception as err:
                self._notify_error(err)
                raise
            if stored is not None:
                current.id = stored.id
                if stored.status.is_final or stored.status == OrderStatus.PENDING_CANCEL:
                    order.status = stored.status
                    return
            else:
                current.id = order.id
            if current.status.is_pending or current.status == OrderStatus.CANCELED:
                current.status = OrderStatus.PENDING_CANCEL
            realization = self._attribute(current)
            try:
                self._storage.update_order(current)
            except Exception as err:
                self._notify_error(err)
                raise
            order.status = current.status
            order.updated_at = current.updated_at
            order.profit = current.profit
            logger.info("[ORDER %s] %s", current.status.value, current)
            if current.status != OrderStatus.PENDING_CANCEL:
                self._record_result(current, realization)
                self._feed.publish(current, False)

    def _stored(self, order: Order) -> Order | None:
        for stored in self._storage.orders(with_pair(order.pair)):
            if stored.exchange_id == order.exchange_id:
                return stored
        return None

    # ------------------------------------------------------------------
    # Reconciliation
    # ------------------------------------------------------------------

    def update_orders(self) -> int:
        """One reconciliation tick. Returns the number of orders whose status changed."""
        with self._lock:
            try:
                pending = self._storage.orders(with_status_in(*PENDING_STATUSES))
            except Exception as err:
                self._notify_error(err)
                return 0

            changed: list[tuple[Order, Realization | None]] = []
            for stored in pending:
                try:
                    current = self._venue.order(stored.pair, stored.exchange_id)
                    if current.status == stored.status:
                        continue
                    current.id = stored.id
                    realization = self._attribute(current)
                    self._storage.update_order(current)
                except Exception as err:
                    logger.error("reconcile order id=%s failed: %s", stored.exchange_id, err)
                    self._notify_error(err)
                    continue
                logger.info("[ORDER %s] %s", current.status.value, current)
                changed.append((current, realization))

            for order, realization in changed:
                self._record_result(order, realization)
                self._feed.publish(order, False)
            return len(changed)

    def _run(self) -> None:
        while not self._stop_event.wait(self._interval):
            self.update_orders()

    def start(self) -> None:
        if self._status == ControllerStatus.RUNNING:
            return
        self._status = ControllerStatus.RUNNING
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, name="order-reconciliation", daemon=True)
        self._thread.start()
        logger.info("Order controller started (interval=%.2fs)", self._interval)

    def stop(self) -> None:
        """Run one last reconciliation tick, then halt the background loop."""
        if self._status != ControllerStatus.RUNNING:
            return
        self._status = ControllerStatus.STOPPED
        self.update_orders()
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join()
            self._thread = None
        logger.info("Order controller stopped")

    def status(self) -> ControllerStatus:
        return self._status

    # ------------------------------------------------------------------
    # Venue passthrough
    # ------------------------------------------------------------------

    def on_bar(self, bar: Bar) -> None:
        self._last_price[bar.pair] = bar.close

    def account(self) -> Account:
        return self._venue.account()

    def position(self, pair: str) -> tuple[float, float]:
        return self._venue.position(pair)

    def last_quote(self, pair: str) -> float:
        return self._venue.last_quote(pair)

    def position_value(self, pair: str) -> float:
        asset, _ = self._venue.position(pair)
        return asset * self._last_price.get(pair, 0.0)

    def order(self, pair: str, exchange_id: int) -> Order:
        return self._venue.order(pair, exchange_id)
