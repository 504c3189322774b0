"""
Event-driven backtest: replay bars through the matching engine, the order
controller and one strategy controller per pair.

Per bar: engine fills pending orders -> controller records the price and
reconciles -> strategy sees the bar and may place new orders (filled at this
bar's close for market orders, evaluated from the next bar for pending ones).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable

from execution.matching_engine import MatchingEngine, WalletSummary
from execution.models import Bar, Order
from execution.venue import Notifier
from metrics.trade_summary import TradeSummary
from orders.controller import OrderController
from orders.feed import OrderFeed
from storage.order_store import MemoryOrderStore, OrderStore
from strategy.base import Strategy
from strategy.controller import StrategyController

logger = logging.getLogger("tradesim.backtest")


@dataclass
class BacktestResult:
    """Result of a backtest run."""

    wallet: WalletSummary
    results: dict[str, TradeSummary] = field(default_factory=dict)
    orders: list[Order] = field(default_factory=list)
    bars_processed: int = 0
    bars_dropped: int = 0
    start_time: datetime | None = None
    end_time: datetime | None = None

    @property
    def total_return_pct(self) -> float:
        return self.wallet.gross_profit_pct

    @property
    def trades(self) -> int:
        return sum(s.trades() for s in self.results.values())


def run_backtest(
    bars: Iterable[Bar],
    strategy: Strategy,
    *,
    base_coin: str,
    balances: dict[str, float],
    maker_fee: float = 0.0,
    taker_fee: float = 0.0,
    storage: OrderStore | None = None,
    feed: OrderFeed | None = None,
    notifier: Notifier | None = None,
) -> BacktestResult:
    """Replay *bars* (time-ordered, any mix of pairs) with *strategy* on every pair.

    Parameters
    ----------
    bars:
        Bars in non-decreasing time order per pair.
    strategy:
        Strategy instance shared by all pairs (one dataframe per pair).
    base_coin:
        Asset the wallet is valued in.
    balances:
        Initial free balances per asset.
    storage:
        Order log; an in-memory store when None.
    feed:
        Order event feed, e.g. with a journal subscribed; a private feed when None.
    """
    engine = MatchingEngine(base_coin, balances=balances, maker_fee=maker_fee, taker_fee=taker_fee)
    controller = OrderController(
        engine,
        storage if storage is not None else MemoryOrderStore(),
        feed if feed is not None else OrderFeed(),
        notifier=notifier,
        opening_positions=balances,
    )
    strategies: dict[str, StrategyController] = {}

    processed = dropped = 0
    start_time: datetime | None = None
    end_time: datetime | None = None
    for bar in bars:
        if not engine.on_bar(bar):
            dropped += 1
            continue
        processed += 1
        start_time = start_time or bar.time
        end_time = bar.time

        controller.on_bar(bar)
        controller.update_orders()

        sc = strategies.get(bar.pair)
        if sc is None:
            sc = StrategyController(bar.pair, strategy, controller)
            sc.start()
            strategies[bar.pair] = sc
        if bar.complete:
            sc.on_bar(bar)
        else:
            sc.on_partial_bar(bar)

    controller.update_orders()
    logger.info("backtest finished: %d bars processed, %d dropped", processed, dropped)
    return BacktestResult(
        wallet=engine.summary(),
        results=controller.results,
        orders=engine.orders(),
        bars_processed=processed,
        bars_dropped=dropped,
        start_time=start_time,
        end_time=end_time,
    )
