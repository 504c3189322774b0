"""
Order event feed: per-pair subscriptions, synchronous delivery in publish order.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Callable

from execution.models import Order

logger = logging.getLogger("tradesim.orders.feed")

OrderCallback = Callable[[Order], None]


@dataclass(frozen=True)
class _Subscription:
    callback: OrderCallback
    only_new: bool


class OrderFeed:
    """Fan out order events to subscribers of the order's pair.

    A subscriber registered with ``only_new=True`` receives creation events
    only, not status updates found by reconciliation.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._subscriptions: dict[str, list[_Subscription]] = {}

    def subscribe(self, pair: str, callback: OrderCallback, *, only_new: bool = False) -> None:
        with self._lock:
            self._subscriptions.setdefault(pair, []).append(_Subscription(callback, only_new))

    def publish(self, order: Order, new: bool) -> None:
        with self._lock:
            subs = list(self._subscriptions.get(order.pair, []))
        for sub in subs:
            if sub.only_new and not new:
                continue
            try:
                sub.callback(order)
            except Exception:
                logger.exception("order subscriber failed for %s", order.pair)
