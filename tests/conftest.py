"""Pytest fixtures: bar sequences, a funded engine and a wired order controller."""

from datetime import datetime, timedelta, timezone

import pytest

from execution.matching_engine import MatchingEngine
from execution.models import Bar
from orders.controller import OrderController
from orders.feed import OrderFeed
from storage.order_store import MemoryOrderStore

PAIR = "BTCUSDT"


def _ts(day: int, hour: int = 0) -> datetime:
    return datetime(2024, 1, day, hour, 0, 0, tzinfo=timezone.utc)


def make_bar(
    close: float,
    time: datetime,
    *,
    pair: str = PAIR,
    high: float | None = None,
    low: float | None = None,
    open: float | None = None,
    complete: bool = True,
) -> Bar:
    return Bar(
        pair=pair,
        time=time,
        open=close if open is None else open,
        high=close if high is None else high,
        low=close if low is None else low,
        close=close,
        volume=1000.0,
        complete=complete,
    )


def series(closes: list[float], *, pair: str = PAIR, start: datetime | None = None) -> list[Bar]:
    """Hourly complete bars with high == low == close."""
    start = start or _ts(1)
    return [make_bar(c, start + timedelta(hours=i), pair=pair) for i, c in enumerate(closes)]


@pytest.fixture
def pair() -> str:
    return PAIR


@pytest.fixture
def engine() -> MatchingEngine:
    return MatchingEngine("USDT", balances={"USDT": 10_000.0})


@pytest.fixture
def feed() -> OrderFeed:
    return OrderFeed()


@pytest.fixture
def store() -> MemoryOrderStore:
    return MemoryOrderStore()


class RecordingNotifier:
    def __init__(self) -> None:
        self.messages: list[str] = []
        self.errors: list[Exception] = []

    def notify(self, message: str) -> None:
        self.messages.append(message)

    def on_error(self, err: Exception) -> None:
        self.errors.append(err)


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def controller(
    engine: MatchingEngine, store: MemoryOrderStore, feed: OrderFeed, notifier: RecordingNotifier
) -> OrderController:
    return OrderController(engine, store, feed, notifier=notifier, interval=0.01)
