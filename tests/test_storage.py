"""Tests for the order log: SQLite and in-memory stores share one contract."""

from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from execution.errors import StorageError
from execution.models import Order, OrderSide, OrderStatus, OrderType
from storage.order_store import (
    MemoryOrderStore,
    SQLiteOrderStore,
    with_pair,
    with_status,
    with_status_in,
    with_updated_before_or_equal,
)

T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)


def _order(pair: str, status: OrderStatus, hours: int, exchange_id: int) -> Order:
    ts = T0 + timedelta(hours=hours)
    return Order(
        pair=pair,
        side=OrderSide.BUY,
        type=OrderType.LIMIT,
        status=status,
        quantity=1.5,
        price=100.0,
        created_at=ts,
        updated_at=ts,
        exchange_id=exchange_id,
    )


@pytest.fixture(params=["sqlite", "memory"])
def order_store(request: pytest.FixtureRequest, tmp_path: Path):
    if request.param == "sqlite":
        return SQLiteOrderStore(tmp_path / "orders.db")
    return MemoryOrderStore()


@pytest.fixture
def populated(order_store):
    order_store.create_order(_order("BTCUSDT", OrderStatus.FILLED, 0, 1))
    order_store.create_order(_order("BTCUSDT", OrderStatus.NEW, 1, 2))
    order_store.create_order(_order("ETHUSDT", OrderStatus.FILLED, 2, 3))
    order_store.create_order(_order("BTCUSDT", OrderStatus.PENDING_CANCEL, 3, 4))
    return order_store


def test_create_assigns_sequential_ids(order_store) -> None:
    a = order_store.create_order(_order("BTCUSDT", OrderStatus.NEW, 0, 1))
    b = order_store.create_order(_order("BTCUSDT", OrderStatus.NEW, 1, 2))
    assert a.id == 1
    assert b.id == 2


def test_round_trip_fields(order_store) -> None:
    original = _order("BTCUSDT", OrderStatus.NEW, 5, 7)
    original.stop = 95.0
    original.group_id = 3
    order_store.create_order(original)
    (loaded,) = order_store.orders()
    assert loaded.exchange_id == 7
    assert loaded.side == OrderSide.BUY
    assert loaded.type == OrderType.LIMIT
    assert loaded.quantity == 1.5
    assert loaded.stop == 95.0
    assert loaded.group_id == 3
    assert loaded.updated_at == T0 + timedelta(hours=5)
    assert loaded.updated_at.tzinfo is not None


def test_filters(populated) -> None:
    assert [o.exchange_id for o in populated.orders(with_pair("BTCUSDT"))] == [1, 2, 4]
    assert [o.exchange_id for o in populated.orders(with_status(OrderStatus.FILLED))] == [1, 3]
    pending = populated.orders(with_status_in(OrderStatus.NEW, OrderStatus.PENDING_CANCEL))
    assert [o.exchange_id for o in pending] == [2, 4]
    combined = populated.orders(
        with_pair("BTCUSDT"),
        with_status(OrderStatus.FILLED),
        with_updated_before_or_equal(T0 + timedelta(hours=2)),
    )
    assert [o.exchange_id for o in combined] == [1]


def test_updated_before_or_equal_is_inclusive(populated) -> None:
    found = populated.orders(with_updated_before_or_equal(T0 + timedelta(hours=1)))
    assert [o.exchange_id for o in found] == [1, 2]


def test_update_order(populated) -> None:
    (order,) = populated.orders(with_status(OrderStatus.NEW))
    order.status = OrderStatus.FILLED
    order.profit = 0.05
    order.updated_at = T0 + timedelta(hours=9)
    populated.update_order(order)
    reloaded = [o for o in populated.orders() if o.id == order.id][0]
    assert reloaded.status == OrderStatus.FILLED
    assert reloaded.profit == pytest.approx(0.05)
    assert reloaded.updated_at == T0 + timedelta(hours=9)


def test_update_unknown_order_raises(order_store) -> None:
    ghost = _order("BTCUSDT", OrderStatus.NEW, 0, 1)
    with pytest.raises(StorageError):
        order_store.update_order(ghost)
    ghost.id = 42
    with pytest.raises(StorageError):
        order_store.update_order(ghost)


def test_returned_orders_are_copies(populated) -> None:
    populated.orders()[0].status = OrderStatus.CANCELED
    assert populated.orders()[0].status == OrderStatus.FILLED


def test_sqlite_persists_across_instances(tmp_path: Path) -> None:
    path = tmp_path / "nested" / "orders.db"
    SQLiteOrderStore(path).create_order(_order("BTCUSDT", OrderStatus.NEW, 0, 1))
    assert len(SQLiteOrderStore(path).orders()) == 1
