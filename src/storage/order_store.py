"""
Order log: create, update and filter orders. Orders are never deleted.

SQLiteOrderStore opens one connection per call (safe to share between the
bar thread and the reconciliation thread). Timestamps are stored as UTC ISO
strings with fixed microsecond precision so they compare lexically.
"""

from __future__ import annotations

import sqlite3
import threading
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Protocol

from execution.errors import StorageError
from execution.models import Order, OrderSide, OrderStatus, OrderType


def _utc(ts: datetime) -> datetime:
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


def _iso(ts: datetime) -> str:
    return _utc(ts).isoformat(timespec="microseconds")


def _parse(value: str) -> datetime:
    ts = datetime.fromisoformat(value.replace("Z", "+00:00"))
    return _utc(ts)


# ----------------------------------------------------------------------
# Filters
# ----------------------------------------------------------------------


@dataclass(frozen=True)
class OrderFilter:
    """One query condition, usable both as SQL and as an in-memory predicate."""

    sql: str
    params: tuple
    match: Callable[[Order], bool]


def with_status(status: OrderStatus) -> OrderFilter:
    return OrderFilter("status = ?", (status.value,), lambda o: o.status == status)


def with_status_in(*statuses: OrderStatus) -> OrderFilter:
    marks = ", ".join("?" for _ in statuses)
    return OrderFilter(
        f"status IN ({marks})",
        tuple(s.value for s in statuses),
        lambda o: o.status in statuses,
    )


def with_pair(pair: str) -> OrderFilter:
    return OrderFilter("pair = ?", (pair,), lambda o: o.pair == pair)


def with_updated_before_or_equal(ts: datetime) -> OrderFilter:
    bound = _utc(ts)
    return OrderFilter("updated_at <= ?", (_iso(ts),), lambda o: _utc(o.updated_at) <= bound)


class OrderStore(Protocol):
    def create_order(self, order: Order) -> Order:
        """Persist a new order; returns it with ``id`` assigned."""
        ...

    def update_order(self, order: Order) -> None: ...

    def orders(self, *filters: OrderFilter) -> list[Order]:
        """Orders matching every filter, in insertion order."""
        ...


# ----------------------------------------------------------------------
# SQLite
# ----------------------------------------------------------------------

_COLUMNS = (
    "id, exchange_id, pair, side, type, status, quantity, price, stop, "
    "group_id, ref_price, profit, created_at, updated_at"
)


class SQLiteOrderStore:
    """SQLite-backed order log. One file per path."""

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._init_schema()

    def _conn(self) -> sqlite3.Connection:
        return sqlite3.connect(str(self._path), timeout=10.0)

    def _init_schema(self) -> None:
        with self._conn() as c:
            c.execute(
                """
                CREATE TABLE IF NOT EXISTS orders (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    exchange_id INTEGER NOT NULL,
                    pair TEXT NOT NULL,
                    side TEXT NOT NULL,
                    type TEXT NOT NULL,
                    status TEXT NOT NULL,
                    quantity REAL NOT NULL,
                    price REAL NOT NULL,
                    stop REAL,
                    group_id INTEGER,
                    ref_price REAL NOT NULL DEFAULT 0,
                    profit REAL NOT NULL DEFAULT 0,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
                """
            )
            c.execute("CREATE INDEX IF NOT EXISTS idx_orders_pair_status ON orders (pair, status)")

    def create_order(self, order: Order) -> Order:
        try:
            with self._conn() as c:
                cur = c.execute(
                    """
                    INSERT INTO orders (exchange_id, pair, side, type, status, quantity, price, stop,
                                        group_id, ref_price, profit, created_at, updated_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        order.exchange_id,
                        order.pair,
                        order.side.value,
                        order.type.value,
                        order.status.value,
                        order.quantity,
                        order.price,
                        order.stop,
                        order.group_id,
                        order.ref_price,
                        order.profit,
                        _iso(order.created_at),
                        _iso(order.updated_at),
                    ),
                )
                order.id = cur.lastrowid
        except sqlite3.Error as e:
            raise StorageError(f"create order failed: {e}") from e
        return order

    def update_order(self, order: Order) -> None:
        if order.id is None:
            raise StorageError("cannot update an order without storage id")
        try:
            with self._conn() as c:
                cur = c.execute(
                    """
                    UPDATE orders SET status = ?, quantity = ?, price = ?, stop = ?, group_id = ?,
                                      profit = ?, updated_at = ?
                    WHERE id = ?
                    """,
                    (
                        order.status.value,
                        order.quantity,
                        order.price,
                        order.stop,
                        order.group_id,
                        order.profit,
                        _iso(order.updated_at),
                        order.id,
                    ),
                )
                if cur.rowcount == 0:
                    raise StorageError(f"order not stored: id={order.id}")
        except sqlite3.Error as e:
            raise StorageError(f"update order failed: {e}") from e

    def orders(self, *filters: OrderFilter) -> list[Order]:
        q = f"SELECT {_COLUMNS} FROM orders"
        params: list = []
        if filters:
            q += " WHERE " + " AND ".join(f.sql for f in filters)
            for f in filters:
                params.extend(f.params)
        q += " ORDER BY id ASC"
        try:
            with self._conn() as c:
                rows = c.execute(q, params).fetchall()
        except sqlite3.Error as e:
            raise StorageError(f"query orders failed: {e}") from e
        return [self._row_to_order(r) for r in rows]

    @staticmethod
    def _row_to_order(row: tuple) -> Order:
        (oid, exchange_id, pair, side, otype, status, qty, price, stop, group_id, ref_price, profit, created, updated) = row
        return Order(
            id=oid,
            exchange_id=exchange_id,
            pair=pair,
            side=OrderSide(side),
            type=OrderType(otype),
            status=OrderStatus(status),
            quantity=qty,
            price=price,
            stop=stop,
            group_id=group_id,
            ref_price=ref_price,
            profit=profit,
            created_at=_parse(created),
            updated_at=_parse(updated),
        )


# ----------------------------------------------------------------------
# In-memory
# ----------------------------------------------------------------------


class MemoryOrderStore:
    """Order log kept in a list; for backtests and tests."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._orders: list[Order] = []

    def create_order(self, order: Order) -> Order:
        with self._lock:
            order.id = len(self._orders) + 1
            self._orders.append(replace(order))
        return order

    def update_order(self, order: Order) -> None:
        with self._lock:
            if order.id is None or not 1 <= order.id <= len(self._orders):
                raise StorageError(f"order not stored: id={order.id}")
            self._orders[order.id - 1] = replace(order)

    def orders(self, *filters: OrderFilter) -> list[Order]:
        with self._lock:
            return [replace(o) for o in self._orders if all(f.match(o) for f in filters)]
