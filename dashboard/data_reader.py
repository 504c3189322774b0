"""
Read-only data access for the tradesim dashboard.
Reads the SQLite order log (data/orders.db) and the JSONL journal (data/journal.jsonl).
"""

import json
import os
import sqlite3
from pathlib import Path
from typing import Any


def _data_dir() -> Path:
    """Base data dir: repo root / data, or TRADESIM_DASHBOARD_DATA_DIR if set."""
    if env := os.environ.get("TRADESIM_DASHBOARD_DATA_DIR"):
        return Path(env)
    return Path(__file__).resolve().parent.parent / "data"


def _orders_db(data_dir: Path | None) -> Path:
    return (data_dir or _data_dir()) / "orders.db"


def discover_pairs(data_dir: Path | None = None) -> list[str]:
    """Pairs that have at least one stored order."""
    db = _orders_db(data_dir)
    if not db.exists():
        return []
    try:
        with sqlite3.connect(str(db), timeout=5.0) as c:
            rows = c.execute("SELECT DISTINCT pair FROM orders ORDER BY pair").fetchall()
            return [r[0] for r in rows]
    except (sqlite3.Error, OSError):
        return []


def get_open_orders(pair: str, data_dir: Path | None = None) -> list[dict[str, Any]]:
    """Orders still pending at the venue (NEW, PARTIALLY_FILLED, PENDING_CANCEL)."""
    db = _orders_db(data_dir)
    if not db.exists():
        return []
    try:
        with sqlite3.connect(str(db), timeout=5.0) as c:
            rows = c.execute(
                "SELECT id, exchange_id, side, type, status, quantity, price, stop, updated_at FROM orders "
                "WHERE pair = ? AND status IN ('NEW', 'PARTIALLY_FILLED', 'PENDING_CANCEL') ORDER BY id",
                (pair,),
            ).fetchall()
    except (sqlite3.Error, OSError):
        return []
    keys = ("id", "exchange_id", "side", "type", "status", "quantity", "price", "stop", "updated_at")
    return [dict(zip(keys, r)) for r in rows]


def get_recent_fills(pair: str, limit: int = 20, data_dir: Path | None = None) -> list[dict[str, Any]]:
    """Most recent FILLED orders for pair, newest first."""
    db = _orders_db(data_dir)
    if not db.exists():
        return []
    try:
        with sqlite3.connect(str(db), timeout=5.0) as c:
            rows = c.execute(
                "SELECT id, side, type, quantity, price, profit, updated_at FROM orders "
                "WHERE pair = ? AND status = 'FILLED' ORDER BY updated_at DESC, id DESC LIMIT ?",
                (pair, limit),
            ).fetchall()
    except (sqlite3.Error, OSError):
        return []
    return [
        {
            "id": r[0],
            "side": r[1],
            "type": r[2],
            "quantity": r[3],
            "price": r[4],
            "profit": r[5],
            "updated_at": r[6],
        }
        for r in rows
    ]


def get_net_position(pair: str, data_dir: Path | None = None) -> float:
    """Net filled quantity (buys minus sells) for pair."""
    db = _orders_db(data_dir)
    if not db.exists():
        return 0.0
    try:
        with sqlite3.connect(str(db), timeout=5.0) as c:
            row = c.execute(
                "SELECT COALESCE(SUM(CASE WHEN side = 'BUY' THEN quantity ELSE -quantity END), 0) "
                "FROM orders WHERE pair = ? AND status = 'FILLED'",
                (pair,),
            ).fetchone()
            return float(row[0])
    except (sqlite3.Error, OSError):
        return 0.0


def get_recent_journal_events(
    event_type: str | None = None,
    pair: str | None = None,
    limit: int = 50,
    data_dir: Path | None = None,
) -> list[dict[str, Any]]:
    """
    Read last `limit` journal events from data/journal.jsonl.
    If event_type is set, filter to that event (order, fill, profit, summary).
    If pair is set, keep only events that name that pair.
    Returns list of parsed JSON objects (newest first).
    """
    path = (data_dir or _data_dir()) / "journal.jsonl"
    if not path.exists():
        return []
    out: list[dict[str, Any]] = []
    try:
        with open(path) as f:
            lines = [line.strip() for line in f if line.strip()]
    except OSError:
        return []
    for line in reversed(lines):
        try:
            obj = json.loads(line)
        except json.JSONDecodeError:
            continue
        if event_type is not None and obj.get("event") != event_type:
            continue
        if pair is not None:
            event_pair = obj.get("pair") or (obj.get("order") or {}).get("pair")
            if event_pair != pair:
                continue
        out.append(obj)
        if limit and len(out) >= limit:
            break
    return out
