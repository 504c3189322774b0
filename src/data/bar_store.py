"""
Persist and load OHLCV bars (SQLite). Timestamps in UTC.

BarStoreFeed exposes a store as a market-data Feeder: history queries plus a
polling subscription that yields bars as they are written by ``ingest``.
"""

from __future__ import annotations

import logging
import sqlite3
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator, Sequence

from data.subscription import Backoff, subscribe_bars
from execution.errors import TransientFeedError, VenueError
from execution.models import Bar

logger = logging.getLogger("tradesim.data.bar_store")


def _utc_ts(ts: datetime) -> datetime:
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


def _iso(ts: datetime) -> str:
    return _utc_ts(ts).isoformat(timespec="microseconds")


class BarStore:
    """SQLite-backed bar storage. One file per path."""

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
                CREATE TABLE IF NOT EXISTS bars (
                    pair TEXT NOT NULL,
                    timeframe TEXT NOT NULL,
                    ts_utc TEXT NOT NULL,
                    open REAL NOT NULL,
                    high REAL NOT NULL,
                    low REAL NOT NULL,
                    close REAL NOT NULL,
                    volume REAL NOT NULL,
                    PRIMARY KEY (pair, timeframe, ts_utc)
                )
                """
            )

    def write_bars(self, pair: str, timeframe: str, bars: Sequence[Bar]) -> None:
        """Upsert bars (by pair, timeframe, ts_utc)."""
        with self._conn() as c:
            c.executemany(
                """
                INSERT OR REPLACE INTO bars (pair, timeframe, ts_utc, open, high, low, close, volume)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                [(pair, timeframe, _iso(b.time), b.open, b.high, b.low, b.close, b.volume) for b in bars],
            )

    def get_bars(
        self,
        pair: str,
        timeframe: str,
        *,
        since: datetime | None = None,
        until: datetime | None = None,
        limit: int | None = None,
        after: datetime | None = None,
    ) -> list[Bar]:
        """Return bars in ascending time order. ``after`` is exclusive, ``since``/``until`` inclusive."""
        with self._conn() as c:
            q = "SELECT ts_utc, open, high, low, close, volume FROM bars WHERE pair = ? AND timeframe = ?"
            params: list = [pair, timeframe]
            if since is not None:
                q += " AND ts_utc >= ?"
                params.append(_iso(since))
            if after is not None:
                q += " AND ts_utc > ?"
                params.append(_iso(after))
            if until is not None:
                q += " AND ts_utc <= ?"
                params.append(_iso(until))
            q += " ORDER BY ts_utc ASC"
            if limit is not None:
                q += " LIMIT ?"
                params.append(limit)
            rows = c.execute(q, params).fetchall()
        return self._rows_to_bars(rows, pair)

    def count_bars(self, pair: str, timeframe: str) -> int:
        """Return the total number of bars stored for a pair/timeframe."""
        with self._conn() as c:
            row = c.execute(
                "SELECT COUNT(*) FROM bars WHERE pair = ? AND timeframe = ?",
                (pair, timeframe),
            ).fetchone()
        return row[0] if row else 0

    def get_last_bars(self, pair: str, timeframe: str, n: int, *, until: datetime | None = None) -> list[Bar]:
        """Return the last n bars (by time) in ascending order."""
        with self._conn() as c:
            q = "SELECT ts_utc, open, high, low, close, volume FROM bars WHERE pair = ? AND timeframe = ?"
            params: list = [pair, timeframe]
            if until is not None:
                q += " AND ts_utc <= ?"
                params.append(_iso(until))
            q += " ORDER BY ts_utc DESC LIMIT ?"
            params.append(n)
            rows = c.execute(q, params).fetchall()
        rows = list(reversed(rows))
        return self._rows_to_bars(rows, pair)

    def _rows_to_bars(self, rows: list, pair: str) -> list[Bar]:
        out: list[Bar] = []
        for ts_utc, o, h, l, c, vol in rows:
            # SQLite has no native datetime; we store ISO strings
            ts = _utc_ts(datetime.fromisoformat(ts_utc.replace("Z", "+00:00")))
            out.append(Bar(pair=pair, time=ts, open=o, high=h, low=l, close=c, volume=vol))
        return out


class BarStoreFeed:
    """Feeder over a BarStore. The subscription polls for bars newer than the last one seen."""

    def __init__(self, store: BarStore, *, poll_interval: float = 5.0, backoff: Backoff | None = None) -> None:
        self._store = store
        self._poll_interval = poll_interval
        self._backoff = backoff

    def last_quote(self, pair: str, timeframe: str = "1h") -> float:
        bars = self._store.get_last_bars(pair, timeframe, 1)
        if not bars:
            raise VenueError(f"no bars stored for {pair} {timeframe}")
        return bars[-1].close

    def candles_by_limit(self, pair: str, timeframe: str, limit: int) -> list[Bar]:
        return self._store.get_last_bars(pair, timeframe, limit)

    def candles_by_period(self, pair: str, timeframe: str, start: datetime, end: datetime) -> list[Bar]:
        return self._store.get_bars(pair, timeframe, since=start, until=end)

    def candles_subscription(
        self, pair: str, timeframe: str, stop_event: threading.Event | None = None
    ) -> Iterator[Bar]:
        stop_event = stop_event or threading.Event()
        cursor: dict[str, datetime | None] = {"after": None}

        def poll() -> Iterator[Bar]:
            while not stop_event.is_set():
                try:
                    bars = self._store.get_bars(pair, timeframe, after=cursor["after"])
                except sqlite3.Error as e:
                    raise TransientFeedError(f"bar store read failed: {e}") from e
                for bar in bars:
                    cursor["after"] = bar.time
                    yield bar
                if stop_event.wait(self._poll_interval):
                    return

        return subscribe_bars(poll, stop_event, backoff=self._backoff)
