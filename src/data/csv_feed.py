"""
In-memory bar feed loaded from CSV files, one file per pair.

Expected header (case-insensitive, any column order):
time (or timestamp/date), open, high, low, close, volume.
Time values may be ISO-8601 strings or Unix epoch seconds / milliseconds.
"""

from __future__ import annotations

import csv
import heapq
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator

from execution.errors import VenueError
from execution.models import Bar

_TIME_COLUMNS = ("time", "timestamp", "date", "datetime")


def parse_time(value: str) -> datetime:
    """Parse an ISO timestamp or a Unix epoch (seconds or milliseconds) as UTC."""
    text = value.strip()
    if text.replace(".", "", 1).isdigit():
        epoch = float(text)
        if epoch > 1e11:
            epoch /= 1000.0
        return datetime.fromtimestamp(epoch, tz=timezone.utc)
    ts = datetime.fromisoformat(text.replace("Z", "+00:00"))
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


def read_csv_bars(path: str | Path, pair: str) -> list[Bar]:
    """Load bars for *pair* from *path*, sorted by time."""
    with open(path, newline="") as f:
        reader = csv.DictReader(f)
        if reader.fieldnames is None:
            return []
        columns = {name.strip().lower(): name for name in reader.fieldnames}
        time_col = next((columns[c] for c in _TIME_COLUMNS if c in columns), None)
        missing = [c for c in ("open", "high", "low", "close") if c not in columns]
        if time_col is None or missing:
            raise ValueError(f"{path}: CSV needs time, open, high, low, close columns")
        bars = []
        for row in reader:
            bars.append(
                Bar(
                    pair=pair,
                    time=parse_time(row[time_col]),
                    open=float(row[columns["open"]]),
                    high=float(row[columns["high"]]),
                    low=float(row[columns["low"]]),
                    close=float(row[columns["close"]]),
                    volume=float(row[columns["volume"]]) if "volume" in columns else 0.0,
                )
            )
    bars.sort(key=lambda b: b.time)
    return bars


class CSVFeed:
    """Feeder over bars loaded from CSV files (one timeframe per feed)."""

    def __init__(self, files: dict[str, str | Path], timeframe: str = "1h") -> None:
        self.timeframe = timeframe
        self._bars: dict[str, list[Bar]] = {pair: read_csv_bars(path, pair) for pair, path in files.items()}

    def pairs(self) -> list[str]:
        return list(self._bars)

    def bars(self, pair: str) -> list[Bar]:
        if pair not in self._bars:
            raise VenueError(f"no CSV data loaded for {pair}")
        return list(self._bars[pair])

    def iter_bars(self) -> Iterator[Bar]:
        """All bars of all pairs merged in time order."""
        return heapq.merge(*self._bars.values(), key=lambda b: b.time)

    def last_quote(self, pair: str) -> float:
        bars = self.bars(pair)
        if not bars:
            raise VenueError(f"no bars for {pair}")
        return bars[-1].close

    def candles_by_limit(self, pair: str, timeframe: str, limit: int) -> list[Bar]:
        return self.bars(pair)[-limit:] if limit > 0 else []

    def candles_by_period(self, pair: str, timeframe: str, start: datetime, end: datetime) -> list[Bar]:
        return [b for b in self.bars(pair) if start <= b.time <= end]

    def candles_subscription(
        self, pair: str, timeframe: str, stop_event: threading.Event | None = None
    ) -> Iterator[Bar]:
        for bar in self.bars(pair):
            if stop_event is not None and stop_event.is_set():
                return
            yield bar
