"""
Structured journal: append-only JSON lines of order events, fills, realized
profits and run summaries.
"""

from __future__ import annotations

import json
from dataclasses import asdict, is_dataclass
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any

from execution.models import Order, OrderStatus


def _serialize(obj: Any) -> Any:
    if isinstance(obj, datetime):
        return obj.isoformat()
    if isinstance(obj, Enum):
        return obj.value
    if is_dataclass(obj) and not isinstance(obj, type):
        return _serialize(asdict(obj))
    if isinstance(obj, dict):
        return {k: _serialize(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [_serialize(x) for x in obj]
    return obj


class JournalWriter:
    """Append-only journal. Each line is a JSON object with event type and payload."""

    def __init__(self, path: str | Path, *, echo_stdout: bool = False) -> None:
        self._path = Path(path)
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._echo = echo_stdout
        self._seen: set[int] = set()

    @property
    def path(self) -> Path:
        return self._path

    def _write(self, event_type: str, payload: dict) -> None:
        record = {"ts_utc": datetime.now(timezone.utc).isoformat(), "event": event_type, **payload}
        line = json.dumps(_serialize(record)) + "\n"
        with open(self._path, "a") as f:
            f.write(line)
        if self._echo:
            print(line.rstrip())

    def order(self, order: Order, *, new: bool) -> None:
        self._write("order", {"new": new, "order": order})

    def fill(self, order: Order) -> None:
        self._write(
            "fill",
            {
                "order_id": order.id,
                "exchange_id": order.exchange_id,
                "pair": order.pair,
                "side": order.side,
                "quantity": order.quantity,
                "price": order.execution_price,
                "time": order.updated_at,
            },
        )

    def profit(self, pair: str, value: float, percent: float, **extra: Any) -> None:
        self._write("profit", {"pair": pair, "value": value, "percent": percent, **extra})

    def summary(self, payload: dict[str, Any]) -> None:
        self._write("summary", payload)

    def on_order(self, order: Order) -> None:
        """Order feed callback: journal the event and, for fills, the fill itself.

        The first event seen for an exchange id is journaled as new.
        """
        new = order.exchange_id not in self._seen
        self._seen.add(order.exchange_id)
        self.order(order, new=new)
        if order.status == OrderStatus.FILLED:
            self.fill(order)
