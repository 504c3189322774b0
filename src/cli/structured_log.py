"""
Structured JSON event logger; implements the Notifier capability.

Emits one JSON object per line to stderr so log aggregators can parse it.

Optional webhook: when configured, alert-level events (notification, error,
order_rejected) are POSTed to the URL.
"""

from __future__ import annotations

import json
import logging
import sys
import urllib.request
from datetime import datetime, timezone
from typing import Any

from execution.models import Order

logger = logging.getLogger("tradesim.events")

ALERT_EVENTS = frozenset({"notification", "error", "order_rejected"})


class StructuredEventLogger:
    """Emit structured JSON events to stderr and optional webhook."""

    def __init__(
        self,
        source: str,
        *,
        enabled: bool = True,
        webhook_url: str = "",
        stream: Any = None,
    ) -> None:
        self._source = source
        self._enabled = enabled
        self._webhook_url = webhook_url.strip()
        self._stream = stream or sys.stderr

    def _emit(self, event_type: str, **fields: Any) -> dict:
        record = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "event": event_type,
            "source": self._source,
            **fields,
        }
        if self._enabled:
            self._stream.write(json.dumps(record) + "\n")
            self._stream.flush()

        if self._webhook_url and event_type in ALERT_EVENTS:
            self._post_webhook(record)

        return record

    def _post_webhook(self, record: dict) -> None:
        try:
            data = json.dumps(record).encode("utf-8")
            req = urllib.request.Request(
                self._webhook_url,
                data=data,
                headers={"Content-Type": "application/json"},
                method="POST",
            )
            urllib.request.urlopen(req, timeout=5)
        except Exception as exc:
            logger.warning("Webhook POST failed: %s", exc)

    # Notifier

    def notify(self, message: str) -> None:
        self._emit("notification", message=message)

    def on_error(self, err: Exception) -> None:
        self._emit("error", message=str(err), error_type=type(err).__name__)

    # Run lifecycle

    def run_start(self, mode: str, pairs: list[str]) -> dict:
        return self._emit("run_start", mode=mode, pairs=pairs)

    def order_event(self, order: Order, new: bool = False) -> dict:
        return self._emit(
            "order_created" if new else "order_updated",
            exchange_id=order.exchange_id,
            pair=order.pair,
            side=order.side.value,
            type=order.type.value,
            status=order.status.value,
            quantity=order.quantity,
            price=order.execution_price,
        )

    def order_rejected(self, pair: str, reason: str) -> dict:
        return self._emit("order_rejected", pair=pair, reason=reason)

    def run_complete(self, bars: int, orders: int) -> dict:
        return self._emit("run_complete", bars=bars, orders=orders)

    def shutdown(self, reason: str = "") -> dict:
        return self._emit("shutdown", reason=reason)
